from __future__ import annotations

import json
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from relflow.core.result import Err, Ok, Result
from relflow.core.structured import as_str_dict, get_table
from relflow.release.errors import ReleaseError

ManifestFormat = Literal["json", "toml"]

# ASCII digits only; fullmatch so a trailing newline does not slip through.
_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)", re.ASCII)

_VERSION_HINT = "Expected MAJOR.MINOR.PATCH, e.g. 1.2.3"


@dataclass(frozen=True, slots=True, order=True)
class Version:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def to_tag(self) -> str:
        return f"v{self}"


def _malformed(value: str, hint: str = _VERSION_HINT) -> Err[ReleaseError]:
    shown = value if len(value) <= 40 else f"{value[:37]}..."
    return Err(
        ReleaseError(kind="version_malformed", message=f"malformed version: {shown!r}", hint=hint)
    )


def parse_version(value: str) -> Result[Version, ReleaseError]:
    m = _VERSION_RE.fullmatch(value)
    if m is None:
        return _malformed(value)
    try:
        return Ok(Version(int(m.group(1)), int(m.group(2)), int(m.group(3))))
    except ValueError as e:
        # int() refuses strings past sys.get_int_max_str_digits().
        return _malformed(value, f"{_VERSION_HINT} ({e})")


def manifest_format_for(path: Path) -> ManifestFormat | None:
    match path.suffix.lower():
        case ".json":
            return "json"
        case ".toml":
            return "toml"
        case _:
            return None


def extract_version(
    manifest_text: str, *, manifest_format: ManifestFormat = "json"
) -> Result[Version, ReleaseError]:
    """Read the declared version out of manifest text.

    JSON manifests carry a top-level ``"version"``. TOML manifests are
    searched in ``[project]``, ``[package]`` and ``[tool.poetry]`` order.
    The raw value is parsed strictly; surrounding whitespace is an error.
    """
    match manifest_format:
        case "json":
            raw = _json_version_field(manifest_text)
        case "toml":
            raw = _toml_version_field(manifest_text)
    if isinstance(raw, Err):
        return raw
    return parse_version(raw.value)


def read_manifest_version(path: Path) -> Result[Version, ReleaseError]:
    fmt = manifest_format_for(path)
    if fmt is None:
        return Err(
            ReleaseError(
                kind="manifest_unreadable",
                message=f"unsupported manifest type: {path.name}",
                hint="Use a .json (package.json) or .toml manifest",
            )
        )

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return Err(
            ReleaseError(
                kind="manifest_unreadable",
                message=f"failed to read {path.name}: {e}",
                hint=str(path),
            )
        )

    return extract_version(text, manifest_format=fmt)


def _malformed(message: str) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="version_malformed", message=message, hint=_VERSION_HINT))


def _json_version_field(text: str) -> Result[str, ReleaseError]:
    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return _malformed(f"invalid JSON manifest: {e}")

    data = as_str_dict(obj)
    if data is None:
        return _malformed("manifest root must be a JSON object")

    value = data.get("version")
    if not isinstance(value, str):
        return _malformed("manifest has no string 'version' field")
    return Ok(value)


def _toml_version_field(text: str) -> Result[str, ReleaseError]:
    try:
        data: dict[str, object] = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        return _malformed(f"invalid TOML manifest: {e}")

    tool = get_table(data, "tool") or {}
    tables = (
        get_table(data, "project"),
        get_table(data, "package"),
        get_table(tool, "poetry"),
    )
    for table in tables:
        if table is None or "version" not in table:
            continue
        value = table["version"]
        if not isinstance(value, str):
            return _malformed("manifest 'version' must be a string")
        return Ok(value)

    return _malformed("manifest has no [project], [package] or [tool.poetry] version")
