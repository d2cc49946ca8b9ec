"""Typed pipeline configuration.

Configuration is resolved exactly once per run into an immutable
``PipelineConfig``. Sources, lowest precedence first:

1. built-in defaults (fallbacks are applied here, never later)
2. ``relflow.toml`` at the project root (optional)
3. environment variables (``RC_SUFFIX``, ``BUILD_TOOL_VERSION``,
   ``GITHUB_REPOSITORY``)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_str, get_table

__all__ = [
    "CONFIG_FILE_NAME",
    "DEFAULT_ARTIFACT_DIR",
    "DEFAULT_BUILD_TOOL_VERSION",
    "DEFAULT_MANIFEST",
    "DEFAULT_RC_SUFFIX",
    "ConfigError",
    "PipelineConfig",
    "StepCommands",
    "load_config",
    "load_project_file",
    "resolve_config",
]

CONFIG_FILE_NAME = "relflow.toml"

DEFAULT_RC_SUFFIX = "rc"
DEFAULT_BUILD_TOOL_VERSION = "lts"
DEFAULT_MANIFEST = "package.json"
DEFAULT_ARTIFACT_DIR = ".relflow/artifacts"

ENV_RC_SUFFIX = "RC_SUFFIX"
ENV_BUILD_TOOL_VERSION = "BUILD_TOOL_VERSION"
ENV_REPOSITORY = "GITHUB_REPOSITORY"

_SUFFIX_RE = re.compile(r"^[0-9A-Za-z-]+$")
_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or is invalid."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class StepCommands:
    """Shell commands for the opaque pipeline steps.

    ``None`` means the project has no such step.
    """

    lint: str | None = None
    build: str | None = None
    test: str | None = None
    e2e: str | None = None
    package: str | None = None

    def get(self, name: str) -> str | None:
        match name:
            case "lint":
                return self.lint
            case "build":
                return self.build
            case "test":
                return self.test
            case "e2e":
                return self.e2e
            case "package":
                return self.package
            case _:
                return None


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable per-run configuration, all fallbacks already applied."""

    project_root: Path
    manifest: Path
    repo: str | None
    rc_suffix: str = DEFAULT_RC_SUFFIX
    build_tool_version: str = DEFAULT_BUILD_TOOL_VERSION
    artifact_dir: Path = Path(DEFAULT_ARTIFACT_DIR)
    steps: StepCommands = field(default_factory=StepCommands)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except OSError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_project_file(project_root: Path) -> Result[StrDict, ConfigError]:
    """Load ``relflow.toml`` if present; an absent file yields an empty table."""
    path = project_root / CONFIG_FILE_NAME
    if not path.is_file():
        return Ok({})
    return _parse_toml(path)


def resolve_config(
    *,
    project_root: Path,
    data: Mapping[str, object],
    env: Mapping[str, str],
    manifest_override: Path | None = None,
) -> Result[PipelineConfig, ConfigError]:
    """Merge file data and environment into a PipelineConfig.

    Empty or whitespace-only values fall back to the defaults.
    """
    project: StrDict = get_table(data, "project") or {}
    release: StrDict = get_table(data, "release") or {}
    steps: StrDict = get_table(data, "steps") or {}

    rc_suffix = (
        (env.get(ENV_RC_SUFFIX) or "").strip()
        or get_str(release, "rc_suffix")
        or DEFAULT_RC_SUFFIX
    )
    if not _SUFFIX_RE.match(rc_suffix):
        return Err(
            ConfigError(f"invalid rc suffix: {rc_suffix!r} (allowed: letters, digits, '-')")
        )

    build_tool_version = (
        (env.get(ENV_BUILD_TOOL_VERSION) or "").strip()
        or get_str(release, "build_tool_version")
        or DEFAULT_BUILD_TOOL_VERSION
    )

    repo = (env.get(ENV_REPOSITORY) or "").strip() or get_str(project, "repo")
    if repo is not None and not _REPO_RE.match(repo):
        return Err(ConfigError(f"invalid repository slug: {repo!r} (expected owner/name)"))

    if manifest_override is not None:
        manifest = manifest_override
    else:
        manifest = Path(get_str(project, "manifest") or DEFAULT_MANIFEST)
    if not manifest.is_absolute():
        manifest = project_root / manifest

    artifact_dir = Path(get_str(release, "artifact_dir") or DEFAULT_ARTIFACT_DIR)
    if not artifact_dir.is_absolute():
        artifact_dir = project_root / artifact_dir

    return Ok(
        PipelineConfig(
            project_root=project_root,
            manifest=manifest,
            repo=repo,
            rc_suffix=rc_suffix,
            build_tool_version=build_tool_version,
            artifact_dir=artifact_dir,
            steps=StepCommands(
                lint=get_str(steps, "lint"),
                build=get_str(steps, "build"),
                test=get_str(steps, "test"),
                e2e=get_str(steps, "e2e"),
                package=get_str(steps, "package"),
            ),
        )
    )


def load_config(
    project_root: Path,
    *,
    env: Mapping[str, str],
    manifest_override: Path | None = None,
) -> Result[PipelineConfig, ConfigError]:
    """Load ``relflow.toml`` (if any) and resolve it against ``env``."""
    data = load_project_file(project_root)
    if isinstance(data, Err):
        return data
    return resolve_config(
        project_root=project_root,
        data=data.value,
        env=env,
        manifest_override=manifest_override,
    )
