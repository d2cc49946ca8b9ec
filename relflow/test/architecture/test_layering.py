from __future__ import annotations

import ast
from pathlib import Path


def _relflow_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _iter_sources() -> list[Path]:
    root = _relflow_root()
    files: list[Path] = []
    for path in sorted(root.rglob("*.py")):
        rel = path.relative_to(root)
        if rel.parts[0] == "test" or "__pycache__" in rel.parts:
            continue
        files.append(path)
    return files


def _read_tree(path: Path) -> ast.AST:
    return ast.parse(path.read_text(encoding="utf-8"), filename=str(path))


def _imports(path: Path) -> list[tuple[str, int]]:
    found: list[tuple[str, int]] = []
    for node in ast.walk(_read_tree(path)):
        if isinstance(node, ast.Import):
            found.extend((alias.name, node.lineno) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and not node.level and node.module is not None:
            found.append((node.module, node.lineno))
    return found


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(prefix + ".")


def _release_layer(rel: Path) -> str | None:
    parts = rel.parts
    if len(parts) < 2 or parts[0] != "release":
        return None
    if parts[1] in {"domain", "resolve", "flow", "view", "infra"}:
        return parts[1]
    return None


def test_release_layers_only_depend_on_allowed_directions() -> None:
    rules: dict[str, tuple[str, ...]] = {
        "domain": (
            "relflow.release.resolve",
            "relflow.release.flow",
            "relflow.release.view",
            "relflow.release.infra",
            "relflow.cli",
            "typer",
            "rich",
        ),
        "resolve": ("relflow.release.flow", "relflow.release.view", "relflow.cli", "typer", "rich"),
        "flow": ("relflow.release.view", "relflow.release.infra", "relflow.cli", "typer", "rich"),
        "view": ("relflow.release.resolve", "relflow.release.infra", "relflow.cli", "typer"),
        "infra": (
            "relflow.release.flow",
            "relflow.release.resolve",
            "relflow.release.view",
            "relflow.cli",
            "typer",
            "rich",
        ),
    }

    root = _relflow_root()
    offenders: list[str] = []
    for path in _iter_sources():
        rel = path.relative_to(root)
        layer = _release_layer(rel)
        if layer is None:
            continue
        for module, line in _imports(path):
            if any(_matches(module, prefix) for prefix in rules[layer]):
                offenders.append(f"{rel}:{line}: forbidden import '{module}' in layer {layer}")

    assert not offenders, "Release layering violations:\n" + "\n".join(offenders)


def test_rich_is_only_imported_by_output() -> None:
    root = _relflow_root()
    offenders = [
        f"{path.relative_to(root)}:{line}"
        for path in _iter_sources()
        if path.relative_to(root).parts[0] != "output"
        for module, line in _imports(path)
        if _matches(module, "rich")
    ]
    assert not offenders, "rich imported outside relflow/output:\n" + "\n".join(offenders)


def test_subprocess_is_only_used_by_platform_process() -> None:
    root = _relflow_root()
    offenders = [
        f"{path.relative_to(root)}:{line}"
        for path in _iter_sources()
        if path.relative_to(root).as_posix() != "platform/process.py"
        for module, line in _imports(path)
        if _matches(module, "subprocess")
    ]
    assert not offenders, "subprocess used outside platform/process.py:\n" + "\n".join(offenders)
