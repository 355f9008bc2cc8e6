"""Validate Python layer import boundaries for storylab."""

from __future__ import annotations

import ast
from pathlib import Path

PACKAGE = "storylab"
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_SOURCE_ROOT = PROJECT_ROOT / "src" / PACKAGE
KNOWN_LAYERS = {"adapters", "api", "cli", "core", "domain"}
# Ordering and codec logic stays storage- and transport-agnostic.
RULES: dict[str, set[str]] = {
    "core": {"adapters", "api", "cli"},
    "domain": {"adapters", "api", "cli", "core"},
}


def _layer_for_path(path: Path, source_root: Path) -> str | None:
    try:
        relative = path.relative_to(source_root)
    except ValueError:
        return None
    return relative.parts[0] if relative.parts else None


def _layers_for_module(module_name: str, names: list[str]) -> set[str]:
    if module_name == PACKAGE:
        return {name for name in names if name in KNOWN_LAYERS}
    if not module_name.startswith(f"{PACKAGE}."):
        return set()
    candidate = module_name.split(".")[1]
    return {candidate} if candidate in KNOWN_LAYERS else set()


def _absolute_module(node: ast.ImportFrom, path: Path, source_root: Path) -> str:
    if node.level == 0:
        return node.module or ""
    relative = path.relative_to(source_root)
    package_parts = [PACKAGE, *relative.with_suffix("").parts][:-1]
    if node.level > len(package_parts):
        return ""
    base_parts = package_parts[: len(package_parts) - node.level + 1]
    if node.module:
        base_parts = [*base_parts, *node.module.split(".")]
    return ".".join(base_parts)


def imported_layers(
    node: ast.Import | ast.ImportFrom, path: Path, source_root: Path
) -> set[str]:
    """Return the storylab layers one import statement reaches into."""
    if isinstance(node, ast.Import):
        layers: set[str] = set()
        for alias in node.names:
            layers |= _layers_for_module(alias.name, [])
        return layers
    module_name = _absolute_module(node, path, source_root)
    return _layers_for_module(module_name, [alias.name for alias in node.names])


def check_file(path: Path, source_root: Path = DEFAULT_SOURCE_ROOT) -> list[str]:
    layer = _layer_for_path(path, source_root)
    banned_layers = RULES.get(layer or "", set())
    if not banned_layers:
        return []

    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    violations: list[str] = []
    for node in ast.walk(tree):
        if not isinstance(node, (ast.Import, ast.ImportFrom)):
            continue
        for imported_layer in sorted(imported_layers(node, path, source_root)):
            if imported_layer in banned_layers:
                violations.append(f"{path}: {layer} must not import {PACKAGE}.{imported_layer}")
    return violations


def check_import_boundaries(source_root: Path = DEFAULT_SOURCE_ROOT) -> list[str]:
    violations: list[str] = []
    for path in sorted(source_root.rglob("*.py")):
        violations.extend(check_file(path, source_root))
    return violations


def main() -> None:
    violations = check_import_boundaries()
    if violations:
        raise SystemExit("\n".join(violations))
    print("import boundary checks passed")


if __name__ == "__main__":
    main()
