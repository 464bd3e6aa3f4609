from __future__ import annotations

import ast
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

PACKAGE_ROOT = "brotli_block"

# Layer rank by module prefix (longest prefix wins).
#   0: codec + shared contracts (errors)
#   1: engine (framing, synthetic fragments, block streams)
#   2: facade (one-shot helpers, options spec loader)
# A module may only import modules of the same or a lower rank.
LAYERS: dict[str, int] = {
    "brotli_block.errors": 0,
    "brotli_block.core": 0,
    "brotli_block.engine": 1,
    "brotli_block.block": 2,
    "brotli_block.block_spec": 2,
}


@dataclass(frozen=True)
class ImportEdge:
    src: str
    dst: str
    file: Path
    lineno: int


def _rank(mod: str) -> int | None:
    best: tuple[int, int] | None = None
    for prefix, rank in LAYERS.items():
        if mod == prefix or mod.startswith(prefix + "."):
            if best is None or len(prefix) > best[0]:
                best = (len(prefix), rank)
    return None if best is None else best[1]


def _module_name_from_path(src_dir: Path, py_file: Path) -> str | None:
    try:
        rel = py_file.relative_to(src_dir)
    except ValueError:
        return None

    parts = list(rel.parts)
    if not parts or parts[0] != PACKAGE_ROOT:
        return None

    if py_file.name == "__init__.py":
        parts = parts[:-1]
    else:
        parts[-1] = py_file.stem

    if not parts:
        return None
    return ".".join(parts)


def _resolve_relative(current_mod: str, level: int, module: str | None) -> str | None:
    if level <= 0:
        return module

    base = current_mod.split(".")[:-1]  # package of current module
    if level > len(base):
        return None

    base = base[: len(base) - level + 1]
    if module:
        return ".".join(base + module.split("."))
    return ".".join(base)


def _iter_import_edges(src_dir: Path) -> Iterable[ImportEdge]:
    for py in src_dir.rglob("*.py"):
        mod = _module_name_from_path(src_dir, py)
        if not mod:
            continue

        tree = ast.parse(py.read_text(encoding="utf-8"), filename=str(py))

        # ast.walk: local (function-level) imports count too
        for node in ast.walk(tree):
            if isinstance(node, ast.Import):
                for alias in node.names:
                    if alias.name == PACKAGE_ROOT or alias.name.startswith(PACKAGE_ROOT + "."):
                        yield ImportEdge(src=mod, dst=alias.name, file=py, lineno=node.lineno)

            elif isinstance(node, ast.ImportFrom):
                if node.module is None and node.level == 0:
                    continue
                abs_mod = _resolve_relative(mod, node.level, node.module)
                if abs_mod and (abs_mod == PACKAGE_ROOT or abs_mod.startswith(PACKAGE_ROOT + ".")):
                    yield ImportEdge(src=mod, dst=abs_mod, file=py, lineno=node.lineno)


def test_no_upward_imports() -> None:
    """
    Hard dependency direction:
      facade -> engine -> core
      core   -> must NOT depend on engine / facade
      engine -> must NOT depend on facade
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if not src_dir.is_dir():
        raise AssertionError(f"Expected src/ directory at: {src_dir}")

    violations: list[ImportEdge] = []
    unranked: set[str] = set()

    for edge in _iter_import_edges(src_dir):
        src_rank = _rank(edge.src)
        dst_rank = _rank(edge.dst)
        if src_rank is None:
            unranked.add(edge.src)
            continue
        if dst_rank is None:
            unranked.add(edge.dst)
            continue
        if dst_rank > src_rank:
            violations.append(edge)

    assert not unranked, f"modules without a layer: {sorted(unranked)}"

    if violations:
        lines = ["Forbidden imports detected (lower layer -> higher layer):"]
        for v in sorted(violations, key=lambda e: (str(e.file), e.lineno, e.src, e.dst)):
            lines.append(f"  {v.file}:{v.lineno}  {v.src}  ->  {v.dst}")
        lines.append("")
        lines.append("Fix: move high-level logic out of the lower layer, or invert the dependency.")
        raise AssertionError("\n".join(lines))
