"""Import-time layout check for cardflow.core.

Two placement rules hold across the package:

1) Error types live in `cardflow/core/exception.py`.
2) Pydantic spec models (class names ending in ``Spec``) live in
   `cardflow/core/spec.py`.

A class defined elsewhere that breaks either rule makes the import fail with a
RuntimeError naming the file and the class.
"""

from __future__ import annotations

import ast
import os
from pathlib import Path
from typing import Iterator, List, Tuple

_SKIP_PARTS = {"__pycache__", ".venv", "venv", "build", "dist", "tests", "test"}
_ERROR_BASES = {"BaseException", "Exception"}


def _sources(root: Path) -> Iterator[Path]:
    for path in sorted(root.rglob("*.py")):
        if _SKIP_PARTS & set(path.relative_to(root).parts):
            continue
        yield path


def _base_name(node: ast.expr) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        return _base_name(node.value)
    return None


def _looks_like_error(cls: ast.ClassDef) -> bool:
    for base in cls.bases:
        name = _base_name(base)
        if name and (name in _ERROR_BASES or name.endswith(("Error", "Exception"))):
            return True
    return False


def _violations(path: Path, root: Path) -> Iterator[Tuple[str, str]]:
    try:
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    except (OSError, UnicodeDecodeError, SyntaxError) as e:
        raise RuntimeError(f"[cardflow layout] cannot parse {path}: {e}") from e

    for node in ast.walk(tree):
        if not isinstance(node, ast.ClassDef):
            continue
        if path != root / "exception.py" and _looks_like_error(node):
            yield "exception", node.name
        if path != root / "spec.py" and node.name.endswith("Spec"):
            yield "spec", node.name


def assert_architecture() -> None:
    """Raise RuntimeError when an error or spec class is defined out of place.

    Set CARDFLOW_STRICT_ARCH=0 to skip the check.
    """
    if os.getenv("CARDFLOW_STRICT_ARCH", "1") == "0":
        return

    root = Path(__file__).resolve().parent
    found: List[Tuple[str, str, Path]] = []
    for path in _sources(root):
        found.extend((rule, name, path) for rule, name in _violations(path, root))

    if not found:
        return

    lines = ["cardflow layout check failed:"]
    for rule, name, path in found:
        home = "exception.py" if rule == "exception" else "spec.py"
        lines.append(f"  - {name} defined in {path}; move it to cardflow/core/{home}")
    raise RuntimeError("\n".join(lines))
