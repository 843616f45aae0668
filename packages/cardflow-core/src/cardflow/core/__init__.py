"""Cardflow core package.

Public entrypoints:
- cardflow.core.api: stable API surface for embedding and custom backends
- cardflow.core.workspace.generate: compile a cards directory programmatically

Internal modules may change without notice.
"""

from __future__ import annotations

# Layout enforcement (default ON; set CARDFLOW_STRICT_ARCH=0 to disable).
from cardflow.core._architecture_guard import assert_architecture as _assert_architecture

_assert_architecture()

from cardflow.core.workspace import generate

__all__ = ["generate"]
