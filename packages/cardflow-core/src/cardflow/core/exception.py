"""Centralized customized exceptions for cardflow.

All project-specific exceptions live in this module (enforced at import time
by ``cardflow.core._architecture_guard``). Internal code should import them
explicitly:

    from cardflow.core.exception import StrictModeError
"""

from __future__ import annotations

from typing import Any, Sequence

__all__ = [
    "SpecError",
    "StrictModeError",
    "MarkerError",
    "ExternalToolError",
    "FlowIOError",
    "PromptNodeError",
]


class SpecError(ValueError):
    """Raised when a scan/generate spec is invalid (schema or semantic)."""


class StrictModeError(ValueError):
    """Raised when strict mode promotes a recoverable condition into a failure."""

    def __init__(self, kind: Any, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class MarkerError(ValueError):
    """Raised when a flow document carries a malformed GENERATED marker pair."""

    def __init__(self, message: str, *, path: str | None = None):
        if path:
            message = f"{path}: {message}"
        super().__init__(message)
        self.path = path


class ExternalToolError(RuntimeError):
    """Raised when the flow compiler cannot be started or exits non-zero."""

    def __init__(self, command: Sequence[str], returncode: int | None, detail: str = ""):
        cmd = " ".join(str(x) for x in command)
        if returncode is None:
            msg = f"failed to run {cmd}"
        else:
            msg = f"flow compiler command failed (exit code {returncode}): {cmd}"
        if detail:
            msg = f"{msg}\n{detail}"
        super().__init__(msg)
        self.command = list(command)
        self.returncode = returncode


class FlowIOError(RuntimeError):
    """Raised when a flow document, sidecar or manifest cannot be read or written."""


class PromptNodeError(ValueError):
    """Raised when the prompt-routing node cannot be placed first in the primary flow."""
