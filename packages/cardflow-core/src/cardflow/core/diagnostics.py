from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from cardflow.core.exception import StrictModeError

log = logging.getLogger("cardflow.core.diagnostics")


class WarningKind(str, Enum):
    PARSE_ERROR = "parse_error"
    SHAPE_WARNING = "shape_warning"
    IDENTITY_CONFLICT = "identity_conflict"
    MISSING_FLOW_IDENTITY = "missing_flow_identity"
    MISSING_ROUTE_TARGET = "missing_route_target"
    DUPLICATE_CARD_IDENTITY = "duplicate_card_identity"
    DUPLICATE_ROUTE_KEY = "duplicate_route_key"
    ORDERING_CONFLICT = "ordering_conflict"
    EXTERNAL_TOOL_FAILURE = "external_tool_failure"
    IO_FAILURE = "io_failure"

    # non-card JSON is reported under the shape kind
    IGNORED_FILE = "shape_warning"


# Kinds that abort the run at first occurrence when strict mode is on.
STRICT_KINDS = frozenset(
    {
        WarningKind.PARSE_ERROR,
        WarningKind.IDENTITY_CONFLICT,
        WarningKind.MISSING_FLOW_IDENTITY,
        WarningKind.MISSING_ROUTE_TARGET,
        WarningKind.DUPLICATE_CARD_IDENTITY,
        WarningKind.ORDERING_CONFLICT,
    }
)


@dataclass(frozen=True)
class FlowWarning:
    kind: WarningKind
    message: str

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


class WarningCollector:
    """Accumulates warnings; in strict mode promotable kinds raise instead.

    Warnings are never dropped: everything recorded here ends up in the run
    report and is logged once at WARNING level.
    """

    def __init__(self, *, strict: bool = False, logger: Optional[logging.Logger] = None):
        self.strict = bool(strict)
        self.warnings: List[FlowWarning] = []
        self._log = logger or log

    def warn(self, kind: WarningKind, message: str) -> None:
        if self.strict and kind in STRICT_KINDS:
            raise StrictModeError(kind, message)
        self._log.warning("[%s] %s", kind.value, message)
        self.warnings.append(FlowWarning(kind=kind, message=message))


@dataclass(frozen=True)
class FlowSummary:
    flow_name: str
    card_count: int

    def as_dict(self) -> dict:
        return {"flow_name": self.flow_name, "card_count": self.card_count}


@dataclass
class RunDiagnostics:
    workspace_root: Path
    cards_processed: int = 0
    flows: List[FlowSummary] = field(default_factory=list)
    flow_paths: List[str] = field(default_factory=list)
    warnings_count: int = 0

    def as_dict(self) -> dict:
        return {
            "workspace_root": str(self.workspace_root),
            "cards_processed": self.cards_processed,
            "flows": [f.as_dict() for f in self.flows],
            "flow_paths": list(self.flow_paths),
            "warnings_count": self.warnings_count,
        }


def summarize(diagnostics: RunDiagnostics, warnings: Iterable[FlowWarning]) -> str:
    """Human readable end-of-run summary listing every warning."""
    lines = [
        f"Workspace: {diagnostics.workspace_root}",
        f"Cards processed: {diagnostics.cards_processed}",
        "Flows:",
    ]
    if diagnostics.flows:
        lines.extend(f"  - {f.flow_name} ({f.card_count} cards)" for f in diagnostics.flows)
    else:
        lines.append("  (none)")

    lines.append("Generated flow files:")
    if diagnostics.flow_paths:
        lines.extend(f"  - {p}" for p in diagnostics.flow_paths)
    else:
        lines.append("  (none)")

    lines.append(f"Warnings: {diagnostics.warnings_count}")
    for w in warnings:
        lines.append(f"  - [{w.kind.value}] {w.message}")
    return "\n".join(lines)
