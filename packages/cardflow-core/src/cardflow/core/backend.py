"""Flow compiler backends.

Emission talks to the flow compiler through a narrow session:

    session = backend.open(flow_id, flow_type)   # scaffold a new document
    session.add_node(request)                     # once per node, in order
    session.finalize()
    text = session.read_result()                  # the scaffold's final text

``CliFlowBackend`` drives the external ``greentic-flow`` binary (blocking,
no retry, any non-zero exit is fatal). ``BuiltinFlowBackend`` renders the same
document shape in-process with PyYAML.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence, Tuple

import yaml

from cardflow.core.exception import ExternalToolError, FlowIOError, SpecError
from cardflow.core.ir import check_flow_name
from cardflow.core.observability import log_event
from cardflow.core.runtime.settings import Settings

log = logging.getLogger("cardflow.core.backend")

RoutingMode = Literal["out", "next", "multi"]


@dataclass(frozen=True)
class Routing:
    mode: RoutingMode
    targets: Tuple[str, ...] = ()

    @classmethod
    def terminal(cls) -> "Routing":
        return cls(mode="out")

    @classmethod
    def next(cls, target: str) -> "Routing":
        return cls(mode="next", targets=(target,))

    @classmethod
    def multi(cls, targets: Sequence[str]) -> "Routing":
        return cls(mode="multi", targets=tuple(targets))

    def cli_args(self) -> List[str]:
        if self.mode == "out":
            return ["--routing-out"]
        if self.mode == "next":
            return ["--routing-next", self.targets[0]]
        return ["--routing-multi-to", ",".join(self.targets)]

    def as_yaml(self) -> Any:
        if self.mode == "out":
            return "out"
        return [{"to": t} for t in self.targets]


@dataclass(frozen=True)
class AddNodeRequest:
    node_id: str
    component: str
    operation: str
    payload: Dict[str, Any]
    routing: Routing
    allow_cycles: bool = True

    def payload_json(self) -> str:
        return json.dumps(self.payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class FlowSession(Protocol):
    def add_node(self, request: AddNodeRequest) -> None:
        ...

    def finalize(self) -> None:
        ...

    def read_result(self) -> str:
        ...


class FlowBackend(Protocol):
    def open(self, flow_id: str, flow_type: str) -> FlowSession:
        ...


# ---------------------------------------------------------------------------
# External binary
# ---------------------------------------------------------------------------


class CliFlowBackend:
    """Scaffold and mutate flow documents with the external flow compiler."""

    def __init__(self, *, work_dir: Path, flow_bin: str = "greentic-flow", settings: Optional[Settings] = None):
        self.work_dir = Path(work_dir)
        self.flow_bin = flow_bin
        self.settings = settings or Settings()

    def run(self, args: Sequence[str]) -> None:
        cmd = [self.flow_bin, *[str(a) for a in args]]
        log_event(log, settings=self.settings, level=logging.DEBUG, event="flow_tool_start", command=cmd[:2])
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ExternalToolError(cmd, None, str(e)) from e
        log_event(log, settings=self.settings, level=logging.DEBUG, event="flow_tool_exit", command=cmd[:2], exit_code=proc.returncode)
        if proc.returncode != 0:
            raise ExternalToolError(cmd, proc.returncode, (proc.stderr or "").strip())

    def open(self, flow_id: str, flow_type: str) -> "CliFlowSession":
        check_flow_name(flow_id)
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FlowIOError(f"failed to create {self.work_dir}: {e}") from e
        path = self.work_dir / f"{flow_id}.flow.yaml"
        self.run(["new", "--flow", str(path), "--id", flow_id, "--type", flow_type, "--force"])
        return CliFlowSession(self, path)


class CliFlowSession:
    def __init__(self, backend: CliFlowBackend, path: Path):
        self.backend = backend
        self.path = path

    def add_node(self, request: AddNodeRequest) -> None:
        args = [
            "add-step",
            "--flow",
            str(self.path),
            "--node-id",
            request.node_id,
            "--component",
            request.component,
            "--operation",
            request.operation,
            "--payload",
            request.payload_json(),
        ]
        if request.allow_cycles:
            args.append("--allow-cycles")
        args.extend(request.routing.cli_args())
        self.backend.run(args)

    def finalize(self) -> None:
        if not self.path.is_file():
            raise FlowIOError(f"flow compiler did not produce {self.path}")

    def read_result(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8").rstrip()
        except OSError as e:
            raise FlowIOError(f"failed to read {self.path}: {e}") from e


# ---------------------------------------------------------------------------
# In-process rendering
# ---------------------------------------------------------------------------


class BuiltinFlowBackend:
    def open(self, flow_id: str, flow_type: str) -> "BuiltinFlowSession":
        return BuiltinFlowSession(flow_id, flow_type)


@dataclass
class BuiltinFlowSession:
    flow_id: str
    flow_type: str
    nodes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    _text: Optional[str] = None

    def add_node(self, request: AddNodeRequest) -> None:
        if request.node_id in self.nodes:
            raise ValueError(f"node {request.node_id} already exists in flow {self.flow_id}")
        missing = [t for t in request.routing.targets if t not in self.nodes]
        if missing and not request.allow_cycles:
            raise ValueError(f"node {request.node_id} routes to unknown nodes: {', '.join(missing)}")
        self.nodes[request.node_id] = {
            request.operation: request.payload,
            "routing": request.routing.as_yaml(),
        }

    def finalize(self) -> None:
        doc = {"id": self.flow_id, "type": self.flow_type, "nodes": self.nodes}
        self._text = yaml.safe_dump(doc, sort_keys=False, default_flow_style=False, allow_unicode=True)

    def read_result(self) -> str:
        if self._text is None:
            raise RuntimeError("read_result() called before finalize()")
        return self._text.rstrip()


def make_backend(settings: Settings, *, work_dir: Path) -> FlowBackend:
    name = (settings.backend or "cli").lower()
    if name == "cli":
        return CliFlowBackend(work_dir=work_dir, flow_bin=settings.flow_bin, settings=settings)
    if name == "builtin":
        return BuiltinFlowBackend()
    raise SpecError(f"Unsupported flow backend: {settings.backend}")
