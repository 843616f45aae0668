from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from cardflow.core.backend import AddNodeRequest, FlowBackend, Routing
from cardflow.core.diagnostics import FlowWarning, WarningCollector, WarningKind
from cardflow.core.exception import FlowIOError
from cardflow.core.graph import FlowGraph, FlowNode
from cardflow.core.ir import check_flow_name
from cardflow.core.merge import merge_flow_document, wrap_generated
from cardflow.core.observability import log_event
from cardflow.core.ordering import ReadyPolicy, pick_largest, resolve_node_order
from cardflow.core.runtime.settings import Settings
from cardflow.core.spec import ComponentSourceSpec, NodeResolveSpec, ResolveSidecarSpec

log = logging.getLogger("cardflow.core.emit")

FLOWS_DIR = "flows"
FLOW_SUFFIX = ".ygtc"
PRIMARY_FLOW_FILE = "main.ygtc"
CARD_OPERATION = "card"
STUB_CARD_PATH = "TODO"


@dataclass
class GeneratedFlow:
    text: str
    order: List[str]
    warnings: List[FlowWarning] = field(default_factory=list)


@dataclass
class EmitResult:
    path: Path
    order: List[str]
    warnings: List[FlowWarning] = field(default_factory=list)


def flow_file_name(flow_name: str, *, primary: bool = False) -> str:
    if primary:
        return PRIMARY_FLOW_FILE
    return f"{check_flow_name(flow_name)}{FLOW_SUFFIX}"


def build_card_payload(node_id: str, card_path: str, needs_interaction: bool) -> Dict[str, Any]:
    return {
        "card_source": "asset",
        "card_spec": {"asset_path": card_path},
        "envelope": {},
        "interaction": {
            "action_id": "action-1",
            "card_instance_id": node_id,
            "interaction_type": "Submit",
            "raw_inputs": {},
            "enabled": needs_interaction,
        },
        "mode": "renderAndValidate",
        "node_id": node_id,
        "payload": {},
        "session": {},
        "state": {},
        "validation_mode": "warn",
    }


def partition_routes(node: FlowNode, created: set[str]) -> Tuple[List[str], List[str]]:
    """Split route targets into renderable (already created) and skipped, keeping edge order."""
    routes: List[str] = []
    skipped: List[str] = []
    for edge in node.routes:
        (routes if edge.target in created else skipped).append(edge.target)
    return routes, skipped


def routing_for(routes: Sequence[str]) -> Routing:
    if not routes:
        return Routing.terminal()
    if len(routes) == 1:
        return Routing.next(routes[0])
    return Routing.multi(routes)


def render_generated_flow(
    graph: FlowGraph,
    backend: FlowBackend,
    *,
    strict: bool = False,
    settings: Optional[Settings] = None,
    order: Optional[Sequence[str]] = None,
    pick: ReadyPolicy = pick_largest,
) -> GeneratedFlow:
    """Add every node to a fresh scaffold in creation order and return its text.

    A route can only be rendered when its target was created earlier in the
    same pass; other routes are ordering conflicts.
    """
    settings = settings or Settings()
    diag = WarningCollector(strict=strict, logger=log)
    node_order = list(order) if order is not None else resolve_node_order(graph, pick=pick)

    session = backend.open(graph.flow_name, settings.flow_type)
    created: set[str] = set()

    for node_id in node_order:
        node = graph.nodes[node_id]
        routes, skipped = partition_routes(node, created)
        for target in skipped:
            diag.warn(
                WarningKind.ORDERING_CONFLICT,
                f"routing from {node_id} to {target} omitted due to ordering; check for cycles",
            )
        if skipped and not routes:
            diag.warn(
                WarningKind.MISSING_ROUTE_TARGET,
                f"every route of {node_id} was omitted; emitting {node_id} as terminal",
            )

        card_path = node.card_path
        if card_path is None:
            diag.warn(WarningKind.MISSING_ROUTE_TARGET, f"stub node {node_id} emitted without card_path")
            card_path = STUB_CARD_PATH

        session.add_node(
            AddNodeRequest(
                node_id=node_id,
                component=settings.component_ref,
                operation=CARD_OPERATION,
                payload=build_card_payload(node_id, card_path, bool(node.routes)),
                routing=routing_for(routes),
            )
        )
        created.add(node_id)

    session.finalize()
    return GeneratedFlow(text=session.read_result(), order=node_order, warnings=diag.warnings)


def _read_optional(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise FlowIOError(f"failed to read {path}: {e}") from e


def _write(path: Path, contents: str) -> None:
    try:
        path.write_text(contents, encoding="utf-8")
    except OSError as e:
        raise FlowIOError(f"failed to write {path}: {e}") from e


def emit_flow(
    graph: FlowGraph,
    workspace_root: Path,
    *,
    backend: FlowBackend,
    strict: bool = False,
    primary: bool = False,
    file_name: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> EmitResult:
    """Generate one flow and merge it into ``<workspace>/flows/<file>``."""
    settings = settings or Settings()
    flows_dir = Path(workspace_root) / FLOWS_DIR
    try:
        flows_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FlowIOError(f"failed to create {flows_dir}: {e}") from e

    path = flows_dir / (file_name or flow_file_name(graph.flow_name, primary=primary))
    log_event(log, settings=settings, level=logging.INFO, event="flow_emit_start", flow=graph.flow_name, path=path, primary=primary)

    generated = render_generated_flow(graph, backend, strict=strict, settings=settings)
    existing = _read_optional(path)
    contents = merge_flow_document(existing, wrap_generated(generated.text), primary=primary, path=str(path))
    _write(path, contents)

    log_event(
        log,
        settings=settings,
        level=logging.INFO,
        event="flow_emit_end",
        flow=graph.flow_name,
        nodes=len(generated.order),
        warnings=len(generated.warnings),
    )
    return EmitResult(path=path, order=generated.order, warnings=generated.warnings)


# ---------------------------------------------------------------------------
# Resolve sidecar
# ---------------------------------------------------------------------------


def sidecar_path(flow_path: Path) -> Path:
    return flow_path.with_name(f"{flow_path.name}.resolve.json")


def _local_component_path(flow_path: Path, wasm: str) -> str:
    wasm_abs = Path(wasm) if Path(wasm).is_absolute() else Path.cwd() / wasm
    flow_dir = flow_path.parent if flow_path.parent.is_absolute() else Path.cwd() / flow_path.parent
    try:
        rel = os.path.relpath(wasm_abs, flow_dir)
    except ValueError:
        # different drives on Windows
        rel = str(wasm_abs)
    return Path(rel).as_posix()


def component_source(flow_path: Path, settings: Settings) -> ComponentSourceSpec:
    if settings.component_wasm:
        return ComponentSourceSpec(kind="local", path=f"file://{_local_component_path(flow_path, settings.component_wasm)}")
    return ComponentSourceSpec(kind="oci", ref=settings.component_ref)


def write_resolve_sidecar(flow_path: Path, graph: FlowGraph, *, settings: Optional[Settings] = None) -> Path:
    """Record, per node, where the executing component comes from."""
    settings = settings or Settings()
    source = component_source(flow_path, settings)
    sidecar = ResolveSidecarSpec(
        flow=flow_path.name,
        nodes={name: NodeResolveSpec(source=source) for name in graph.node_names()},
    )
    path = sidecar_path(flow_path)
    _write(path, sidecar.model_dump_json(indent=2, exclude_none=True))

    summary = flow_path.with_name(f"{flow_path.name}.resolve.summary.json")
    if summary.exists():
        try:
            summary.unlink()
        except OSError as e:
            raise FlowIOError(f"failed to remove stale {summary}: {e}") from e
    return path
