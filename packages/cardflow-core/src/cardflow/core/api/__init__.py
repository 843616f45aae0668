"""Public, stable API surface for cardflow.

If you're embedding the card-to-flow pipeline or writing your own flow
compiler backend, import from **`cardflow.core.api`**.

Everything outside this package is considered internal and may change without
notice, even in minor releases.
"""

from __future__ import annotations

# Flow compiler session contract
from cardflow.core.backend import (
    AddNodeRequest,
    BuiltinFlowBackend,
    CliFlowBackend,
    FlowBackend,
    FlowSession,
    Routing,
    make_backend,
)
# Warnings + diagnostics
from cardflow.core.diagnostics import FlowWarning, WarningCollector, WarningKind, summarize
# Emission + merge
from cardflow.core.emit import emit_flow, render_generated_flow, write_resolve_sidecar
# Common exceptions
from cardflow.core.exception import (
    ExternalToolError,
    FlowIOError,
    MarkerError,
    PromptNodeError,
    SpecError,
    StrictModeError,
)
# Graph + ordering
from cardflow.core.graph import FlowGraph, FlowNode, RouteEdge, build_flow_graph
from cardflow.core.ir import CardAction, CardDoc, FlowGroup, RouteTarget
from cardflow.core.merge import BEGIN_MARKER, END_MARKER, merge_flow_document, parse_document
from cardflow.core.ordering import pick_largest, pick_smallest, resolve_node_order
# Settings
from cardflow.core.runtime.settings import Settings, load_settings
# Scanning
from cardflow.core.scan import group_cards, scan_cards, scan_manifest
# Run specification (Pydantic models)
from cardflow.core.spec import GenerateSpec, ScanSpec
from cardflow.core.workspace import GenerationReport, generate

__all__ = [
    # specs
    "ScanSpec",
    "GenerateSpec",
    "Settings",
    "load_settings",
    # records
    "CardDoc",
    "CardAction",
    "RouteTarget",
    "FlowGroup",
    "FlowGraph",
    "FlowNode",
    "RouteEdge",
    # pipeline
    "scan_cards",
    "group_cards",
    "scan_manifest",
    "build_flow_graph",
    "resolve_node_order",
    "pick_largest",
    "pick_smallest",
    "render_generated_flow",
    "emit_flow",
    "write_resolve_sidecar",
    "generate",
    "GenerationReport",
    # merge
    "BEGIN_MARKER",
    "END_MARKER",
    "parse_document",
    "merge_flow_document",
    # backends
    "FlowBackend",
    "FlowSession",
    "AddNodeRequest",
    "Routing",
    "CliFlowBackend",
    "BuiltinFlowBackend",
    "make_backend",
    # diagnostics
    "FlowWarning",
    "WarningKind",
    "WarningCollector",
    "summarize",
    # exceptions
    "SpecError",
    "StrictModeError",
    "MarkerError",
    "ExternalToolError",
    "FlowIOError",
    "PromptNodeError",
]
