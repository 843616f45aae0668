from __future__ import annotations

import json
from pathlib import Path

import pytest

from cardflow.core.backend import BuiltinFlowBackend
from cardflow.core.diagnostics import WarningKind
from cardflow.core.emit import (
    STUB_CARD_PATH,
    build_card_payload,
    flow_file_name,
    emit_flow,
    render_generated_flow,
    sidecar_path,
    write_resolve_sidecar,
)
from cardflow.core.exception import SpecError, StrictModeError
from cardflow.core.graph import FlowGraph, FlowNode, RouteEdge, build_flow_graph
from cardflow.core.ir import CardAction, CardDoc, FlowGroup, RouteTarget
from cardflow.core.merge import BEGIN_MARKER, DEVELOPER_HEADER, END_MARKER, PRIMARY_DEVELOPER_HEADER, parse_document
from cardflow.core.runtime.settings import DEFAULT_COMPONENT_REF, Settings


def _graph(edges, flow="demo", stubs=()):
    names = set(edges) | set(stubs)
    for targets in edges.values():
        names.update(targets)
    nodes = {
        name: FlowNode(
            name=name,
            card_path=None if name in stubs else f"assets/cards/{flow}/{name}.json",
            routes=tuple(RouteEdge(key=t, target=t) for t in edges.get(name, ())),
            stub=name in stubs,
        )
        for name in names
    }
    return FlowGraph(flow_name=flow, nodes=nodes)


def _routing(backend):
    return {r.node_id: (r.routing.mode, r.routing.targets) for r in backend.requests}


def test_chain_directives(recording_backend):
    out = render_generated_flow(_graph({"A": ["B"], "B": ["C"]}), recording_backend)

    assert out.order == ["C", "B", "A"]
    assert [r.node_id for r in recording_backend.requests] == ["C", "B", "A"]
    assert _routing(recording_backend) == {
        "A": ("next", ("B",)),
        "B": ("next", ("C",)),
        "C": ("out", ()),
    }
    assert out.warnings == []
    assert recording_backend.sessions[0].finalized is True
    assert recording_backend.sessions[0].flow_type == "messaging"


def test_multi_route_keeps_discovery_order(recording_backend):
    render_generated_flow(_graph({"N": ["X", "Y", "Z"]}), recording_backend)

    request = recording_backend.requests[-1]
    assert request.node_id == "N"
    assert request.routing.targets == ("X", "Y", "Z")
    assert request.routing.cli_args() == ["--routing-multi-to", "X,Y,Z"]


def test_multi_route_is_not_resorted(recording_backend):
    render_generated_flow(_graph({"N": ["Z", "X", "Y"]}), recording_backend)
    assert recording_backend.requests[-1].routing.targets == ("Z", "X", "Y")


def test_request_carries_component_and_payload(recording_backend):
    render_generated_flow(_graph({"A": ["B"]}), recording_backend)

    by_id = {r.node_id: r for r in recording_backend.requests}
    a = by_id["A"]
    assert a.component == DEFAULT_COMPONENT_REF
    assert a.operation == "card"
    assert a.allow_cycles is True
    assert a.payload["card_spec"] == {"asset_path": "assets/cards/demo/A.json"}
    assert a.payload["interaction"]["enabled"] is True
    assert by_id["B"].payload["interaction"]["enabled"] is False


def test_card_payload_shape():
    payload = build_card_payload("welcome", "assets/cards/welcome.json", False)
    assert payload["node_id"] == "welcome"
    assert payload["card_source"] == "asset"
    assert payload["validation_mode"] == "warn"
    assert payload["envelope"] == {} and payload["session"] == {} and payload["state"] == {}
    assert payload["interaction"]["card_instance_id"] == "welcome"


def test_stub_node_gets_placeholder_path(recording_backend):
    doc = CardDoc(
        rel_path="demo/a.json",
        abs_path=Path("/cards/demo/a.json"),
        card_id="a",
        flow_name="demo",
        actions=[CardAction(action_type="Action.Submit", target=RouteTarget.step("ghost"))],
    )
    graph = build_flow_graph(FlowGroup(flow_name="demo", cards=[doc]))
    out = render_generated_flow(graph, recording_backend)

    by_id = {r.node_id: r for r in recording_backend.requests}
    assert by_id["ghost"].payload["card_spec"]["asset_path"] == STUB_CARD_PATH
    assert by_id["a"].routing.targets == ("ghost",)
    assert [w.kind for w in out.warnings] == [WarningKind.MISSING_ROUTE_TARGET]


def test_stub_node_is_fatal_in_strict(recording_backend):
    graph = _graph({"a": ["ghost"]}, stubs=["ghost"])
    with pytest.raises(StrictModeError):
        render_generated_flow(graph, recording_backend, strict=True)


def test_cycle_lenient_omits_exactly_one_edge(recording_backend):
    out = render_generated_flow(_graph({"A": ["B"], "B": ["A"]}), recording_backend)

    conflicts = [w for w in out.warnings if w.kind == WarningKind.ORDERING_CONFLICT]
    assert len(conflicts) == 1
    assert "from A to B" in conflicts[0].message
    assert _routing(recording_backend) == {"A": ("out", ()), "B": ("next", ("A",))}
    # the terminal A only looks terminal; that is reported too
    assert any(w.kind == WarningKind.MISSING_ROUTE_TARGET and "A" in w.message for w in out.warnings)


def test_cycle_strict_never_succeeds(recording_backend):
    with pytest.raises(StrictModeError) as ei:
        render_generated_flow(_graph({"A": ["B"], "B": ["A"]}), recording_backend, strict=True)
    assert ei.value.kind == WarningKind.ORDERING_CONFLICT


def test_explicit_order_overrides_policy(recording_backend):
    out = render_generated_flow(_graph({"A": ["B"]}), recording_backend, order=["A", "B"])
    assert out.order == ["A", "B"]
    assert [w.kind for w in out.warnings].count(WarningKind.ORDERING_CONFLICT) == 1


def test_emit_creates_new_document(temp_dir, settings):
    result = emit_flow(_graph({"A": ["B"]}), temp_dir, backend=BuiltinFlowBackend(), settings=settings)

    assert result.path == temp_dir / "flows" / "demo.ygtc"
    text = result.path.read_text(encoding="utf-8")
    assert text.startswith(BEGIN_MARKER + "\n")
    assert text.endswith(f"{END_MARKER}\n\n{DEVELOPER_HEADER}\n")
    assert result.order == ["B", "A"]


def test_regeneration_is_idempotent_in_strict(temp_dir, settings):
    graph = _graph({"A": ["B"], "B": ["C"]})
    first = emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), strict=True, settings=settings)
    text1 = first.path.read_text(encoding="utf-8")
    emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), strict=True, settings=settings)
    text2 = first.path.read_text(encoding="utf-8")

    assert parse_document(text1).generated == parse_document(text2).generated
    assert text1 == text2


def test_developer_region_survives_regeneration(temp_dir, settings):
    graph = _graph({"A": []})
    path = emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), settings=settings).path
    custom = "custom:\n  keep: me\n\n# and this comment\n"
    path.write_text("# header written by hand\n" + path.read_text(encoding="utf-8") + custom, encoding="utf-8")

    for _ in range(3):
        emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), settings=settings)

    text = path.read_text(encoding="utf-8")
    assert text.startswith("# header written by hand\n" + BEGIN_MARKER)
    assert text.endswith(custom)
    assert text.count(custom) == 1


def test_existing_document_without_markers_is_kept_below(temp_dir, settings):
    path = temp_dir / "flows" / "demo.ygtc"
    path.parent.mkdir(parents=True)
    path.write_text("legacy: true\n", encoding="utf-8")

    emit_flow(_graph({"A": []}), temp_dir, backend=BuiltinFlowBackend(), settings=settings)

    text = path.read_text(encoding="utf-8")
    assert text.startswith(BEGIN_MARKER)
    assert text.endswith(f"{END_MARKER}\n\nlegacy: true\n")


def test_primary_document_recomments_developer_region(temp_dir, settings):
    graph = _graph({"A": []}, flow="main")
    path = emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), primary=True, settings=settings).path
    assert path.name == "main.ygtc"
    assert path.read_text(encoding="utf-8").endswith(PRIMARY_DEVELOPER_HEADER + "\n")

    path.write_text(path.read_text(encoding="utf-8") + "extra: 1\n\nmore: 2\n", encoding="utf-8")
    emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), primary=True, settings=settings)

    text = path.read_text(encoding="utf-8")
    assert text.endswith(f"{PRIMARY_DEVELOPER_HEADER}\n# extra: 1\n#\n# more: 2\n")
    assert "\nextra: 1" not in text


def test_resolve_sidecar_points_at_oci_component(temp_dir, settings):
    graph = _graph({"A": ["B"]})
    flow_path = emit_flow(graph, temp_dir, backend=BuiltinFlowBackend(), settings=settings).path
    stale = flow_path.with_name(flow_path.name + ".resolve.summary.json")
    stale.write_text("{}", encoding="utf-8")

    path = write_resolve_sidecar(flow_path, graph, settings=settings)

    assert path == sidecar_path(flow_path)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["schema_version"] == 1
    assert data["flow"] == "demo.ygtc"
    assert sorted(data["nodes"]) == ["A", "B"]
    assert data["nodes"]["A"]["source"] == {"kind": "oci", "ref": DEFAULT_COMPONENT_REF}
    assert not stale.exists()


def test_resolve_sidecar_prefers_local_wasm(temp_dir):
    wasm = temp_dir / "build" / "component.wasm"
    settings = Settings(component_wasm=str(wasm))
    flow_path = temp_dir / "flows" / "demo.ygtc"
    flow_path.parent.mkdir(parents=True)

    path = write_resolve_sidecar(flow_path, _graph({"A": []}), settings=settings)

    source = json.loads(path.read_text(encoding="utf-8"))["nodes"]["A"]["source"]
    assert source == {"kind": "local", "path": "file://../build/component.wasm"}


def test_flow_file_name_rejects_path_separators():
    assert flow_file_name("billing") == "billing.ygtc"
    assert flow_file_name("../escape", primary=True) == "main.ygtc"
    for bad in ("../escape", "team/onboarding", ".."):
        with pytest.raises(SpecError):
            flow_file_name(bad)
