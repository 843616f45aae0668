from __future__ import annotations

from cardflow.core.graph import FlowGraph, FlowNode, RouteEdge
from cardflow.core.ordering import pick_largest, pick_smallest, resolve_node_order


def _graph(edges, extra=()):
    names = set(edges) | set(extra)
    for targets in edges.values():
        names.update(targets)
    nodes = {
        name: FlowNode(
            name=name,
            card_path=f"assets/cards/{name}.json",
            routes=tuple(RouteEdge(key=t, target=t) for t in edges.get(name, ())),
        )
        for name in names
    }
    return FlowGraph(flow_name="demo", nodes=nodes)


def test_chain_places_targets_before_referrers():
    graph = _graph({"A": ["B"], "B": ["C"]})
    assert resolve_node_order(graph) == ["C", "B", "A"]


def test_independent_nodes_take_largest_first():
    graph = _graph({}, extra=["A", "B", "C"])
    assert resolve_node_order(graph) == ["C", "B", "A"]
    assert resolve_node_order(graph, pick=pick_smallest) == ["A", "B", "C"]


def test_diamond_order_is_pinned():
    graph = _graph({"A": ["B", "C"], "B": ["D"], "C": ["D"]})
    assert resolve_node_order(graph) == ["D", "C", "B", "A"]
    assert resolve_node_order(graph, pick=pick_smallest) == ["D", "B", "C", "A"]


def test_two_cycle_appends_leftovers_ascending():
    graph = _graph({"A": ["B"], "B": ["A"]})
    assert resolve_node_order(graph) == ["A", "B"]


def test_cycle_after_acyclic_part():
    graph = _graph({"A": ["B"], "B": ["A"], "D": ["C"]})
    assert resolve_node_order(graph) == ["C", "D", "A", "B"]


def test_self_loop_is_left_over():
    graph = _graph({"A": ["A"], "B": []})
    assert resolve_node_order(graph) == ["B", "A"]


def test_routes_outside_graph_are_ignored():
    nodes = {
        "A": FlowNode(name="A", routes=(RouteEdge(key="gone", target="gone"),)),
        "B": FlowNode(name="B"),
    }
    graph = FlowGraph(flow_name="demo", nodes=nodes)
    assert resolve_node_order(graph) == ["B", "A"]


def test_order_is_deterministic():
    edges = {"n1": ["n2", "n3"], "n2": ["n4"], "n3": ["n4"], "n5": ["n1"], "n6": []}
    first = resolve_node_order(_graph(edges))
    for _ in range(5):
        assert resolve_node_order(_graph(edges)) == first
    assert sorted(first) == ["n1", "n2", "n3", "n4", "n5", "n6"]


def test_default_policy_is_largest():
    assert pick_largest(["a", "b", "c"]) == "c"
    assert pick_smallest(["a", "b", "c"]) == "a"
