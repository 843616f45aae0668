"""Deterministic node ordering.

A node may only route to nodes that already exist in the flow document, so
nodes are created dependency-first: a node becomes ready once every node it
routes to has been placed. Among ready nodes the selection policy decides
(lexicographically largest by default). Nodes left over by a cycle are
appended in ascending order and no further cycle breaking happens; the emitter
reports the routes that could not be rendered.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from cardflow.core.graph import FlowGraph

# Picks one name out of the (ascending sorted, non-empty) ready set.
ReadyPolicy = Callable[[Sequence[str]], str]


def pick_largest(ready: Sequence[str]) -> str:
    return ready[-1]


def pick_smallest(ready: Sequence[str]) -> str:
    return ready[0]


def resolve_node_order(graph: FlowGraph, *, pick: ReadyPolicy = pick_largest) -> List[str]:
    # indegree = number of in-graph routes still waiting on their target
    indegree: Dict[str, int] = {name: 0 for name in graph.nodes}
    dependents: Dict[str, List[str]] = {}

    for node in graph.nodes.values():
        for route in node.routes:
            if route.target not in graph.nodes:
                continue
            indegree[node.name] += 1
            dependents.setdefault(route.target, []).append(node.name)

    ready = sorted(name for name, count in indegree.items() if count == 0)
    ordered: List[str] = []
    placed: set[str] = set()

    while ready:
        name = pick(ready)
        ready.remove(name)
        ordered.append(name)
        placed.add(name)
        for child in dependents.get(name, []):
            indegree[child] = max(0, indegree[child] - 1)
            if indegree[child] == 0 and child not in placed and child not in ready:
                ready.append(child)
                ready.sort()

    if len(ordered) != len(graph.nodes):
        ordered.extend(sorted(name for name in graph.nodes if name not in placed))

    return ordered
