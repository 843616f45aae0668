from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from cardflow.core.diagnostics import FlowWarning, WarningCollector, WarningKind
from cardflow.core.ir import CardAction, FlowGroup

log = logging.getLogger("cardflow.core.graph")


@dataclass(frozen=True)
class RouteEdge:
    key: str
    target: str


@dataclass(frozen=True)
class FlowNode:
    name: str
    card_path: Optional[str] = None
    routes: Tuple[RouteEdge, ...] = ()
    stub: bool = False


@dataclass(frozen=True)
class FlowGraph:
    flow_name: str
    nodes: Mapping[str, FlowNode]
    warnings: Tuple[FlowWarning, ...] = field(default=())

    def node_names(self) -> List[str]:
        return sorted(self.nodes)

    def entry_node(self) -> Optional[str]:
        """First non-stub node by name, used for summaries."""
        for name in self.node_names():
            if not self.nodes[name].stub:
                return name
        return None


def route_key_for_action(action: CardAction, index: int) -> str:
    """Target name, else action title, else ``action-<n>`` (1-based position)."""
    if action.target is not None and action.target.name:
        return action.target.name
    if action.title:
        return action.title
    return f"action-{index + 1}"


def _unique_key(key: str, used: set[str]) -> str:
    suffix = 2
    while f"{key}-{suffix}" in used:
        suffix += 1
    return f"{key}-{suffix}"


def build_flow_graph(group: FlowGroup, strict: bool = False, *, asset_prefix: str = "assets/cards") -> FlowGraph:
    """Turn one flow's cards into a node graph.

    Unresolved targets become stub nodes (lenient) or abort the build (strict).
    """
    diag = WarningCollector(strict=strict, logger=log)
    prefix = asset_prefix.rstrip("/")

    nodes: Dict[str, FlowNode] = {}
    routes: Dict[str, List[RouteEdge]] = {}

    for card in group.cards:
        if card.card_id in nodes:
            continue
        card_path = f"{prefix}/{card.rel_path}" if prefix else card.rel_path
        nodes[card.card_id] = FlowNode(name=card.card_id, card_path=card_path)
        routes[card.card_id] = []

    for card in group.cards:
        used: set[str] = set()
        out = routes[card.card_id]

        for index, action in enumerate(card.actions):
            if action.target is None:
                continue
            target = action.target.name

            if target not in nodes:
                diag.warn(
                    WarningKind.MISSING_ROUTE_TARGET,
                    f"missing target {target} referenced from card {card.card_id} in flow {group.flow_name}; creating stub",
                )
                nodes[target] = FlowNode(name=target, stub=True)
                routes[target] = []

            key = route_key_for_action(action, index)
            if key in used:
                renamed = _unique_key(key, used)
                diag.warn(
                    WarningKind.DUPLICATE_ROUTE_KEY,
                    f"duplicate route key {key} in card {card.card_id}; renamed to {renamed}",
                )
                key = renamed
            used.add(key)
            out.append(RouteEdge(key=key, target=target))

    frozen = {
        name: FlowNode(name=node.name, card_path=node.card_path, routes=tuple(routes[name]), stub=node.stub)
        for name, node in nodes.items()
    }
    return FlowGraph(
        flow_name=group.flow_name,
        nodes=MappingProxyType(frozen),
        warnings=tuple(diag.warnings),
    )
