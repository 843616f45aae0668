"""Normalized records produced by the card scanner.

A scan yields one ``CardDoc`` per recognized card. The grouper partitions
them into ``FlowGroup``s, after which the docs are no longer referenced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Literal, Optional

from cardflow.core.exception import SpecError

RouteKind = Literal["step", "card_id"]


def check_flow_name(flow_name: str) -> str:
    """Return flow_name if it can be used as a single file name component."""
    if (
        not flow_name
        or flow_name in {".", ".."}
        or any(ch in flow_name for ch in ("/", "\\", "\0"))
    ):
        raise SpecError(f"flow name {flow_name!r} is not a single path component")
    return flow_name


@dataclass(frozen=True)
class RouteTarget:
    """Where an action routes: a named step (``data.step``) or a card (``data.cardId``)."""

    kind: RouteKind
    name: str

    @classmethod
    def step(cls, name: str) -> "RouteTarget":
        return cls(kind="step", name=name)

    @classmethod
    def card_id(cls, name: str) -> "RouteTarget":
        return cls(kind="card_id", name=name)

    def as_dict(self) -> dict:
        return {"kind": self.kind, "name": self.name}


@dataclass(frozen=True)
class CardAction:
    action_type: str
    title: Optional[str] = None
    target: Optional[RouteTarget] = None
    data: Any = None

    def as_dict(self) -> dict:
        return {
            "action_type": self.action_type,
            "title": self.title,
            "target": self.target.as_dict() if self.target else None,
            "data": self.data,
        }


@dataclass
class CardDoc:
    rel_path: str
    abs_path: Path
    card_id: str
    flow_name: str
    actions: List[CardAction] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "rel_path": self.rel_path,
            "abs_path": str(self.abs_path),
            "card_id": self.card_id,
            "flow_name": self.flow_name,
            "actions": [a.as_dict() for a in self.actions],
        }


@dataclass
class FlowGroup:
    flow_name: str
    cards: List[CardDoc] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"flow_name": self.flow_name, "cards": [c.as_dict() for c in self.cards]}
