"""Card scanner and flow grouper.

The scanner walks a cards directory, keeps the JSON documents that look like
Adaptive Cards and normalizes each into a ``CardDoc``:

- card_id:   consistent ``data.cardId`` across actions, else ``greentic.cardId``,
             else the file stem.
- flow_name: consistent ``data.flow`` across actions, else ``greentic.flow``,
             else the first folder (group_by="folder"), else the default flow,
             else "misc" with a warning.

The grouper partitions the docs by flow name, dropping duplicate card ids.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional

from cardflow.core.diagnostics import FlowSummary, FlowWarning, WarningCollector, WarningKind
from cardflow.core.exception import StrictModeError
from cardflow.core.ir import CardAction, CardDoc, FlowGroup, RouteTarget
from cardflow.core.spec import ScanSpec

log = logging.getLogger("cardflow.core.scan")

FALLBACK_FLOW = "misc"


@dataclass
class CardScan:
    cards: List[CardDoc] = field(default_factory=list)
    warnings: List[FlowWarning] = field(default_factory=list)


@dataclass
class FlowGrouping:
    flows: List[FlowGroup] = field(default_factory=list)
    warnings: List[FlowWarning] = field(default_factory=list)


@dataclass
class ScanManifest:
    """Scan + grouping output, persisted as the run manifest."""

    spec: ScanSpec
    flows: List[FlowGroup]
    warnings: List[FlowWarning]
    generated_at: str = field(default_factory=lambda: _utc_now_iso())
    version: int = 1

    @property
    def cards_processed(self) -> int:
        return sum(len(f.cards) for f in self.flows)

    def summaries(self) -> List[FlowSummary]:
        return [FlowSummary(flow_name=f.flow_name, card_count=len(f.cards)) for f in self.flows]

    def as_dict(self) -> dict:
        return {
            "version": self.version,
            "generated_at": self.generated_at,
            "input": {
                "cards_dir": str(self.spec.cards_dir),
                "group_by": self.spec.group_by,
                "default_flow": self.spec.default_flow,
            },
            "flows": [f.as_dict() for f in self.flows],
            "warnings": [w.as_dict() for w in self.warnings],
        }


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _iter_json_files(root: Path) -> Iterator[Path]:
    # sorted walk so diagnostics come out in a stable order
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            if Path(name).suffix.lower() == ".json":
                yield Path(dirpath) / name


def _str_field(obj: Any, key: str) -> Optional[str]:
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    return value if isinstance(value, str) else None


def _is_card(obj: Dict[str, Any]) -> tuple[bool, str]:
    card_type = obj.get("type")
    if isinstance(card_type, str):
        if card_type != "AdaptiveCard":
            return False, f"type={card_type}"
        return True, ""
    if "actions" in obj or "body" in obj:
        return True, ""
    return False, "no type/actions/body"


def _resolve_consistent(values: List[str], label: str, rel_path: str, diag: WarningCollector) -> Optional[str]:
    """Disagreeing values are an identity conflict; the smallest value wins."""
    if not values:
        return None
    unique = sorted(set(values))
    if len(unique) > 1:
        diag.warn(
            WarningKind.IDENTITY_CONFLICT,
            f"inconsistent {label} values in {rel_path}: {', '.join(unique)}",
        )
    return unique[0]


def _first_folder(rel_path: str) -> Optional[str]:
    parts = PurePosixPath(rel_path).parts
    if len(parts) < 2:
        return None
    return parts[0]


def _parse_actions(raw_actions: Any, rel_path: str, diag: WarningCollector) -> tuple[List[CardAction], List[str], List[str]]:
    actions: List[CardAction] = []
    card_ids: List[str] = []
    flow_names: List[str] = []
    if not isinstance(raw_actions, list):
        return actions, card_ids, flow_names

    for raw in raw_actions:
        if not isinstance(raw, dict):
            diag.warn(WarningKind.SHAPE_WARNING, f"ignored non-object action in {rel_path}")
            continue

        data = raw.get("data")
        card_id = _str_field(data, "cardId")
        flow = _str_field(data, "flow")
        step = _str_field(data, "step")
        if card_id is not None:
            card_ids.append(card_id)
        if flow is not None:
            flow_names.append(flow)

        if step is not None:
            target: Optional[RouteTarget] = RouteTarget.step(step)
        elif card_id is not None:
            target = RouteTarget.card_id(card_id)
        else:
            target = None

        actions.append(
            CardAction(
                action_type=_str_field(raw, "type") or "Unknown",
                title=_str_field(raw, "title"),
                target=target,
                data=data,
            )
        )
    return actions, card_ids, flow_names


def _load_json(path: Path, rel_path: str, diag: WarningCollector) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        diag.warn(WarningKind.PARSE_ERROR, f"failed to read {rel_path}: {e}")
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        diag.warn(WarningKind.PARSE_ERROR, f"invalid JSON in {rel_path}: {e}")
        return None


def scan_card_file(path: Path, cards_dir: Path, spec: ScanSpec, diag: WarningCollector) -> Optional[CardDoc]:
    """Parse one file into a CardDoc, or None when it is not a usable card."""
    rel_path = path.relative_to(cards_dir).as_posix()
    obj = _load_json(path, rel_path, diag)
    if obj is None:
        return None
    if not isinstance(obj, dict):
        diag.warn(WarningKind.IGNORED_FILE, f"non-object JSON ignored: {rel_path}")
        return None

    ok, why = _is_card(obj)
    if not ok:
        diag.warn(WarningKind.IGNORED_FILE, f"non-card JSON ignored: {rel_path} ({why})")
        return None

    actions, action_card_ids, action_flows = _parse_actions(obj.get("actions"), rel_path, diag)
    greentic = obj.get("greentic")

    card_id = (
        _resolve_consistent(action_card_ids, "cardId", rel_path, diag)
        or _str_field(greentic, "cardId")
        or PurePosixPath(rel_path).stem
    )

    flow_name = _resolve_consistent(action_flows, "flow", rel_path, diag) or _str_field(greentic, "flow")
    if not flow_name and spec.group_by == "folder":
        flow_name = _first_folder(rel_path)
    if not flow_name and spec.default_flow:
        flow_name = spec.default_flow
    if not flow_name:
        diag.warn(
            WarningKind.MISSING_FLOW_IDENTITY,
            f"flow name missing for {rel_path}; using {FALLBACK_FLOW}",
        )
        flow_name = FALLBACK_FLOW

    return CardDoc(
        rel_path=rel_path,
        abs_path=path,
        card_id=card_id,
        flow_name=flow_name,
        actions=actions,
    )


def scan_cards(spec: ScanSpec) -> CardScan:
    """Walk spec.cards_dir and collect every card, sorted by relative path."""
    cards_dir = Path(spec.cards_dir)
    diag = WarningCollector(strict=spec.strict, logger=log)
    cards: List[CardDoc] = []

    for path in _iter_json_files(cards_dir):
        card = scan_card_file(path, cards_dir, spec, diag)
        if card is not None:
            cards.append(card)

    if not cards:
        msg = f"no Adaptive Card JSON files found in {cards_dir}"
        if spec.strict:
            raise StrictModeError(WarningKind.SHAPE_WARNING, msg)
        diag.warn(WarningKind.SHAPE_WARNING, msg)

    cards.sort(key=lambda c: c.rel_path)
    return CardScan(cards=cards, warnings=diag.warnings)


def group_cards(cards: Iterable[CardDoc], *, strict: bool = False) -> FlowGrouping:
    """Partition cards by flow name; a repeated card id inside a flow is dropped."""
    diag = WarningCollector(strict=strict, logger=log)
    flows: Dict[str, List[CardDoc]] = {}
    seen: Dict[str, Dict[str, str]] = {}

    for card in sorted(cards, key=lambda c: c.rel_path):
        flow_seen = seen.setdefault(card.flow_name, {})
        existing = flow_seen.get(card.card_id)
        if existing is not None:
            diag.warn(
                WarningKind.DUPLICATE_CARD_IDENTITY,
                f"duplicate card_id {card.card_id} in flow {card.flow_name}: {existing} and {card.rel_path}",
            )
            continue
        flow_seen[card.card_id] = card.rel_path
        flows.setdefault(card.flow_name, []).append(card)

    groups = [FlowGroup(flow_name=name, cards=flows[name]) for name in sorted(flows)]
    return FlowGrouping(flows=groups, warnings=diag.warnings)


def scan_manifest(spec: ScanSpec) -> ScanManifest:
    """Scan + group in one call."""
    scan = scan_cards(spec)
    grouping = group_cards(scan.cards, strict=spec.strict)
    log.info("scanned %d cards into %d flows", len(scan.cards), len(grouping.flows))
    return ScanManifest(
        spec=spec,
        flows=grouping.flows,
        warnings=[*scan.warnings, *grouping.warnings],
    )
