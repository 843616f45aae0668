from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError

from cardflow.core.backend import FlowBackend, make_backend
from cardflow.core.diagnostics import FlowWarning, RunDiagnostics, summarize
from cardflow.core.emit import FLOWS_DIR, PRIMARY_FLOW_FILE, emit_flow, flow_file_name, write_resolve_sidecar
from cardflow.core.exception import FlowIOError, SpecError
from cardflow.core.graph import build_flow_graph
from cardflow.core.ir import check_flow_name
from cardflow.core.observability import log_event
from cardflow.core.prompt import ensure_prompt_node, extend_sidecar_with_prompt
from cardflow.core.runtime.settings import Settings, load_settings
from cardflow.core.scan import ScanManifest, scan_manifest
from cardflow.core.spec import GenerateSpec

log = logging.getLogger("cardflow.core.workspace")


@dataclass
class FlowOutput:
    flow_name: str
    path: Path
    sidecar: Path
    order: List[str]
    entry: Optional[str]
    primary: bool = False

    def as_dict(self) -> dict:
        return {
            "flow_name": self.flow_name,
            "path": str(self.path),
            "sidecar": str(self.sidecar),
            "order": list(self.order),
            "entry": self.entry,
            "primary": self.primary,
        }


@dataclass
class GenerationReport:
    manifest: ScanManifest
    diagnostics: RunDiagnostics
    outputs: List[FlowOutput] = field(default_factory=list)
    warnings: List[FlowWarning] = field(default_factory=list)
    manifest_path: Optional[Path] = None

    def summary(self) -> str:
        return summarize(self.diagnostics, self.warnings)

    def as_dict(self) -> dict:
        return {
            "flows": [o.as_dict() for o in self.outputs],
            "warnings": [w.as_dict() for w in self.warnings],
            "diagnostics": self.diagnostics.as_dict(),
            "manifest_path": str(self.manifest_path) if self.manifest_path else None,
        }


def coerce_generate_spec(raw: GenerateSpec | dict) -> GenerateSpec:
    if isinstance(raw, GenerateSpec):
        return raw
    try:
        return GenerateSpec.model_validate(raw)
    except ValidationError as e:
        raise SpecError(str(e)) from e


def default_flow_file(out_dir: Path) -> Optional[str]:
    """File name of the ``default`` entrypoint in ``<out>/pack.yaml``, if any.

    Falls back to the first declared flow file. Returns None without a manifest.
    """
    pack_yaml = out_dir / "pack.yaml"
    if not pack_yaml.is_file():
        return None
    try:
        raw = yaml.safe_load(pack_yaml.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise FlowIOError(f"failed to read {pack_yaml}: {e}") from e
    except yaml.YAMLError as e:
        raise SpecError(f"invalid pack manifest {pack_yaml}: {e}") from e

    flows = raw.get("flows") if isinstance(raw, dict) else None
    if not isinstance(flows, list):
        return None
    entries = [f for f in flows if isinstance(f, dict) and isinstance(f.get("file"), str)]
    for entry in entries:
        if "default" in (entry.get("entrypoints") or []):
            return Path(entry["file"]).name
    if entries:
        return Path(entries[0]["file"]).name
    return None


def select_primary_flow(spec: GenerateSpec, flow_names: List[str]) -> Optional[str]:
    if spec.primary_flow:
        return spec.primary_flow
    if spec.default_flow:
        return spec.default_flow
    return sorted(flow_names)[0] if flow_names else None


def write_manifest(path: Path, report: GenerationReport) -> None:
    payload = report.manifest.as_dict()
    payload["diagnostics"] = report.diagnostics.as_dict()
    payload["warnings"] = [w.as_dict() for w in report.warnings]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as e:
        raise FlowIOError(f"failed to write {path}: {e}") from e


def generate(
    spec: GenerateSpec | dict,
    *,
    settings: Optional[Settings] = None,
    backend: Optional[FlowBackend] = None,
) -> GenerationReport:
    """Scan cards, then build, order and emit one flow document per flow.

    Strict mode aborts on the first promotable condition. External tool and
    filesystem failures abort in both modes.
    """
    spec = coerce_generate_spec(spec)
    settings = settings or load_settings()
    cards_dir = Path(spec.cards_dir)
    out_dir = Path(spec.out_dir)
    if not cards_dir.is_dir():
        raise SpecError(f"cards directory does not exist: {cards_dir}")

    state_dir = out_dir / settings.state_dir
    try:
        (out_dir / FLOWS_DIR).mkdir(parents=True, exist_ok=True)
        state_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FlowIOError(f"failed to prepare workspace {out_dir}: {e}") from e

    if backend is None:
        backend = make_backend(settings, work_dir=state_dir / "tmp")

    log_event(log, settings=settings, level=logging.INFO, event="scan_start", cards_dir=cards_dir)
    manifest = scan_manifest(spec.scan_spec())
    log_event(log, settings=settings, level=logging.INFO, event="scan_end", cards=manifest.cards_processed, flows=len(manifest.flows))

    for group in manifest.flows:
        try:
            check_flow_name(group.flow_name)
        except SpecError as e:
            card = group.cards[0].rel_path if group.cards else "?"
            raise SpecError(f"card {card}: {e}; flow names become file names under {FLOWS_DIR}/") from e

    warnings: List[FlowWarning] = list(manifest.warnings)
    primary_name = select_primary_flow(spec, [f.flow_name for f in manifest.flows])
    primary_file = default_flow_file(out_dir) or PRIMARY_FLOW_FILE

    outputs: List[FlowOutput] = []
    for group in manifest.flows:
        primary = group.flow_name == primary_name
        file_name = primary_file if primary else flow_file_name(group.flow_name)
        if not primary and file_name == primary_file:
            raise SpecError(f"flow {group.flow_name} would overwrite the primary flow file {primary_file}")

        graph = build_flow_graph(group, spec.strict, asset_prefix=settings.asset_prefix)
        warnings.extend(graph.warnings)

        result = emit_flow(
            graph,
            out_dir,
            backend=backend,
            strict=spec.strict,
            primary=primary,
            file_name=file_name,
            settings=settings,
        )
        warnings.extend(result.warnings)

        if primary and spec.prompt:
            ensure_prompt_node(result.path, config_path=spec.prompt_config_path)
        sidecar = write_resolve_sidecar(result.path, graph, settings=settings)
        if primary and spec.prompt:
            extend_sidecar_with_prompt(result.path, component_ref=settings.prompt_component_ref)

        outputs.append(
            FlowOutput(
                flow_name=group.flow_name,
                path=result.path,
                sidecar=sidecar,
                order=result.order,
                entry=graph.entry_node(),
                primary=primary,
            )
        )

    diagnostics = RunDiagnostics(
        workspace_root=out_dir,
        cards_processed=manifest.cards_processed,
        flows=manifest.summaries(),
        flow_paths=[o.path.relative_to(out_dir).as_posix() for o in outputs],
        warnings_count=len(warnings),
    )
    report = GenerationReport(manifest=manifest, diagnostics=diagnostics, outputs=outputs, warnings=warnings)
    report.manifest_path = state_dir / "manifest.json"
    write_manifest(report.manifest_path, report)

    log_event(
        log,
        settings=settings,
        level=logging.INFO,
        event="generation_summary",
        cards=diagnostics.cards_processed,
        flows=len(outputs),
        warnings=len(warnings),
    )
    return report
