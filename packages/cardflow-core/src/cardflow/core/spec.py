from __future__ import annotations

from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

# ---------------------------------------------------------------------------
# Run inputs
# ---------------------------------------------------------------------------

GroupBy = Literal["folder", "flow_field"]
BackendName = Literal["cli", "builtin"]


class ScanSpec(BaseModel):
    """Inputs of a card scan.

    Notes:
      - group_by="folder" lets the first path segment name the flow when no
        card-level flow identity exists.
      - strict turns recoverable conditions into aborting errors.
    """

    model_config = ConfigDict(extra="forbid")

    cards_dir: Path
    group_by: Optional[GroupBy] = None
    default_flow: Optional[str] = None
    strict: bool = False


class GenerateSpec(ScanSpec):
    out_dir: Path
    # Flow that owns the reserved primary document. Falls back to default_flow,
    # then to the first flow name in sorted order.
    primary_flow: Optional[str] = None
    prompt: bool = False
    prompt_config_path: str = "assets/config/prompt2flow.json"

    def scan_spec(self) -> ScanSpec:
        return ScanSpec(
            cards_dir=self.cards_dir,
            group_by=self.group_by,
            default_flow=self.default_flow,
            strict=self.strict,
        )


# ---------------------------------------------------------------------------
# Resolve sidecar (<flow>.ygtc.resolve.json)
# ---------------------------------------------------------------------------

ComponentSourceKind = Literal["oci", "local"]


class ComponentSourceSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: ComponentSourceKind
    ref: Optional[str] = None
    path: Optional[str] = None


class NodeResolveSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: ComponentSourceSpec


class ResolveSidecarSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1
    flow: str
    nodes: Dict[str, NodeResolveSpec] = Field(default_factory=dict)


__all__ = [
    # run inputs
    "GroupBy",
    "BackendName",
    "ScanSpec",
    "GenerateSpec",
    # sidecar
    "ComponentSourceKind",
    "ComponentSourceSpec",
    "NodeResolveSpec",
    "ResolveSidecarSpec",
]
