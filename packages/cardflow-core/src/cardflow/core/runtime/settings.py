from __future__ import annotations

import os
from importlib import import_module

from pydantic import BaseModel

DEFAULT_COMPONENT_REF = "oci://ghcr.io/greentic-ai/components/component-adaptive-card:latest"
DEFAULT_PROMPT_COMPONENT_REF = "oci://ghcr.io/greentic-ai/components/component-prompt2flow:latest"


class Settings(BaseModel):
    # Defaults are static. Use load_settings(env=...) to read from an env snapshot.
    log_level: str = "INFO"

    # Observability
    # - log_format: "text" (default) or "json". When json, cardflow events are emitted
    #   as a single JSON object per line.
    log_format: str = "text"

    # Flow compiler
    # - backend: "cli" shells out to flow_bin, "builtin" renders the document in-process
    backend: str = "cli"
    flow_bin: str = "greentic-flow"
    flow_type: str = "messaging"

    # Component that executes every generated card node
    component_ref: str = DEFAULT_COMPONENT_REF
    # Local wasm build of the component; when set the resolve sidecar points at it
    component_wasm: str | None = None
    prompt_component_ref: str = DEFAULT_PROMPT_COMPONENT_REF

    # Workspace layout
    asset_prefix: str = "assets/cards"
    state_dir: str = ".cardflow"

    @classmethod
    def from_env(cls, env: dict[str, str], overrides: dict | None = None) -> "Settings":
        """Build Settings from an explicit env snapshot (does not read os.environ)."""
        def g(key: str, default: str | None = None) -> str | None:
            return env.get(key, default)  # type: ignore[return-value]

        data = {
            "log_level": g("CARDFLOW_LOG_LEVEL", "INFO"),
            "log_format": g("CARDFLOW_LOG_FORMAT", "text"),
            "backend": (g("CARDFLOW_BACKEND", "cli") or "cli").lower(),
            "flow_bin": g("CARDFLOW_FLOW_BIN", "greentic-flow"),
            "flow_type": g("CARDFLOW_FLOW_TYPE", "messaging"),
            "component_ref": g("CARDFLOW_COMPONENT_REF") or DEFAULT_COMPONENT_REF,
            "component_wasm": (
                g("CARDFLOW_COMPONENT_WASM") or g("GREENTIC_COMPONENT_ADAPTIVE_CARD_WASM") or ""
            ).strip() or None,
            "prompt_component_ref": g("CARDFLOW_PROMPT_COMPONENT_REF") or DEFAULT_PROMPT_COMPONENT_REF,
            "asset_prefix": g("CARDFLOW_ASSET_PREFIX", "assets/cards"),
            "state_dir": g("CARDFLOW_STATE_DIR", ".cardflow"),
        }
        if overrides:
            data.update(overrides)
        return cls(**data)


def load_settings(overrides: dict | None = None, *, env: dict[str, str] | None = None) -> Settings:
    """Load settings from (1) env snapshot, (2) optional settings module, (3) explicit overrides.

    If env is not provided, a snapshot of os.environ is taken.
    """
    env2 = {k: str(v) for k, v in os.environ.items()} if env is None else env
    s = Settings.from_env(env2)
    mod = env2.get("CARDFLOW_SETTINGS_MODULE")
    if mod:
        m = import_module(mod)
        data = getattr(m, "SETTINGS", {})
        if not isinstance(data, dict):
            raise TypeError("CARDFLOW_SETTINGS_MODULE must expose SETTINGS: dict")
        s = s.model_copy(update=data)
    if overrides:
        s = s.model_copy(update=overrides)
    return s
