from __future__ import annotations

import json
import logging
import time
from typing import Any

from cardflow.core.runtime.settings import Settings

TEXT_FORMAT = '%(asctime)s - (%(threadName)-10s) - %(name)s - %(levelname)s - %(message)s'


def _now_ms() -> int:
    return int(time.time() * 1000)


def ensure_logging(settings: Settings) -> None:
    """Configure the root logger once for CLI runs (no-op if handlers exist)."""
    fmt = TEXT_FORMAT
    if (settings.log_format or "text").lower() == "json":
        # event payloads carry their own timestamp
        fmt = "%(message)s"
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=fmt,
    )


def _text_value(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text):
        return json.dumps(text, ensure_ascii=False)
    return text


def log_event(logger: logging.Logger, *, settings: Settings, level: int, event: str, **fields: Any) -> None:
    """Emit one event line.

    - text format: `event key=value ...` (values with spaces are quoted)
    - json format: one JSON object per line with `ts_ms` and `event`
    """
    if not logger.isEnabledFor(level):
        return
    if (settings.log_format or "text").lower() == "json":
        payload = {"ts_ms": _now_ms(), "event": event, **fields}
        logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
        return

    parts = [event]
    parts.extend(f"{k}={_text_value(v)}" for k, v in fields.items())
    logger.log(level, " ".join(parts))
