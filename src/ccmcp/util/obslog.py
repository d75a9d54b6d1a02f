from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO


_CONFIGURED: Dict[str, bool] = {}

# Correlation keys copied from `extra={...}` into each line when present.
_CORRELATION_KEYS = ("session_id", "method", "rpc_id", "tool", "source", "event")


def _utc_ts_iso(ts: float) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    except (OverflowError, OSError, ValueError):
        return ""


class JsonlFormatter(logging.Formatter):
    """One JSON object per line.

    Keep fields stable and small; correlation fields ride on `logger.*(..., extra={...})`.
    """

    def __init__(self, *, component: str):
        super().__init__()
        self._component = str(component or "").strip() or "ccmcp"

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_ts_iso(getattr(record, "created", 0.0) or 0.0),
            "level": str(record.levelname or ""),
            "logger": str(record.name or ""),
            "component": self._component,
            "msg": record.getMessage(),
        }

        for k in _CORRELATION_KEYS:
            v = getattr(record, k, None)
            if v is None:
                continue
            sv = str(v).strip()
            if sv:
                payload[k] = sv

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        try:
            return json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError):
            return '{"component":"%s","level":"%s","msg":"(log serialization failed)"}' % (
                self._component,
                payload.get("level", "INFO"),
            )


def parse_level(level: Any, default: int = logging.INFO) -> int:
    """Map a level name ("debug", "WARNING", MCP's "notice"...) to a logging level."""
    s = str(level or "").strip().upper()
    if not s:
        return default
    aliases = {"NOTICE": "INFO", "ALERT": "CRITICAL", "EMERGENCY": "CRITICAL", "WARN": "WARNING"}
    s = aliases.get(s, s)
    value = getattr(logging, s, None)
    return value if isinstance(value, int) else default


def set_root_level(level: Any) -> int:
    lvl = parse_level(level)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
    return lvl


def setup_root_json_logging(
    *,
    component: str,
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """Configure root logging once per process.

    Defaults to stderr: in the stdio server, stdout carries JSON-RPC frames and
    must never receive log output.
    """
    key = f"root:{component}"
    if _CONFIGURED.get(key) and not force:
        return
    _CONFIGURED[key] = True

    root = logging.getLogger()
    root.setLevel(parse_level(level))

    if force:
        for h in list(root.handlers):
            root.removeHandler(h)

    for h in root.handlers:
        if isinstance(h, logging.StreamHandler) and isinstance(h.formatter, JsonlFormatter):
            h.setLevel(parse_level(level))
            return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(parse_level(level))
    handler.setFormatter(JsonlFormatter(component=component))
    root.addHandler(handler)
