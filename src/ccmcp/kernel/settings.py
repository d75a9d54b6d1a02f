"""Settings for ccmcp.

Stored in ~/.ccmcp/settings.yaml (or $CCMCP_HOME/settings.yaml). Every key is
optional; environment variables override the file so that an AI client can
configure a spawned stdio server through its `env` block alone.
"""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml  # type: ignore

from ..paths import ccmcp_home, storage_dir
from ..util.fs import atomic_write_text

logger = logging.getLogger("ccmcp.settings")

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def coerce_bool(value: Any, *, default: bool = False) -> bool:
    """Coerce YAML/env values; unknown strings fall back to `default` (bool("false") is True)."""
    if value is None:
        return bool(default)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return bool(default)
        return value != 0
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return bool(default)


def coerce_seconds(value: Any, *, default: float, minimum: float = 0.0) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return float(default)
    try:
        out = float(value)
    except (TypeError, ValueError):
        return float(default)
    if math.isnan(out) or out < minimum:
        return float(default)
    return out


@dataclass
class Settings:
    storage_dir: str = ""
    poll_interval_seconds: float = 0.5
    watch_interval_seconds: float = 1.0
    renotify_window_seconds: float = 300.0
    feedback_timeout_seconds: float = 0.0  # 0 = wait for the human indefinitely
    alert_enabled: bool = True
    alert_command: List[str] = field(default_factory=list)
    default_source: str = "unknown"
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "storage_dir": self.storage_dir,
            "poll_interval_seconds": self.poll_interval_seconds,
            "watch_interval_seconds": self.watch_interval_seconds,
            "renotify_window_seconds": self.renotify_window_seconds,
            "feedback_timeout_seconds": self.feedback_timeout_seconds,
            "alert_enabled": self.alert_enabled,
            "alert_command": list(self.alert_command),
            "default_source": self.default_source,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Settings":
        base = cls()
        cmd = d.get("alert_command")
        if isinstance(cmd, str):
            cmd = cmd.split()
        return cls(
            storage_dir=str(d.get("storage_dir") or ""),
            poll_interval_seconds=coerce_seconds(
                d.get("poll_interval_seconds"), default=base.poll_interval_seconds, minimum=0.001
            ),
            watch_interval_seconds=coerce_seconds(
                d.get("watch_interval_seconds"), default=base.watch_interval_seconds, minimum=0.001
            ),
            renotify_window_seconds=coerce_seconds(
                d.get("renotify_window_seconds"), default=base.renotify_window_seconds
            ),
            feedback_timeout_seconds=coerce_seconds(
                d.get("feedback_timeout_seconds"), default=base.feedback_timeout_seconds
            ),
            alert_enabled=coerce_bool(d.get("alert_enabled"), default=base.alert_enabled),
            alert_command=[str(x) for x in cmd] if isinstance(cmd, list) else [],
            default_source=str(d.get("default_source") or base.default_source).strip(),
            log_level=str(d.get("log_level") or base.log_level).strip().upper(),
        )

    def resolved_storage_dir(self) -> Path:
        return storage_dir(self.storage_dir)


# env var -> settings key
_ENV_OVERRIDES = {
    "CCMCP_STORAGE_DIR": "storage_dir",
    "CCMCP_POLL_INTERVAL": "poll_interval_seconds",
    "CCMCP_FEEDBACK_TIMEOUT": "feedback_timeout_seconds",
    "CCMCP_LOG_LEVEL": "log_level",
    "CCMCP_ALERT": "alert_enabled",
}


def settings_path() -> Path:
    return ccmcp_home() / "settings.yaml"


def load_settings_file(path: Optional[Path] = None) -> Dict[str, Any]:
    p = path or settings_path()
    if not p.exists():
        return {}
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("ignoring unreadable settings file %s: %s", p, e)
        return {}
    return doc if isinstance(doc, dict) else {}


def save_settings(settings: Settings, path: Optional[Path] = None) -> Path:
    p = path or settings_path()
    atomic_write_text(p, yaml.safe_dump(settings.to_dict(), allow_unicode=True, sort_keys=False))
    return p


def get_settings(*, path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """settings.yaml merged with CCMCP_* environment overrides."""
    doc = load_settings_file(path)
    environ = os.environ if env is None else env
    for var, key in _ENV_OVERRIDES.items():
        raw = str(environ.get(var) or "").strip()
        if raw:
            doc[key] = raw
    return Settings.from_dict(doc)
