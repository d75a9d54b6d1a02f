"""Trusted resolution of the calling AI tool's identity.

The source id comes from the environment the AI client spawned us with
(`MCP_SOURCE` in its server config), never from tool arguments: a model could
otherwise put any display name in front of the operator.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional

SOURCE_ENV = "MCP_SOURCE"

_DISPLAY_NAMES = {
    "cursor": "Cursor AI",
    "augment": "Augment AI",
    "claude-desktop": "Claude Desktop",
    "claude_desktop": "Claude Desktop",
    "chatgpt": "ChatGPT",
    "chat-gpt": "ChatGPT",
    "chat_gpt": "ChatGPT",
}
UNKNOWN_DISPLAY = "Unknown AI Tool"

SourceResolver = Callable[[], str]


def display_name(source: str) -> str:
    s = str(source or "").strip()
    key = s.lower()
    if not key or key == "unknown":
        return UNKNOWN_DISPLAY
    return _DISPLAY_NAMES.get(key, s)


def resolve_source(
    *,
    env: Optional[Mapping[str, str]] = None,
    executable: Optional[str] = None,
    default: str = "unknown",
) -> str:
    """MCP_SOURCE, else a guess from the host executable name, else `default`."""
    environ = os.environ if env is None else env
    raw = str(environ.get(SOURCE_ENV) or "").strip()
    if raw:
        return raw
    exe_name = Path(executable if executable is not None else sys.executable).name.lower()
    if "cursor" in exe_name:
        return "cursor"
    return str(default or "unknown").strip() or "unknown"


def env_source_resolver(default: str = "unknown") -> SourceResolver:
    return lambda: resolve_source(default=default)
