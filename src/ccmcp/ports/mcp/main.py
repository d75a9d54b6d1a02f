"""
ccmcp MCP server: stdio entry point.

Spawned by an AI client (its MCP config points at `ccmcp mcp`, with
`MCP_SOURCE` in the env block identifying the client).

Usage:
    python -m ccmcp.ports.mcp.main
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Any, Optional

from ...kernel.mailbox import MailboxStore
from ...kernel.settings import Settings, get_settings
from ...util.obslog import setup_root_json_logging
from .server import McpServer
from .tools import build_registry

logger = logging.getLogger("ccmcp.mcp")


def build_server(settings: Settings, *, stop_event: Optional[threading.Event] = None) -> McpServer:
    mailbox = MailboxStore(settings.resolved_storage_dir())
    registry = build_registry(mailbox, settings, stop_event=stop_event)
    return McpServer(registry)


def main(settings: Optional[Settings] = None) -> int:
    """MCP server main loop (stdio)."""
    settings = settings or get_settings()
    setup_root_json_logging(component="mcp", level=settings.log_level, stream=sys.stderr)

    stop_event = threading.Event()
    server = build_server(settings, stop_event=stop_event)

    def _signal_handler(signum: int, frame: Any) -> None:
        stop_event.set()
        # Mid-call the feedback wait sees the event and cleans up its request;
        # while idle we are parked in readline() and have to leave directly.
        if not server.busy:
            raise SystemExit(0)

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            signal.signal(sig, _signal_handler)
        except ValueError:
            # not the main thread (embedded use)
            pass

    logger.info("storage dir: %s", settings.resolved_storage_dir())
    return server.serve(sys.stdin, sys.stdout, stop_event=stop_event)


if __name__ == "__main__":
    raise SystemExit(main())
