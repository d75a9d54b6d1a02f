from __future__ import annotations

import argparse
import json
import sys
import threading
from typing import Any, Dict, Optional, TextIO

from . import __version__
from .kernel.alert import build_alert
from .kernel.mailbox import MailboxError, MailboxStore
from .kernel.session import cancel_session, submit_reply
from .kernel.settings import Settings, get_settings
from .kernel.watcher import DirectoryWatcher
from .ports.mcp.tools import build_registry
from .util.obslog import setup_root_json_logging


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _mailbox(settings: Optional[Settings] = None) -> MailboxStore:
    return MailboxStore((settings or get_settings()).resolved_storage_dir())


class _JsonLineSink:
    """Prints operator events as JSON lines (terminal console)."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        line = json.dumps({"event": event, "data": payload}, ensure_ascii=False)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


def cmd_mcp(_: argparse.Namespace) -> int:
    from .ports.mcp.main import main as mcp_main

    return int(mcp_main())


def cmd_console(args: argparse.Namespace) -> int:
    from .ports.web.main import main as web_main

    argv = ["--host", str(args.host), "--port", str(args.port)]
    return int(web_main(argv))


def cmd_watch(_: argparse.Namespace) -> int:
    settings = get_settings()
    setup_root_json_logging(component="watch", level=settings.log_level)
    watcher = DirectoryWatcher(
        _mailbox(settings),
        _JsonLineSink(),
        interval_s=settings.watch_interval_seconds,
        renotify_window_s=settings.renotify_window_seconds,
        alert=build_alert(enabled=settings.alert_enabled, command=settings.alert_command),
    )
    stop = threading.Event()
    watcher.start()
    try:
        while watcher.running and not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()
    return 0


def cmd_pending(_: argparse.Namespace) -> int:
    docs = [d.model_dump() for d in _mailbox().iter_requests()]
    docs.sort(key=lambda d: str(d.get("created_at") or ""))
    _print_json({"ok": True, "result": {"sessions": docs}})
    return 0


def cmd_reply(args: argparse.Namespace) -> int:
    session_id = str(args.session_id or "").strip()
    try:
        ok = submit_reply(_mailbox(), session_id, str(args.text))
    except ValueError as e:
        _print_json({"ok": False, "error": {"code": "invalid_session_id", "message": str(e)}})
        return 2
    except MailboxError as e:
        _print_json({"ok": False, "error": {"code": "storage_error", "message": str(e)}})
        return 1
    if not ok:
        _print_json({"ok": False, "error": {"code": "session_not_found", "message": f"no pending session: {session_id}"}})
        return 2
    _print_json({"ok": True, "result": {"session_id": session_id}})
    return 0


def cmd_cancel(args: argparse.Namespace) -> int:
    session_id = str(args.session_id or "").strip()
    try:
        removed = cancel_session(_mailbox(), session_id)
    except ValueError as e:
        _print_json({"ok": False, "error": {"code": "invalid_session_id", "message": str(e)}})
        return 2
    _print_json({"ok": True, "result": {"session_id": session_id, "removed": removed}})
    return 0


def cmd_tools(_: argparse.Namespace) -> int:
    settings = get_settings()
    registry = build_registry(_mailbox(settings), settings)
    _print_json({"ok": True, "result": {"tools": registry.list()}})
    return 0


def cmd_version(_: argparse.Namespace) -> int:
    print(__version__)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="ccmcp", description="ccmcp (MCP tools + human feedback mailbox)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_mcp = sub.add_parser("mcp", help="Run the MCP server on stdio (spawned by AI clients)")
    p_mcp.set_defaults(func=cmd_mcp)

    p_console = sub.add_parser("console", help="Run the operator web console")
    p_console.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    p_console.add_argument("--port", type=int, default=8849, help="Bind port (default: 8849)")
    p_console.set_defaults(func=cmd_console)

    p_watch = sub.add_parser("watch", help="Print new feedback requests as JSON lines")
    p_watch.set_defaults(func=cmd_watch)

    p_pending = sub.add_parser("pending", help="List pending feedback requests")
    p_pending.set_defaults(func=cmd_pending)

    p_reply = sub.add_parser("reply", help="Answer a pending feedback request")
    p_reply.add_argument("session_id", help="Target session_id")
    p_reply.add_argument("text", help="Feedback text")
    p_reply.set_defaults(func=cmd_reply)

    p_cancel = sub.add_parser("cancel", help="Cancel a pending feedback request")
    p_cancel.add_argument("session_id", help="Target session_id")
    p_cancel.set_defaults(func=cmd_cancel)

    p_tools = sub.add_parser("tools", help="List the tools exposed over MCP")
    p_tools.set_defaults(func=cmd_tools)

    p_version = sub.add_parser("version", help="Show version")
    p_version.set_defaults(func=cmd_version)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
