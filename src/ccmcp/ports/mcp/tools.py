"""Built-in tools exposed to AI clients.

- file_read: read a text file
- system_info: OS/arch/hostname of the machine running the server
- feedback: show a message to the human operator and block until they answer
"""
from __future__ import annotations

import logging
import platform
import socket
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from ...kernel.alert import AlertTrigger, build_alert
from ...kernel.mailbox import MailboxError, MailboxStore
from ...kernel.session import FeedbackSession, NotificationSink
from ...kernel.settings import Settings
from ...kernel.source import SourceResolver, env_source_resolver
from ...util.time import utc_now_iso
from .registry import ToolError, ToolRegistry

logger = logging.getLogger("ccmcp.tools")


class FileReadTool:
    name = "file_read"
    description = "Read contents of a file"
    input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {"path": {"type": "string", "description": "Path to the file to read"}},
        "required": ["path"],
    }

    def execute(self, arguments: Dict[str, Any], sink: Optional[NotificationSink] = None) -> Dict[str, Any]:
        path = arguments.get("path")
        if not isinstance(path, str) or not path.strip():
            raise ToolError("missing_argument", "Missing 'path' parameter")
        try:
            content = Path(path).expanduser().read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ToolError("read_failed", f"cannot read {path}: {e}", {"path": path}) from e
        return {"path": path, "content": content, "size": len(content.encode("utf-8"))}


_OS_NAMES = {"darwin": "macos", "win32": "windows", "cygwin": "windows"}
_ARCH_NAMES = {"amd64": "x86_64", "x64": "x86_64", "arm64": "aarch64", "i686": "x86", "i386": "x86"}


class SystemInfoTool:
    name = "system_info"
    description = "Get system information"
    input_schema: Dict[str, Any] = {"type": "object", "properties": {}}

    def execute(self, arguments: Dict[str, Any], sink: Optional[NotificationSink] = None) -> Dict[str, Any]:
        plat = sys.platform
        os_name = _OS_NAMES.get(plat, "linux" if plat.startswith("linux") else plat)
        machine = platform.machine().lower()
        return {
            "os": os_name,
            "arch": _ARCH_NAMES.get(machine, machine),
            "hostname": socket.gethostname(),
            "timestamp": utc_now_iso(),
        }


class FeedbackTool:
    name = "feedback"
    description = "Interactive feedback tool - displays AI response and waits for user feedback."
    input_schema: Dict[str, Any] = {
        "type": "object",
        "properties": {
            "ai_response": {"type": "string", "description": "The AI's response to display"},
            "context": {"type": "string", "description": "Optional context for the session"},
            "source": {
                "type": "string",
                "description": "Optional AI tool source identifier (IGNORED - MCP_SOURCE env var is used instead)",
            },
        },
        "required": ["ai_response"],
    }

    def __init__(
        self,
        mailbox: MailboxStore,
        *,
        poll_interval: float = 0.5,
        timeout_s: float = 0.0,
        source_resolver: Optional[SourceResolver] = None,
        alert: Optional[AlertTrigger] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.mailbox = mailbox
        self.poll_interval = poll_interval
        self.timeout_s = timeout_s
        self.source_resolver = source_resolver or env_source_resolver()
        self.alert = alert
        self.stop_event = stop_event

    def execute(self, arguments: Dict[str, Any], sink: Optional[NotificationSink] = None) -> Dict[str, Any]:
        ai_response = arguments.get("ai_response")
        if not isinstance(ai_response, str):
            raise ToolError("missing_argument", "Missing 'ai_response' parameter")
        context = arguments.get("context")
        # arguments["source"] is deliberately never read.
        session = FeedbackSession(
            self.mailbox,
            ai_response=ai_response,
            context=context if isinstance(context, str) else "",
            source=self.source_resolver(),
            poll_interval=self.poll_interval,
            timeout_s=self.timeout_s,
            stop_event=self.stop_event,
        )
        try:
            session.create()
        except MailboxError as e:
            raise ToolError("storage_error", str(e), {"session_id": session.session_id}) from e
        session.notify(sink, self.alert)
        return session.wait().to_dict()


def build_registry(
    mailbox: MailboxStore,
    settings: Settings,
    *,
    alert: Optional[AlertTrigger] = None,
    source_resolver: Optional[SourceResolver] = None,
    stop_event: Optional[threading.Event] = None,
) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(FileReadTool())
    registry.register(SystemInfoTool())
    registry.register(
        FeedbackTool(
            mailbox,
            poll_interval=settings.poll_interval_seconds,
            timeout_s=settings.feedback_timeout_seconds,
            source_resolver=source_resolver or env_source_resolver(settings.default_source),
            alert=alert if alert is not None else build_alert(
                enabled=settings.alert_enabled, command=settings.alert_command
            ),
            stop_event=stop_event,
        )
    )
    logger.debug("registered tools: %s", ", ".join(registry.names()))
    return registry
