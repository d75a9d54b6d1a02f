from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol

from ...contracts.v1 import ToolInfo
from ...kernel.session import NotificationSink

logger = logging.getLogger("ccmcp.registry")


class ToolError(Exception):
    """Tool execution failure, reported to the caller for that call only."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class McpTool(Protocol):
    name: str
    description: str
    input_schema: Dict[str, Any]

    def execute(self, arguments: Dict[str, Any], sink: Optional[NotificationSink] = None) -> Dict[str, Any]: ...


class ToolRegistry:
    """Name -> tool, in registration order. One lock guards mutation and iteration."""

    def __init__(self) -> None:
        self._tools: Dict[str, McpTool] = {}
        self._lock = threading.Lock()

    def register(self, tool: McpTool) -> None:
        name = str(tool.name or "").strip()
        if not name:
            raise ValueError("tool name is required")
        with self._lock:
            if name in self._tools:
                logger.warning("tool %r registered twice; replacing previous definition", name, extra={"tool": name})
                # Keep the original position so discovery order stays stable.
            self._tools[name] = tool

    def get(self, name: str) -> Optional[McpTool]:
        with self._lock:
            return self._tools.get(str(name or ""))

    def names(self) -> List[str]:
        with self._lock:
            return list(self._tools)

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            tools = list(self._tools.values())
        return [
            ToolInfo(name=t.name, description=t.description, input_schema=t.input_schema).to_dict()
            for t in tools
        ]

    def execute(
        self, name: str, arguments: Dict[str, Any], *, sink: Optional[NotificationSink] = None
    ) -> Dict[str, Any]:
        tool = self.get(name)
        if tool is None:
            raise ToolError("tool_not_found", f"Tool '{name}' not found")
        return tool.execute(arguments, sink)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._tools

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)
