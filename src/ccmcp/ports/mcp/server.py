"""
ccmcp MCP server: line-delimited JSON-RPC 2.0 dispatcher.

One request object per input line, one response object per output line
(none for notifications). Lines are handled strictly one at a time: the
feedback tool blocks the loop until the operator answers, which serializes
feedback exchanges per caller process.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional, TextIO

from ... import SERVER_NAME, __version__
from ...contracts.v1.rpc import (
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    TOOL_EXECUTION_FAILED,
    RpcError,
)
from ...kernel.session import NotificationSink
from ...util.obslog import set_root_level
from .registry import ToolError, ToolRegistry

logger = logging.getLogger("ccmcp.mcp")

SERVER_DESCRIPTION = "Local tools for AI assistants"


def _make_response(id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": id, "result": result}


def _make_error(id: Any, code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error = RpcError(code=code, message=message, data=data).model_dump(exclude_none=True)
    return {"jsonrpc": JSONRPC_VERSION, "id": id, "error": error}


class McpServer:
    def __init__(
        self,
        registry: ToolRegistry,
        *,
        sink: Optional[NotificationSink] = None,
        name: str = SERVER_NAME,
        version: str = __version__,
        description: str = SERVER_DESCRIPTION,
    ):
        self.registry = registry
        self.sink = sink
        self.name = name
        self.version = version
        self.description = description
        self.busy = False

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _initialize(self) -> Dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {
                "tools": {},
                # Advertised but empty; some clients probe these regardless.
                "resources": {},
                "prompts": {},
                "logging": {},
            },
            "serverInfo": {
                "name": self.name,
                "version": self.version,
                "description": self.description,
            },
            "instructions": self.description,
        }

    def _tools_call(self, req_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        tool_name = str(params.get("name") or "")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            arguments = {}

        log_extra = {"tool": tool_name, "rpc_id": req_id}
        logger.info("tools/call", extra=log_extra)
        try:
            result = self.registry.execute(tool_name, arguments, sink=self.sink)
        except ToolError as e:
            logger.warning("tool failed: %s", e.message, extra=log_extra)
            return _make_error(
                req_id,
                TOOL_EXECUTION_FAILED,
                f"Tool execution failed: {e.message}",
                {"code": e.code, "details": e.details} if e.details else {"code": e.code},
            )
        except Exception as e:
            logger.exception("tool crashed", extra=log_extra)
            return _make_error(req_id, TOOL_EXECUTION_FAILED, f"Tool execution failed: {e}", {"code": "internal_error"})

        return _make_response(req_id, {
            "content": [
                {
                    "type": "text",
                    "text": json.dumps(result, ensure_ascii=False),
                }
            ],
        })

    def handle_request(self, req: Any) -> Optional[Dict[str, Any]]:
        """Handle one decoded message. Returns None when no reply is due."""
        if not isinstance(req, dict):
            return _make_error(None, INVALID_REQUEST, "Invalid Request")

        req_id = req.get("id")
        method = req.get("method")
        if not isinstance(method, str):
            method = ""
        params = req.get("params")
        if not isinstance(params, dict):
            params = {}

        logger.debug("request", extra={"method": method, "rpc_id": req_id})

        if method == "initialize":
            return _make_response(req_id, self._initialize())

        if method.startswith("notifications/"):
            return None

        if method == "ping":
            return _make_response(req_id, {})

        if method == "tools/list":
            return _make_response(req_id, {"tools": self.registry.list()})

        if method == "tools/call":
            return self._tools_call(req_id, params)

        if method == "resources/list":
            return _make_response(req_id, {"resources": []})

        if method == "prompts/list":
            return _make_response(req_id, {"prompts": []})

        if method == "logging/setLevel":
            level = params.get("level")
            if level:
                set_root_level(level)
            return _make_response(req_id, {})

        return _make_error(req_id, METHOD_NOT_FOUND, f"Method '{method}' not found")

    def handle_line(self, line: str) -> Optional[Dict[str, Any]]:
        raw = line.strip()
        if not raw:
            return None
        try:
            req = json.loads(raw)
        except ValueError as e:
            logger.warning("unparsable request line: %s", e)
            return _make_error(None, PARSE_ERROR, "Parse error")
        return self.handle_request(req)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def serve(self, stdin: TextIO, stdout: TextIO, *, stop_event: Optional[threading.Event] = None) -> int:
        """Serve until EOF (exit 0) or a transport failure (exit 1)."""
        logger.info("stdio transport started")
        while stop_event is None or not stop_event.is_set():
            try:
                line = stdin.readline()
            except OSError as e:
                logger.error("stdin read failed: %s", e)
                return 1
            if not line:
                logger.info("EOF received, shutting down")
                return 0

            self.busy = True
            try:
                resp = self.handle_line(line)
            finally:
                self.busy = False
            if resp is None:
                continue
            try:
                stdout.write(json.dumps(resp, ensure_ascii=False) + "\n")
                stdout.flush()
            except OSError as e:
                logger.error("stdout write failed: %s", e)
                return 1
        logger.info("stop requested, shutting down")
        return 0
