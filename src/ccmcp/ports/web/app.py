from __future__ import annotations

import asyncio
import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from ... import __version__
from ...kernel.alert import build_alert
from ...kernel.mailbox import MailboxError, MailboxStore
from ...kernel.session import cancel_session, submit_reply
from ...kernel.settings import Settings, get_settings
from ...kernel.watcher import DirectoryWatcher
from ..mcp.registry import ToolError
from ..mcp.tools import build_registry
from .streams import EventBroker, create_sse_response, sse_events

logger = logging.getLogger("ccmcp.web")


class ReplyRequest(BaseModel):
    feedback: str


class ToolCallRequest(BaseModel):
    arguments: Dict[str, Any] = Field(default_factory=dict)


def _require_token_if_configured(request: Request) -> Optional[JSONResponse]:
    token = str(os.environ.get("CCMCP_WEB_TOKEN") or "").strip()
    if not token:
        return None
    auth = str(request.headers.get("authorization") or "").strip()
    if auth != f"Bearer {token}":
        return JSONResponse(
            status_code=401,
            content={"ok": False, "error": {"code": "unauthorized", "message": "missing/invalid token", "details": {}}},
        )
    return None


def _bad_session_id(session_id: str) -> HTTPException:
    return HTTPException(status_code=400, detail={"code": "invalid_session_id", "message": f"invalid session id: {session_id}"})


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "session_not_found", "message": f"no pending session: {session_id}"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    mailbox: Optional[MailboxStore] = None,
    start_watcher: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    mailbox = mailbox or MailboxStore(settings.resolved_storage_dir())
    broker = EventBroker()
    alert = build_alert(enabled=settings.alert_enabled, command=settings.alert_command)
    # Set on shutdown so blocking feedback calls in the threadpool return.
    stop_event = threading.Event()
    registry = build_registry(mailbox, settings, alert=alert, stop_event=stop_event)
    watcher = DirectoryWatcher(
        mailbox,
        broker,
        interval_s=settings.watch_interval_seconds,
        renotify_window_s=settings.renotify_window_seconds,
        alert=alert,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        stop_event.clear()
        broker.bind(asyncio.get_running_loop())
        if start_watcher:
            watcher.start()
        try:
            yield
        finally:
            stop_event.set()
            watcher.stop()
            broker.close()

    app = FastAPI(title="ccmcp console", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.mailbox = mailbox
    app.state.broker = broker
    app.state.registry = registry
    app.state.watcher = watcher
    app.state.stop_event = stop_event

    @app.middleware("http")
    async def _auth(request: Request, call_next):  # type: ignore[no-untyped-def]
        blocked = _require_token_if_configured(request)
        if blocked is not None:
            return blocked
        return await call_next(request)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, dict) else {"code": "error", "message": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": detail})

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        return (
            "<h3>ccmcp console</h3>"
            "<p>Pending feedback: <code>/api/v1/feedback</code>; "
            "live events: <code>/api/v1/feedback/stream</code>.</p>"
        )

    @app.get("/api/v1/ping")
    async def ping() -> Dict[str, Any]:
        return {
            "ok": True,
            "result": {
                "version": __version__,
                "storage_dir": str(mailbox.root),
                "watcher": "running" if watcher.running else "stopped",
            },
        }

    @app.get("/api/v1/feedback")
    def feedback_list() -> Dict[str, Any]:
        docs = [d.model_dump() for d in mailbox.iter_requests()]
        docs.sort(key=lambda d: str(d.get("created_at") or ""))
        return {"ok": True, "result": {"sessions": docs}}

    @app.post("/api/v1/feedback/scan")
    def feedback_scan() -> Dict[str, Any]:
        count = watcher.scan(replay=True)
        return {"ok": True, "result": {"surfaced": count}}

    @app.get("/api/v1/feedback/stream")
    async def feedback_stream() -> StreamingResponse:
        return create_sse_response(sse_events(broker))

    @app.get("/api/v1/feedback/{session_id}")
    def feedback_get(session_id: str) -> Dict[str, Any]:
        try:
            doc = mailbox.get_request(session_id)
        except ValueError:
            raise _bad_session_id(session_id)
        if doc is None:
            raise _not_found(session_id)
        return {"ok": True, "result": doc.model_dump()}

    @app.post("/api/v1/feedback/{session_id}/reply")
    def feedback_reply(session_id: str, req: ReplyRequest) -> Dict[str, Any]:
        try:
            ok = submit_reply(mailbox, session_id, req.feedback)
        except ValueError:
            raise _bad_session_id(session_id)
        except MailboxError as e:
            raise HTTPException(status_code=500, detail={"code": "storage_error", "message": str(e)})
        if not ok:
            raise _not_found(session_id)
        return {"ok": True, "result": {"session_id": session_id}}

    @app.post("/api/v1/feedback/{session_id}/cancel")
    def feedback_cancel(session_id: str) -> Dict[str, Any]:
        try:
            removed = cancel_session(mailbox, session_id)
        except ValueError:
            raise _bad_session_id(session_id)
        return {"ok": True, "result": {"session_id": session_id, "removed": removed}}

    @app.get("/api/v1/tools")
    async def tools_list() -> Dict[str, Any]:
        return {"ok": True, "result": {"tools": registry.list()}}

    @app.post("/api/v1/tools/{name}")
    def tools_call(name: str, req: ToolCallRequest) -> Dict[str, Any]:
        # Sync handler: runs in the threadpool, so a blocking feedback call
        # doesn't stall the event loop.
        if name not in registry:
            raise HTTPException(status_code=404, detail={"code": "tool_not_found", "message": f"Tool '{name}' not found"})
        try:
            result = registry.execute(name, dict(req.arguments), sink=broker)
        except ToolError as e:
            raise HTTPException(status_code=400, detail={"code": e.code, "message": e.message, "details": e.details})
        return {"ok": True, "result": result}

    return app
