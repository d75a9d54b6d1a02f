"""Operator event fan-out for the web console (SSE)."""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections import deque
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Set, Tuple

from starlette.responses import StreamingResponse

logger = logging.getLogger("ccmcp.web")

Frame = Tuple[str, Dict[str, Any]]


def encode_sse(event: str, payload: Dict[str, Any]) -> bytes:
    # SSE requires \n\n to terminate an event.
    data = json.dumps(payload, ensure_ascii=False)
    return f"event: {event}\n".encode("utf-8") + b"data: " + data.encode("utf-8") + b"\n\n"


class EventBroker:
    """Notification sink fanning events out to SSE subscribers.

    `emit` is called from the watcher thread and from tool calls running in
    the threadpool; delivery into subscriber queues is marshalled onto the
    event loop with call_soon_threadsafe.
    """

    def __init__(self, *, backlog: int = 100, queue_size: int = 256):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscribers: Set[asyncio.Queue[Optional[bytes]]] = set()
        self._recent: Deque[Frame] = deque(maxlen=max(1, int(backlog)))
        self._recent_lock = threading.Lock()
        self._queue_size = int(queue_size)

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def recent(self) -> List[Frame]:
        with self._recent_lock:
            return list(self._recent)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        frame = (str(event), dict(payload))
        with self._recent_lock:
            self._recent.append(frame)
        logger.debug("event", extra={"event": frame[0], "session_id": payload.get("session_id")})
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._broadcast, encode_sse(*frame))

    def _broadcast(self, item: Optional[bytes]) -> None:
        for q in list(self._subscribers):
            try:
                q.put_nowait(item)
            except asyncio.QueueFull:
                # Slow consumer: drop it rather than stall everyone else.
                logger.warning("dropping slow event stream subscriber")
                self._subscribers.discard(q)

    def subscribe(self) -> "asyncio.Queue[Optional[bytes]]":
        q: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: "asyncio.Queue[Optional[bytes]]") -> None:
        self._subscribers.discard(q)

    def close(self) -> None:
        """Ends every open stream. Must run on the event loop."""
        self._broadcast(None)
        self._subscribers.clear()


async def sse_events(broker: EventBroker, *, heartbeat_s: float = 30.0) -> AsyncIterator[bytes]:
    q = broker.subscribe()
    # Snapshot right after subscribing: a frame may arrive twice, never zero times.
    backlog = broker.recent()
    try:
        yield b": connected\n\n"
        for frame in backlog:
            yield encode_sse(*frame)
        while True:
            try:
                item = await asyncio.wait_for(q.get(), timeout=heartbeat_s)
            except asyncio.TimeoutError:
                yield b": heartbeat\n\n"
                continue
            if item is None:
                break
            yield item
    finally:
        broker.unsubscribe(q)


def create_sse_response(generator: AsyncIterator[bytes]) -> StreamingResponse:
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "Connection": "keep-alive",
        },
    )
