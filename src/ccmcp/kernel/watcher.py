from __future__ import annotations

import logging
import threading
from typing import Optional, Set

from ..contracts.v1 import EVENT_FEEDBACK_CLOSED, EVENT_FEEDBACK_REQUEST, FeedbackRequestDoc
from ..util.time import seconds_since
from .alert import AlertTrigger
from .mailbox import MailboxStore
from .session import NotificationSink

logger = logging.getLogger("ccmcp.watcher")


class DirectoryWatcher:
    """Polls `requests/` and raises one operator event per newly seen request.

    Interval polling instead of OS change notifications keeps it portable.
    Marking a request `processed` is bookkeeping only: the document stays,
    since the waiting tool call reads its absence as a cancellation.
    """

    def __init__(
        self,
        mailbox: MailboxStore,
        sink: NotificationSink,
        *,
        interval_s: float = 1.0,
        renotify_window_s: float = 300.0,
        orphan_grace_s: float = 30.0,
        alert: Optional[AlertTrigger] = None,
    ):
        self.mailbox = mailbox
        self.sink = sink
        self.interval_s = max(0.001, float(interval_s))
        self.renotify_window_s = max(0.0, float(renotify_window_s))
        self.orphan_grace_s = max(0.0, float(orphan_grace_s))
        self.alert = alert
        self._surfaced: Set[str] = set()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------

    def _recently_seen(self, doc: FeedbackRequestDoc) -> bool:
        if self.renotify_window_s <= 0:
            return False
        elapsed = seconds_since(doc.last_seen_at)
        return elapsed is not None and elapsed < self.renotify_window_s

    def _is_orphan(self, doc: FeedbackRequestDoc) -> bool:
        """An answered request whose response is already consumed.

        The waiter deletes the request right after taking the response; a
        bookkeeping rewrite racing that delete can bring the document back.
        """
        if not doc.feedback_submitted or self.mailbox.has_response(doc.session_id):
            return False
        elapsed = seconds_since(doc.last_seen_at)
        return elapsed is not None and elapsed >= self.orphan_grace_s

    def _reap(self, doc: FeedbackRequestDoc) -> None:
        # Re-check right before deleting: a reply may have landed meanwhile.
        if self.mailbox.has_response(doc.session_id):
            return
        if self.mailbox.delete_request(doc.session_id):
            logger.warning("removed orphaned answered request", extra={"session_id": doc.session_id})

    def _emit_request(self, doc: FeedbackRequestDoc, *, replay: bool) -> bool:
        try:
            self.sink.emit(EVENT_FEEDBACK_REQUEST, doc.event_payload(replay=replay))
        except Exception as e:
            # Leave the document untouched so the next scan retries it.
            logger.warning("failed to raise feedback event: %s", e, extra={"session_id": doc.session_id})
            return False
        self._surfaced.add(doc.session_id)
        return True

    def _emit_closed(self, session_ids: Set[str]) -> None:
        for sid in sorted(session_ids):
            try:
                self.sink.emit(EVENT_FEEDBACK_CLOSED, {"session_id": sid})
            except Exception as e:
                logger.warning("failed to raise closed event: %s", e, extra={"session_id": sid})
                continue
            self._surfaced.discard(sid)

    def scan(self, *, replay: bool = False) -> int:
        """One pass over the request directory; returns the number of events raised.

        `replay=True` also re-surfaces requests that were already processed, for
        a console that just (re)started. Those replays are not new notifications:
        no alert, no bookkeeping update.
        """
        with self._lock:
            present = self.mailbox.list_pending_request_ids()
            self._emit_closed(self._surfaced - present)

            raised = 0
            new = 0
            for sid in sorted(present):
                doc = self.mailbox.get_request(sid)
                if doc is None:
                    continue
                if self._is_orphan(doc):
                    self._reap(doc)
                    continue
                fresh = doc.status != "processed" and not self._recently_seen(doc)
                if not fresh:
                    if replay:
                        raised += int(self._emit_request(doc, replay=True))
                    continue
                if not self._emit_request(doc, replay=False):
                    continue
                raised += 1
                new += 1
                logger.info("feedback request surfaced", extra={"session_id": sid, "source": doc.source})
                try:
                    self.mailbox.mark_seen(sid, processed=True)
                except Exception as e:
                    logger.warning("failed to mark request processed: %s", e, extra={"session_id": sid})

            if new and self.alert is not None:
                try:
                    self.alert()
                except Exception as e:
                    logger.debug("alert failed: %s", e)
            return raised

    def scan_once(self) -> int:
        return self.scan(replay=False)

    # ------------------------------------------------------------------

    def _loop(self) -> None:
        logger.info("watching %s", self.mailbox.requests_dir)
        try:
            self.scan(replay=True)
        except Exception:
            logger.exception("initial scan failed")
        while not self._stop.wait(self.interval_s):
            try:
                self.scan_once()
            except Exception:
                logger.exception("scan failed")
        logger.info("watcher stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="ccmcp-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 5.0) -> None:
        self._stop.set()
        t = self._thread
        if t is not None:
            t.join(timeout=timeout_s)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
