"""Feedback session lifecycle.

    CREATED --(live sink)--> NOTIFIED --+--> RESPONDED   response document consumed
                                        +--> CANCELLED   request document gone
                                        +--> TIMED_OUT   optional ceiling reached

CREATED and NOTIFIED are both `pending` on disk. The filesystem is the only
source of truth: the live sink is a best-effort shortcut for an operator
console running in the same process.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Dict, Optional, Protocol

from ..contracts.v1 import DEFAULT_CONTEXT, EVENT_FEEDBACK_REQUEST, FeedbackRequestDoc, FeedbackResult
from ..util.time import utc_now_iso
from .alert import AlertTrigger
from .mailbox import MailboxError, MailboxStore
from .source import display_name

logger = logging.getLogger("ccmcp.session")


class NotificationSink(Protocol):
    """Live, same-process channel to the operator surface."""

    def emit(self, event: str, payload: Dict[str, Any]) -> None: ...


def new_session_id() -> str:
    return uuid.uuid4().hex


class FeedbackSession:
    def __init__(
        self,
        mailbox: MailboxStore,
        *,
        ai_response: str,
        context: str = "",
        source: str = "unknown",
        poll_interval: float = 0.5,
        timeout_s: float = 0.0,
        stop_event: Optional[threading.Event] = None,
    ):
        self.mailbox = mailbox
        self.poll_interval = max(0.001, float(poll_interval))
        self.timeout_s = max(0.0, float(timeout_s or 0.0))
        self.stop_event = stop_event or threading.Event()
        self.doc = FeedbackRequestDoc(
            session_id=new_session_id(),
            ai_response=str(ai_response or ""),
            context=str(context or "").strip() or DEFAULT_CONTEXT,
            source=source,
            source_display=display_name(source),
        )
        self.state = "new"

    @property
    def session_id(self) -> str:
        return self.doc.session_id

    def _log_extra(self) -> Dict[str, Any]:
        return {"session_id": self.session_id, "source": self.doc.source}

    def create(self) -> None:
        """Write the request document. MailboxError propagates: nothing to wait on."""
        self.mailbox.put_request(self.doc)
        self.state = "created"
        logger.info("feedback request created", extra=self._log_extra())

    def notify(self, sink: Optional[NotificationSink], alert: Optional[AlertTrigger] = None) -> bool:
        if sink is None:
            return False
        try:
            sink.emit(EVENT_FEEDBACK_REQUEST, self.doc.event_payload())
        except Exception as e:
            logger.warning("live notification failed: %s", e, extra=self._log_extra())
            return False
        # Surfaced already; keep the directory watcher from raising it again.
        try:
            self.mailbox.mark_seen(self.session_id, processed=True)
        except Exception as e:
            logger.warning("failed to mark request processed: %s", e, extra=self._log_extra())
        self.state = "notified"
        if alert is not None:
            try:
                alert()
            except Exception as e:
                logger.debug("alert failed: %s", e, extra=self._log_extra())
        return True

    def _finish(self, result: FeedbackResult) -> FeedbackResult:
        self.state = result.type
        logger.info("feedback session resolved: %s", result.type, extra=self._log_extra())
        return result

    def poll(self) -> Optional[FeedbackResult]:
        """One tick of the wait loop. A response always wins over absence."""
        text = self.mailbox.take_response(self.session_id)
        if text is not None:
            self.doc.status = "processed"
            self.doc.processed_at = utc_now_iso()
            self.mailbox.delete_request(self.session_id)
            return FeedbackResult(type="response", session_id=self.session_id, user_feedback=text)
        if not self.mailbox.has_request(self.session_id):
            self.doc.status = "cancelled"
            self.doc.cancelled_at = utc_now_iso()
            return FeedbackResult(
                type="cancelled",
                session_id=self.session_id,
                message="Feedback session was cancelled by the user.",
            )
        return None

    def _abandon(self) -> None:
        self.mailbox.delete_request(self.session_id)
        self.mailbox.discard_response(self.session_id)

    def wait(self) -> FeedbackResult:
        deadline = time.monotonic() + self.timeout_s if self.timeout_s > 0 else None
        while True:
            result = self.poll()
            if result is not None:
                return self._finish(result)

            if deadline is not None and time.monotonic() >= deadline:
                self._abandon()
                return self._finish(
                    FeedbackResult(
                        type="timeout",
                        session_id=self.session_id,
                        message=f"No feedback received within {self.timeout_s:g} seconds.",
                    )
                )

            wait_s = self.poll_interval
            if deadline is not None:
                wait_s = max(0.0, min(wait_s, deadline - time.monotonic()))
            if self.stop_event.wait(wait_s):
                # A late response still wins over the interruption.
                result = self.poll()
                if result is not None:
                    return self._finish(result)
                self._abandon()
                self.doc.status = "cancelled"
                self.doc.cancelled_at = utc_now_iso()
                return self._finish(
                    FeedbackResult(
                        type="cancelled",
                        session_id=self.session_id,
                        message="Feedback session was interrupted.",
                    )
                )

    def run(self, *, sink: Optional[NotificationSink] = None, alert: Optional[AlertTrigger] = None) -> FeedbackResult:
        self.create()
        self.notify(sink, alert)
        return self.wait()


def request_feedback(
    mailbox: MailboxStore,
    *,
    ai_response: str,
    context: str = "",
    source: str = "unknown",
    sink: Optional[NotificationSink] = None,
    alert: Optional[AlertTrigger] = None,
    poll_interval: float = 0.5,
    timeout_s: float = 0.0,
    stop_event: Optional[threading.Event] = None,
) -> FeedbackResult:
    session = FeedbackSession(
        mailbox,
        ai_response=ai_response,
        context=context,
        source=source,
        poll_interval=poll_interval,
        timeout_s=timeout_s,
        stop_event=stop_event,
    )
    return session.run(sink=sink, alert=alert)


# =============================================================================
# Operator-side actions
# =============================================================================


def submit_reply(mailbox: MailboxStore, session_id: str, feedback: str) -> bool:
    """Answer a session. Returns False when the request is already gone.

    The request is marked before the response is written: once the response
    exists the waiter may delete the request at any moment, and a rewrite after
    that would resurrect it. If the response cannot be written, the request is
    put back the way it was (no longer claiming an answer) and the
    MailboxError propagates.
    """
    before = mailbox.get_request(session_id)
    if before is None:
        return False
    if mailbox.mark_seen(session_id, processed=True, feedback_submitted=True) is None:
        return False
    try:
        mailbox.put_response(session_id, feedback)
    except MailboxError:
        try:
            mailbox.restore_request(before)
        except MailboxError as e:
            logger.error("failed to roll back request after reply failure: %s", e, extra={"session_id": session_id})
        raise
    logger.info("feedback submitted", extra={"session_id": session_id})
    return True


def cancel_session(mailbox: MailboxStore, session_id: str) -> bool:
    """Cancel by deleting the request document. Safe to call repeatedly."""
    removed = mailbox.delete_request(session_id)
    if removed:
        logger.info("feedback session cancelled", extra={"session_id": session_id})
    return removed
