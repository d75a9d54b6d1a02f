"""Feedback mailbox contracts.

Request documents live at `requests/<session_id>.json` and are owned by
whichever process wrote them last; response documents live at
`responses/<session_id>.json`, written once by the operator and consumed once
by the waiting tool call.
"""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...util.time import utc_now_iso


SessionStatus = Literal["pending", "processed", "cancelled"]
FeedbackResultType = Literal["response", "cancelled", "timeout"]

DEFAULT_CONTEXT = "Feedback Session"

# Events raised to the operator surface (notification sink).
EVENT_FEEDBACK_REQUEST = "feedback-request"
EVENT_FEEDBACK_CLOSED = "feedback-closed"


class FeedbackRequestDoc(BaseModel):
    """One feedback session as stored on disk."""

    v: int = 1
    session_id: str
    ai_response: str = ""
    context: str = DEFAULT_CONTEXT
    source: str = "unknown"           # raw MCP_SOURCE value, never caller-supplied
    source_display: str = "Unknown AI Tool"
    status: SessionStatus = "pending"
    created_at: str = Field(default_factory=utc_now_iso)
    last_seen_at: Optional[str] = None
    processed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    feedback_submitted: bool = False

    # Bookkeeping added by other tool versions must survive a rewrite.
    model_config = ConfigDict(extra="allow")

    def event_payload(self, *, replay: bool = False) -> Dict[str, Any]:
        return FeedbackEvent(
            session_id=self.session_id,
            ai_response=self.ai_response,
            context=self.context,
            created_at=self.created_at,
            source=self.source,
            source_display=self.source_display,
            replay=replay,
        ).model_dump()


class FeedbackResponseDoc(BaseModel):
    feedback: str
    timestamp: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(extra="allow")


class FeedbackEvent(BaseModel):
    """Payload of a `feedback-request` event."""

    session_id: str
    ai_response: str = ""
    context: str = DEFAULT_CONTEXT
    created_at: str = ""
    source: str = "unknown"
    source_display: str = "Unknown AI Tool"
    replay: bool = False  # True for rescans of requests surfaced before

    model_config = ConfigDict(extra="forbid")


class FeedbackResult(BaseModel):
    """Terminal outcome of a feedback session, returned to the tool caller."""

    type: FeedbackResultType
    session_id: str
    user_feedback: Optional[str] = None
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
