from __future__ import annotations

from .feedback import (
    DEFAULT_CONTEXT,
    EVENT_FEEDBACK_CLOSED,
    EVENT_FEEDBACK_REQUEST,
    FeedbackEvent,
    FeedbackRequestDoc,
    FeedbackResponseDoc,
    FeedbackResult,
    FeedbackResultType,
    SessionStatus,
)
from .rpc import RpcError, ToolInfo

__all__ = [
    "DEFAULT_CONTEXT",
    "EVENT_FEEDBACK_CLOSED",
    "EVENT_FEEDBACK_REQUEST",
    "FeedbackEvent",
    "FeedbackRequestDoc",
    "FeedbackResponseDoc",
    "FeedbackResult",
    "FeedbackResultType",
    "RpcError",
    "SessionStatus",
    "ToolInfo",
]
