from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Set

from pydantic import ValidationError

from ..contracts.v1 import FeedbackRequestDoc, FeedbackResponseDoc
from ..paths import requests_dir, responses_dir
from ..util.fs import TMP_PREFIX, atomic_write_json, load_json_object, remove_file
from ..util.time import utc_now_iso

logger = logging.getLogger("ccmcp.mailbox")


class MailboxError(RuntimeError):
    """A mailbox document could not be written."""

    def __init__(self, message: str, *, session_id: str = "", path: Optional[Path] = None):
        super().__init__(message)
        self.session_id = session_id
        self.path = path


def _valid_session_id(session_id: str) -> str:
    sid = str(session_id or "").strip()
    if not sid or "/" in sid or "\\" in sid or sid.startswith(".") or sid in (".", ".."):
        raise ValueError(f"invalid session id: {session_id!r}")
    return sid


class MailboxStore:
    """Request/response documents shared between the tool caller and the operator.

    Layout under `root`:
        requests/<session_id>.json   FeedbackRequestDoc
        responses/<session_id>.json  FeedbackResponseDoc

    Directories are created lazily; any process with access to `root` may
    read, and the only write primitive is an atomic whole-file replace.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def requests_dir(self) -> Path:
        return requests_dir(self.root)

    @property
    def responses_dir(self) -> Path:
        return responses_dir(self.root)

    def request_path(self, session_id: str) -> Path:
        return self.requests_dir / f"{_valid_session_id(session_id)}.json"

    def response_path(self, session_id: str) -> Path:
        return self.responses_dir / f"{_valid_session_id(session_id)}.json"

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def put_request(self, doc: FeedbackRequestDoc) -> Path:
        path = self.request_path(doc.session_id)
        try:
            atomic_write_json(path, doc.model_dump())
        except OSError as e:
            logger.error("failed to write request document: %s", e, extra={"session_id": doc.session_id})
            raise MailboxError(f"cannot write request document: {e}", session_id=doc.session_id, path=path) from e
        return path

    def get_request(self, session_id: str) -> Optional[FeedbackRequestDoc]:
        raw = load_json_object(self.request_path(session_id))
        if raw is None:
            return None
        try:
            return FeedbackRequestDoc.model_validate(raw)
        except ValidationError as e:
            logger.warning("malformed request document: %s", e, extra={"session_id": session_id})
            return None

    def has_request(self, session_id: str) -> bool:
        try:
            return self.request_path(session_id).is_file()
        except OSError:
            # Can't tell; absence is the cancellation signal so don't assume it.
            return True

    def delete_request(self, session_id: str) -> bool:
        try:
            return remove_file(self.request_path(session_id))
        except OSError as e:
            logger.warning("failed to delete request document: %s", e, extra={"session_id": session_id})
            return False

    def list_pending_request_ids(self) -> Set[str]:
        d = self.requests_dir
        try:
            entries = list(d.iterdir())
        except FileNotFoundError:
            return set()
        except OSError as e:
            logger.warning("cannot list %s: %s", d, e)
            return set()
        return {p.stem for p in entries if p.suffix == ".json" and not p.name.startswith(TMP_PREFIX)}

    def iter_requests(self) -> Iterator[FeedbackRequestDoc]:
        for sid in sorted(self.list_pending_request_ids()):
            doc = self.get_request(sid)
            if doc is not None:
                yield doc

    def mark_seen(self, session_id: str, *, processed: bool = True, feedback_submitted: bool = False) -> Optional[FeedbackRequestDoc]:
        """Update notification bookkeeping on an existing request.

        Never creates or deletes the document: if it vanished (cancelled or
        resolved) in the meantime, nothing is written and None is returned.
        """
        doc = self.get_request(session_id)
        if doc is None:
            return None
        now = utc_now_iso()
        doc.last_seen_at = now
        if processed and doc.status != "processed":
            doc.status = "processed"
            doc.processed_at = doc.processed_at or now
        if feedback_submitted:
            doc.feedback_submitted = True
        if not self.has_request(session_id):
            return None
        self.put_request(doc)
        return doc

    def restore_request(self, doc: FeedbackRequestDoc) -> bool:
        """Rewrite a request to an earlier snapshot, unless it is gone by now."""
        if not self.has_request(doc.session_id):
            return False
        self.put_request(doc)
        return True

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def put_response(self, session_id: str, feedback: str) -> Path:
        path = self.response_path(session_id)
        try:
            atomic_write_json(path, FeedbackResponseDoc(feedback=str(feedback)).model_dump())
        except OSError as e:
            logger.error("failed to write response document: %s", e, extra={"session_id": session_id})
            raise MailboxError(f"cannot write response document: {e}", session_id=session_id, path=path) from e
        return path

    def has_response(self, session_id: str) -> bool:
        try:
            return self.response_path(session_id).is_file()
        except OSError:
            return True

    def take_response(self, session_id: str) -> Optional[str]:
        """Consume the response for `session_id`, if one is readable.

        Read-then-delete is enough: exactly one waiter exists per session.
        """
        path = self.response_path(session_id)
        raw = load_json_object(path)
        if raw is None:
            return None
        feedback = raw.get("feedback")
        if not isinstance(feedback, str):
            return None
        try:
            remove_file(path)
        except OSError as e:
            logger.warning("failed to remove consumed response: %s", e, extra={"session_id": session_id})
        return feedback

    def discard_response(self, session_id: str) -> bool:
        try:
            return remove_file(self.response_path(session_id))
        except OSError:
            return False
