from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat().replace("+00:00", "Z")


def parse_utc_iso(ts: Optional[str]) -> Optional[datetime]:
    s = (ts or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[: -len("Z")] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def seconds_since(ts: Optional[str], *, now: Optional[datetime] = None) -> Optional[float]:
    """Elapsed seconds since an ISO timestamp; None when `ts` is unparsable."""
    dt = parse_utc_iso(ts)
    if dt is None:
        return None
    return ((now or utc_now()) - dt).total_seconds()
