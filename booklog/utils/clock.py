"""Timestamp helper that never goes backwards within a process."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

_lock = threading.Lock()
_last: Optional[datetime] = None


def utc_now() -> datetime:
    """Return the current UTC time, strictly later than any previous call.

    Two writes in the same clock tick still get distinct, ordered
    timestamps, which recency ordering and ``updatedAt`` rely on.
    """
    global _last
    with _lock:
        now = datetime.now(timezone.utc)
        if _last is not None and now <= _last:
            now = _last + timedelta(microseconds=1)
        _last = now
        return now
