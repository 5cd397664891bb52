"""Time-sortable identifiers (ULID)."""

from __future__ import annotations

import threading
from datetime import datetime

from ulid import ULID

_lock = threading.Lock()
_last: ULID | None = None


def new_ulid(now: datetime | None = None) -> str:
    """Return a 26 character ULID.

    Identifiers generated in this process are strictly increasing: within the
    same millisecond (or if the clock steps backwards) the previous value is
    incremented instead of drawing fresh randomness.
    """

    global _last

    with _lock:
        candidate = ULID() if now is None else ULID.from_datetime(now)
        if _last is not None and candidate.milliseconds <= _last.milliseconds:
            candidate = ULID.from_int(int(_last) + 1)
        _last = candidate
    return str(candidate)
