from __future__ import annotations

import time
from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return timezone-aware UTC datetime.

    Preferred over deprecated/naive utcnow().
    """
    return datetime.now(timezone.utc)


def now_db_utc() -> datetime:
    """Return UTC time for database columns that are naive (TIMESTAMP WITHOUT TIME ZONE)."""
    return now_utc().replace(tzinfo=None)


def now_millis() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def millis_to_iso(value: int | None) -> str | None:
    """Render epoch milliseconds as an ISO-8601 UTC string."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
