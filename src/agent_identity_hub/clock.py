"""UTC time helpers shared by every service.

Services accept an optional ``clock`` callable returning an aware UTC
datetime so that time-dependent logic can be pinned in tests.
"""
from __future__ import annotations

import datetime
from typing import Callable

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def parse_datetime(value: object) -> datetime.datetime | None:
    """Coerce an ISO-8601 string or datetime into an aware UTC datetime.

    Naive datetimes are assumed to be UTC. Returns ``None`` when *value*
    is neither a datetime nor a parseable ISO-8601 string.
    """
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def to_iso(value: datetime.datetime | None) -> str | None:
    """Serialize an optional datetime to ISO-8601."""
    return value.isoformat() if value is not None else None


__all__ = ["Clock", "parse_datetime", "to_iso", "utc_now"]
