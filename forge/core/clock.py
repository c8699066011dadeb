"""Timestamp helpers shared by the domain models."""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def advance_from(previous: Optional[datetime]) -> datetime:
    """Return now, nudged forward so it is strictly later than ``previous``.

    Two mutations inside the same clock tick must still produce increasing
    ``updated_at`` values.
    """
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def not_before(previous: Optional[datetime]) -> datetime:
    """Return now, or ``previous`` if the wall clock went backwards."""
    now = utc_now()
    if previous is not None and now < previous:
        return previous
    return now
