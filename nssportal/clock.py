"""
nssportal.clock — Injectable time source
=========================================

Workflows never call ``datetime.now`` directly; they take a ``Clock`` so
tests can pin deadlines and the monthly badge window.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Default clock: the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def start_of_month(now: datetime) -> datetime:
    """Midnight on the first day of *now*'s calendar month (UTC)."""
    return as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
