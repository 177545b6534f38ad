"""
Injectable time source.

The calculator and classifier never read the wall clock themselves;
services receive a Clock so tests can move time deterministically.
"""
from datetime import date, datetime, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current instant (timezone-aware, UTC)."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def local_today(clock: Clock, tz_name: str = "UTC") -> date:
    """
    Current calendar day in the jurisdiction's local reckoning.

    Naive datetimes from a clock are treated as UTC.
    """
    now = clock.now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()
