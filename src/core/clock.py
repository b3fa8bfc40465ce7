"""
Clock abstraction for AMP Tracker.

Completion timestamps are always assigned server-side from a Clock so that
services can be exercised deterministically in tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current instant (timezone-aware, UTC)."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """
    A clock frozen at a given instant, advanced manually.

    Usage:
        clock = FixedClock(datetime(2025, 8, 19, 12, 0, tzinfo=UTC))
        clock.advance(minutes=5)
    """

    def __init__(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant.astimezone(UTC)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        self._instant = instant.astimezone(UTC)

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)`` and return the new instant."""
        self._instant += timedelta(**kwargs)
        return self._instant


def epoch_ms(clock: Clock) -> int:
    """Current instant of ``clock`` in epoch milliseconds."""
    return int(clock.now().timestamp() * 1000)


__all__ = ["Clock", "SystemClock", "FixedClock", "epoch_ms"]
