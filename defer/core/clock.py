"""
Injectable clock + calendar.

`now()` is always timezone-aware UTC. `tz` is the user's calendar zone,
used wherever the math depends on local days (payday, reminder snapping,
day counts).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo


class Clock:
    tz: tzinfo = timezone.utc

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def __init__(self, tz: tzinfo = timezone.utc):
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FixedClock(Clock):
    """Clock pinned to an instant; tests move it with advance()."""

    def __init__(self, at: datetime, tz: tzinfo = timezone.utc):
        if at.tzinfo is None:
            raise ValueError("FixedClock needs a timezone-aware datetime")
        self._at = at.astimezone(timezone.utc)
        self.tz = tz

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = at.astimezone(timezone.utc)

    def advance(self, **delta) -> datetime:
        self._at = self._at + timedelta(**delta)
        return self._at
