"""
Delay Protocol Calculator — pure date arithmetic for the five waiting rules.

Variants
--------
  ten_minutes        checkpoint = start + 10 min   duration = 1 h
  twenty_four_hours  checkpoint = start + 24 h     duration = 24 h
  seventy_two_hours  checkpoint = start + 72 h     duration = 72 h
  until_payday       next 15th / 1st at 09:00      duration = 336 h (14 days)
  custom_date        max(date, start + 10 min)     duration = hours until date, min 1

Payday tie-break
----------------
The 15th is used only when the start is before the 15th AND the full
computed instant (15th 09:00 local) is strictly after the start. A start on
the 15th itself always rolls to the 1st of next month, whatever the hour.
If calendar construction fails (year overflow), fall back to start + 24 h.

No DB, no clock reads: every function takes its reference instants.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from dateutil.relativedelta import relativedelta

from defer.models.enums import DelayProtocolType

MIN_CUSTOM_DELAY = timedelta(minutes=10)
DEFAULT_DELAY = timedelta(hours=24)

PAYDAY_MID_MONTH = 15
PAYDAY_HOUR = 9
PAYDAY_DURATION_HOURS = 24 * 14

_FIXED_OFFSETS: dict[DelayProtocolType, timedelta] = {
    DelayProtocolType.ten_minutes: timedelta(minutes=10),
    DelayProtocolType.twenty_four_hours: timedelta(hours=24),
    DelayProtocolType.seventy_two_hours: timedelta(hours=72),
}

_FIXED_DURATIONS: dict[DelayProtocolType, int] = {
    DelayProtocolType.ten_minutes: 1,
    DelayProtocolType.twenty_four_hours: 24,
    DelayProtocolType.seventy_two_hours: 72,
}


def _aware(value: datetime, tz: tzinfo) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=tz)


@dataclass(frozen=True)
class DelayProtocol:
    type: DelayProtocolType
    custom_date: Optional[datetime] = None

    def decision_date(self, start: datetime, tz: tzinfo = timezone.utc) -> datetime:
        """Checkpoint for an intent started at `start`, in UTC."""
        start = _aware(start, tz)

        if self.type in _FIXED_OFFSETS:
            checkpoint = start + _FIXED_OFFSETS[self.type]
        elif self.type == DelayProtocolType.until_payday:
            checkpoint = next_payday(start, tz)
        else:
            floor = start + MIN_CUSTOM_DELAY
            if self.custom_date is None:
                checkpoint = start + DEFAULT_DELAY
            else:
                checkpoint = _aware(self.custom_date, tz)
            checkpoint = max(checkpoint, floor)

        return checkpoint.astimezone(timezone.utc)

    def duration_hours(self, now: datetime, tz: tzinfo = timezone.utc) -> int:
        """Nominal length of the wait, used for progress and analytics.

        A naive custom date is read in `tz`, the same calendar zone
        decision_date() uses.
        """
        if self.type in _FIXED_DURATIONS:
            return _FIXED_DURATIONS[self.type]
        if self.type == DelayProtocolType.until_payday:
            return PAYDAY_DURATION_HOURS
        if self.custom_date is None:
            return 24
        custom = _aware(self.custom_date, tz)
        return max(1, int((custom - now).total_seconds() / 3600))


def next_payday(start: datetime, tz: tzinfo = timezone.utc) -> datetime:
    local = start.astimezone(tz)

    def on_day(day: int, month_offset: int = 0) -> Optional[datetime]:
        try:
            month = local + relativedelta(months=month_offset)
            return month.replace(
                day=day, hour=PAYDAY_HOUR, minute=0, second=0, microsecond=0
            )
        except (ValueError, OverflowError):
            return None

    # Compared against `start` (UTC) so the check is on absolute instants,
    # not on wall-clock values sharing a tzinfo.
    if local.day < PAYDAY_MID_MONTH:
        mid_month = on_day(PAYDAY_MID_MONTH)
        if mid_month is not None and mid_month > start:
            return mid_month

    first_of_next = on_day(1, month_offset=1)
    if first_of_next is not None and first_of_next > start:
        return first_of_next

    return start + DEFAULT_DELAY


def progress_percent(start: datetime, checkpoint: datetime, now: datetime) -> float:
    """Fraction of the wait elapsed, clamped to [0, 1]."""
    total = (checkpoint - start).total_seconds()
    if total <= 0:
        return 1.0
    elapsed = (now - start).total_seconds()
    return min(max(elapsed / total, 0.0), 1.0)


def days_remaining(checkpoint: datetime, now: datetime, tz: tzinfo = timezone.utc) -> int:
    """Calendar days between today and the checkpoint day (negative when overdue)."""
    return (checkpoint.astimezone(tz).date() - now.astimezone(tz).date()).days


def calendar_days_between(start: datetime, end: datetime, tz: tzinfo = timezone.utc) -> int:
    """Whole local days from start to end, never below 1."""
    return max(1, (end.astimezone(tz).date() - start.astimezone(tz).date()).days)
