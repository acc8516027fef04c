"""
Notification Scheduling Planner — turns live intents into local reminders.

Reminder kinds
--------------
  daily               repeating, at the daily time               defer.daily
  checkpoint_due      at the exact checkpoint                    defer.checkpoint.<intent>
  checkpoint_warning  3 and 1 days before, snapped               defer.warning.<intent>.<days>
  milestone           25/50/75 % of the wait, snapped            defer.milestone.<intent>.<pct>
  postpone_reminder   postponed intents, checkpoint day, snapped defer.postpone.<intent>

"Snapped" means moved to the preferred reminder time on the same local
day. Only active_wait intents with a future checkpoint are planned; every
non-repeating instant must lie in the future. Warnings and milestones must
also fall strictly before the checkpoint; the postpone reminder may land
later on the checkpoint day.

Identifiers are deterministic, so a re-run replaces earlier requests rather
than adding to them. plan_reminders() is pure; sync_notifications() applies
a plan to a NotificationCenter.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Optional, Protocol

from defer.core.clock import Clock
from defer.models.enums import IntentStatus
from defer.models.intent import Intent

logger = logging.getLogger(__name__)

MANAGED_PREFIX = "defer."
DAILY_IDENTIFIER = "defer.daily"

MILESTONE_PERCENTS = (25, 50, 75)
WARNING_DAYS = (3, 1)
DEFAULT_MAX_PLANNED = 60


class AuthorizationState(str, enum.Enum):
    enabled = "enabled"
    denied = "denied"
    not_determined = "not_determined"
    unknown = "unknown"


class ReminderKind(str, enum.Enum):
    daily = "daily"
    checkpoint_due = "checkpoint_due"
    checkpoint_warning = "checkpoint_warning"
    milestone = "milestone"
    postpone_reminder = "postpone_reminder"


@dataclass(frozen=True)
class NotificationPreferences:
    reminders_enabled: bool = False
    daily_enabled: bool = True
    checkpoint_due_enabled: bool = True
    milestones_enabled: bool = True
    warnings_enabled: bool = True
    postpone_reminders_enabled: bool = True
    reminder_time: time = time(20, 0)
    daily_time: Optional[time] = None   # falls back to reminder_time

    @property
    def has_any_schedule_enabled(self) -> bool:
        return self.reminders_enabled and (
            self.daily_enabled
            or self.checkpoint_due_enabled
            or self.milestones_enabled
            or self.warnings_enabled
            or self.postpone_reminders_enabled
        )


@dataclass(frozen=True)
class PlannedReminder:
    identifier: str
    kind: ReminderKind
    fire_at: datetime           # UTC; for repeating reminders, the next firing
    title: str
    body: str
    repeats: bool = False
    intent_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Instant helpers
# ---------------------------------------------------------------------------

def snap_to_time(instant: datetime, at: time, tz: tzinfo) -> datetime:
    """Same local calendar day as `instant`, at wall-clock time `at`, in UTC."""
    local_day = instant.astimezone(tz).date()
    return datetime.combine(local_day, at, tzinfo=tz).astimezone(timezone.utc)


def next_daily_occurrence(now: datetime, at: time, tz: tzinfo) -> datetime:
    candidate = snap_to_time(now, at, tz)
    if candidate <= now:
        tomorrow = now.astimezone(tz).date() + timedelta(days=1)
        candidate = datetime.combine(tomorrow, at, tzinfo=tz).astimezone(timezone.utc)
    return candidate


# ---------------------------------------------------------------------------
# Per-kind builders
# ---------------------------------------------------------------------------

def _checkpoint_due(intent: Intent) -> PlannedReminder:
    return PlannedReminder(
        identifier=f"defer.checkpoint.{intent.id}",
        kind=ReminderKind.checkpoint_due,
        fire_at=intent.checkpoint_time,
        title="Checkpoint due",
        body=f"{intent.title}: decide now, postpone, or resist intentionally.",
        intent_id=intent.id,
    )


def _warnings(intent: Intent, reminder_time: time, tz: tzinfo) -> list[PlannedReminder]:
    out = []
    for days in WARNING_DAYS:
        fire_at = snap_to_time(intent.checkpoint_time - timedelta(days=days), reminder_time, tz)
        label = "tomorrow" if days == 1 else f"in {days} days"
        out.append(PlannedReminder(
            identifier=f"defer.warning.{intent.id}.{days}",
            kind=ReminderKind.checkpoint_warning,
            fire_at=fire_at,
            title="Checkpoint approaching",
            body=f"{intent.title}: your checkpoint is {label}.",
            intent_id=intent.id,
        ))
    return out


def _milestones(intent: Intent, reminder_time: time, tz: tzinfo) -> list[PlannedReminder]:
    span = intent.checkpoint_time - intent.start_time
    out = []
    for pct in MILESTONE_PERCENTS:
        raw = intent.start_time + span * pct / 100
        if intent.fallback_action:
            body = f"{pct}% of the wait is behind you. Try your fallback: {intent.fallback_action}"
        else:
            body = f"{pct}% of the wait is behind you. Revisit why this matters."
        out.append(PlannedReminder(
            identifier=f"defer.milestone.{intent.id}.{pct}",
            kind=ReminderKind.milestone,
            fire_at=snap_to_time(raw, reminder_time, tz),
            title=f"{intent.title}: {pct}% there",
            body=body,
            intent_id=intent.id,
        ))
    return out


def _postpone_reminder(intent: Intent, reminder_time: time, tz: tzinfo) -> PlannedReminder:
    return PlannedReminder(
        identifier=f"defer.postpone.{intent.id}",
        kind=ReminderKind.postpone_reminder,
        fire_at=snap_to_time(intent.checkpoint_time, reminder_time, tz),
        title="Postpone reminder",
        body=f"{intent.title} was postponed. Keep the next checkpoint intentional.",
        intent_id=intent.id,
    )


# ---------------------------------------------------------------------------
# Planning (pure)
# ---------------------------------------------------------------------------

def plan_reminders(
    intents: Iterable[Intent],
    preferences: NotificationPreferences,
    now: datetime,
    tz: tzinfo = timezone.utc,
    max_planned: int = DEFAULT_MAX_PLANNED,
) -> list[PlannedReminder]:
    """
    Build the full reminder set for this instant. Same inputs → same output.
    Returns [] when reminders are globally off.
    """
    if not preferences.has_any_schedule_enabled:
        return []

    planned: list[PlannedReminder] = []

    if preferences.daily_enabled:
        daily_time = preferences.daily_time or preferences.reminder_time
        planned.append(PlannedReminder(
            identifier=DAILY_IDENTIFIER,
            kind=ReminderKind.daily,
            fire_at=next_daily_occurrence(now, daily_time, tz),
            title="Daily check-in",
            body="If an urge hits, log it now and make an intentional choice at your checkpoint.",
            repeats=True,
        ))

    eligible = sorted(
        (i for i in intents
         if i.status == IntentStatus.active_wait and i.checkpoint_time > now),
        key=lambda i: (i.checkpoint_time, i.id),
    )

    for intent in eligible:
        candidates: list[PlannedReminder] = []
        if preferences.checkpoint_due_enabled:
            candidates.append(_checkpoint_due(intent))
        snapped: list[PlannedReminder] = []
        if preferences.warnings_enabled:
            snapped.extend(_warnings(intent, preferences.reminder_time, tz))
        if preferences.milestones_enabled:
            snapped.extend(_milestones(intent, preferences.reminder_time, tz))
        candidates.extend(
            r for r in snapped if now < r.fire_at < intent.checkpoint_time
        )
        if preferences.postpone_reminders_enabled and intent.postpone_count > 0:
            postpone = _postpone_reminder(intent, preferences.reminder_time, tz)
            if postpone.fire_at > now:
                candidates.append(postpone)

        # One reminder per (intent, instant); earlier kinds win.
        seen: set[datetime] = set()
        for reminder in candidates:
            if reminder.fire_at in seen:
                continue
            seen.add(reminder.fire_at)
            planned.append(reminder)

    planned.sort(key=lambda r: (r.fire_at, r.identifier))
    if len(planned) > max_planned:
        logger.info("Notification plan capped at %d of %d reminders", max_planned, len(planned))
    return planned[:max_planned]


# ---------------------------------------------------------------------------
# Delivery adapter
# ---------------------------------------------------------------------------

class NotificationCenter(Protocol):
    def pending(self) -> list[PlannedReminder]: ...

    def add(self, reminder: PlannedReminder) -> None: ...

    def remove(self, identifiers: Iterable[str]) -> None: ...


class InMemoryNotificationCenter:
    """Keeps pending requests keyed by identifier; adding an id replaces it."""

    def __init__(self):
        self._pending: dict[str, PlannedReminder] = {}
        self._lock = threading.Lock()

    def pending(self) -> list[PlannedReminder]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda r: (r.fire_at, r.identifier))

    def add(self, reminder: PlannedReminder) -> None:
        with self._lock:
            self._pending[reminder.identifier] = reminder

    def remove(self, identifiers: Iterable[str]) -> None:
        with self._lock:
            for identifier in identifiers:
                self._pending.pop(identifier, None)


def sync_notifications(
    center: NotificationCenter,
    preferences: NotificationPreferences,
    intents: Iterable[Intent],
    authorization: AuthorizationState,
    clock: Clock,
    max_planned: int = DEFAULT_MAX_PLANNED,
) -> list[PlannedReminder]:
    """
    Withdraw every managed pending request, then schedule the fresh plan.
    Disabled reminders or missing authorization only withdraw.
    """
    managed = [r.identifier for r in center.pending() if r.identifier.startswith(MANAGED_PREFIX)]

    if not preferences.has_any_schedule_enabled or authorization != AuthorizationState.enabled:
        center.remove(managed)
        if managed:
            logger.info("Withdrew %d managed reminders (enabled=%s, authorization=%s)",
                        len(managed), preferences.reminders_enabled, authorization.value)
        return []

    plan = plan_reminders(intents, preferences, clock.now(), clock.tz, max_planned)
    center.remove(managed)
    for reminder in plan:
        center.add(reminder)
    logger.info("Scheduled %d reminders (replaced %d)", len(plan), len(managed))
    return plan
