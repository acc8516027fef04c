"""
Intent Lifecycle Repository — the only code path that mutates intents.

Public API
----------
capture_intent(title, protocol, ...)                  → Intent
update_intent(intent_id, **changes)                   → Intent
delete_intent(intent_id)                              → None
log_urge(intent_id, intensity, note, used_fallback)   → UrgeEvent
delete_urge_event(urge_id)                            → None
complete_decision(intent_id, outcome, ...)            → CompletionRecord
postpone_decision(intent_id, protocol, note)          → CompletionRecord
recover_latest_strict_failure(intent_id=None)         → Intent | None
refresh_lifecycle(reference=None, cancel_event=None)  → int

Lifecycle
---------
  active_wait ──refresh (checkpoint ≤ now)──► checkpoint_due
  active_wait / checkpoint_due ──complete──► resolved | canceled
  active_wait / checkpoint_due ──postpone──► active_wait
  resolved (gave_in only) ──recover──► active_wait

Every mutation runs validate → mutate → commit, then best-effort side
effects: achievement re-evaluation, outbox + analytics enqueue. Side effects
run strictly after the commit and never undo it. Each mutation enqueues
exactly one outbox entry; a new achievement unlock adds its own.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from defer.core.clock import Clock
from defer.core.errors import (
    CheckpointUnavailableError,
    EmptyTitleError,
    IntentNotFoundError,
    InvalidDateRangeError,
    InvalidOutcomeError,
    InvalidStateError,
    InvalidStatusTransitionError,
    PersistenceError,
    UrgeEventNotFoundError,
)
from defer.models.achievement_unlock import AchievementUnlock
from defer.models.completion_record import CompletionRecord
from defer.models.enums import (
    DecisionOutcome,
    DelayProtocolType,
    IntentCategory,
    IntentKind,
    IntentStatus,
)
from defer.models.intent import Intent
from defer.models.reward_entry import RewardEntry
from defer.models.urge_event import UrgeEvent, clamp_intensity
from defer.services import achievement_engine
from defer.services.delay_protocol import DelayProtocol, calendar_days_between
from defer.services.outbox import (
    AnalyticsEvent,
    AnalyticsEventName,
    SideEffectDispatcher,
    SyncOperation,
    SyncOperationKind,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REWARD_POINTS: dict[DecisionOutcome, int] = {
    DecisionOutcome.resisted: 10,
    DecisionOutcome.intentional_yes: 6,
    DecisionOutcome.gave_in: 2,
}
REFLECTION_BONUS_POINTS = 2
FALLBACK_ACTION_POINTS = 1

RECOVERY_EXTENSION = timedelta(hours=6)

MIN_SCORE = 1
MAX_SCORE = 5

_UNSET: Any = object()


class LifecycleRefreshCancelled(Exception):
    """The sweep was cancelled before committing; nothing was written."""


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


def _clean(text: Optional[str]) -> Optional[str]:
    return None if _is_blank(text) else text.strip()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class IntentRepository:
    """
    Wraps one Session. The clock and the side-effect dispatcher are injected;
    without a dispatcher, outbox/analytics messages are simply not produced.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock,
        side_effects: Optional[SideEffectDispatcher] = None,
    ):
        self.db = db
        self.clock = clock
        self.side_effects = side_effects

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _aware(self, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=self.clock.tz)

    @staticmethod
    def _validate_title(title: Optional[str]) -> str:
        if _is_blank(title):
            raise EmptyTitleError()
        return title.strip()

    @staticmethod
    def _validate_cost(cost) -> Optional[Decimal]:
        if cost is None:
            return None
        cost = Decimal(str(cost))
        if cost < 0:
            raise InvalidStateError("Estimated cost must be zero or greater.")
        return cost

    @staticmethod
    def _validate_range(start: datetime, checkpoint: datetime) -> None:
        if checkpoint <= start:
            raise InvalidDateRangeError(start, checkpoint)

    @staticmethod
    def _validate_duration(hours: int) -> None:
        if hours < 0:
            raise InvalidStateError("Delay duration must be zero or greater.")

    @staticmethod
    def _validate_score(name: str, value: Optional[int]) -> None:
        if value is not None and not MIN_SCORE <= value <= MAX_SCORE:
            raise InvalidStateError(f"{name} must be between {MIN_SCORE} and {MAX_SCORE}.")

    def _require_open(self, intent: Intent, action: str) -> None:
        if intent.status.is_terminal:
            raise InvalidStatusTransitionError(intent.id, intent.status.value, action)

    # ------------------------------------------------------------------
    # Persistence + side effects
    # ------------------------------------------------------------------

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Commit failed while trying to %s", action)
            raise PersistenceError(f"Could not {action}: {exc.__class__.__name__}") from exc

    def _enqueue(
        self,
        kind: SyncOperationKind,
        intent_id: Optional[str],
        **payload: Any,
    ) -> None:
        if self.side_effects is None:
            return
        self.side_effects.enqueue_operation(SyncOperation(
            kind=kind,
            intent_id=intent_id,
            created_at=self.clock.now(),
            payload={k: str(v) for k, v in payload.items() if v is not None},
        ))

    def _track(self, event: str, intent: Intent, **extras: Any) -> None:
        if self.side_effects is None:
            return
        self.side_effects.track(AnalyticsEvent(
            event=event,
            intent_id=intent.id,
            category=intent.category.value,
            protocol_type=intent.delay_protocol_type.value,
            protocol_duration_hours=intent.delay_duration_hours,
            timestamp=self.clock.now(),
            extras={k: str(v) for k, v in extras.items() if v is not None},
        ))

    def _buffered_urge_logs(self) -> int:
        if self.side_effects is None:
            return 0
        return self.side_effects.analytics.count(AnalyticsEventName.URGE_LOGGED)

    def _refresh_achievements(self, source_intent_id: Optional[str]) -> list[AchievementUnlock]:
        """Recompute progress from the full history and persist new unlocks."""
        try:
            progress = achievement_engine.calculate_progress(
                self.db, buffered_urge_count=self._buffered_urge_logs()
            )
            result = achievement_engine.evaluate_and_unlock(
                self.db, progress, at=self.clock.now(), source_intent_id=source_intent_id
            )
        except Exception:
            self.db.rollback()
            logger.exception("Achievement evaluation failed (intent %s)", source_intent_id)
            return []

        for unlock in result.created:
            self._enqueue(
                SyncOperationKind.achievement_unlocked,
                source_intent_id,
                key=unlock.key,
                tier=unlock.tier.value,
            )
        return result.created

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_intent(self, intent_id: str) -> Intent:
        intent = self.db.get(Intent, intent_id)
        if intent is None:
            raise IntentNotFoundError(intent_id)
        return intent

    def get_urge_event(self, urge_id: str) -> UrgeEvent:
        urge = self.db.get(UrgeEvent, urge_id)
        if urge is None:
            raise UrgeEventNotFoundError(urge_id)
        return urge

    # ------------------------------------------------------------------
    # Capture / update / delete
    # ------------------------------------------------------------------

    def capture_intent(
        self,
        title: str,
        protocol: DelayProtocol,
        category: IntentCategory = IntentCategory.custom,
        kind: IntentKind = IntentKind.custom,
        rationale: Optional[str] = None,
        start_time: Optional[datetime] = None,
        estimated_cost=None,
        fallback_action: Optional[str] = None,
    ) -> Intent:
        now = self.clock.now()
        title = self._validate_title(title)
        cost = self._validate_cost(estimated_cost)
        start = self._aware(start_time) if start_time is not None else now

        checkpoint = protocol.decision_date(start, self.clock.tz)
        duration = protocol.duration_hours(now, self.clock.tz)
        self._validate_duration(duration)
        self._validate_range(start, checkpoint)

        intent = Intent(
            title=title,
            rationale=_clean(rationale),
            category=IntentCategory(category),
            kind=IntentKind(kind),
            start_time=start,
            checkpoint_time=checkpoint,
            status=IntentStatus.active_wait,
            delay_protocol_type=protocol.type,
            delay_duration_hours=duration,
            estimated_cost=cost,
            fallback_action=_clean(fallback_action),
            postpone_count=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(intent)
        self._commit("capture intent")
        logger.info("Captured intent %s (%s, checkpoint %s)",
                    intent.id, protocol.type.value, checkpoint.isoformat())

        self._enqueue(SyncOperationKind.intent_created, intent.id,
                      status=intent.status.value,
                      checkpoint_time=checkpoint.isoformat())
        self._track(AnalyticsEventName.DESIRE_CAPTURED, intent)
        self._track(AnalyticsEventName.DELAY_PROTOCOL_SELECTED, intent)
        return intent

    def update_intent(
        self,
        intent_id: str,
        *,
        title: Any = _UNSET,
        rationale: Any = _UNSET,
        category: Any = _UNSET,
        kind: Any = _UNSET,
        start_time: Any = _UNSET,
        protocol: Any = _UNSET,
        estimated_cost: Any = _UNSET,
        fallback_action: Any = _UNSET,
    ) -> Intent:
        """
        Edit an open intent. Omitted fields are left alone; None clears an
        optional field. A new protocol (or a new start under a non-custom
        protocol) recomputes the checkpoint from the effective start.
        """
        intent = self.get_intent(intent_id)
        self._require_open(intent, "update")
        now = self.clock.now()

        # Validate everything first so a failure leaves the row untouched.
        new_title = self._validate_title(title) if title is not _UNSET else intent.title
        new_cost = (
            self._validate_cost(estimated_cost)
            if estimated_cost is not _UNSET else intent.estimated_cost
        )
        new_start = self._aware(start_time) if start_time not in (_UNSET, None) else intent.start_time

        new_checkpoint = intent.checkpoint_time
        new_type = intent.delay_protocol_type
        new_duration = intent.delay_duration_hours
        if protocol is not _UNSET and protocol is not None:
            new_checkpoint = protocol.decision_date(new_start, self.clock.tz)
            new_type = protocol.type
            new_duration = protocol.duration_hours(now, self.clock.tz)
        elif new_start != intent.start_time and intent.delay_protocol_type != DelayProtocolType.custom_date:
            new_checkpoint = DelayProtocol(intent.delay_protocol_type).decision_date(
                new_start, self.clock.tz
            )
        self._validate_duration(new_duration)
        self._validate_range(new_start, new_checkpoint)

        changed: list[str] = []

        def assign(field: str, value) -> None:
            if getattr(intent, field) != value:
                setattr(intent, field, value)
                changed.append(field)

        assign("title", new_title)
        assign("estimated_cost", new_cost)
        assign("start_time", new_start)
        assign("checkpoint_time", new_checkpoint)
        assign("delay_protocol_type", new_type)
        assign("delay_duration_hours", new_duration)
        if rationale is not _UNSET:
            assign("rationale", _clean(rationale))
        if fallback_action is not _UNSET:
            assign("fallback_action", _clean(fallback_action))
        if category is not _UNSET and category is not None:
            assign("category", IntentCategory(category))
        if kind is not _UNSET and kind is not None:
            assign("kind", IntentKind(kind))

        # Pushing the checkpoint back into the future re-opens the wait.
        if intent.status == IntentStatus.checkpoint_due and intent.checkpoint_time > now:
            assign("status", IntentStatus.active_wait)

        if not changed:
            return intent

        intent.updated_at = now
        self._commit("update intent")
        logger.info("Updated intent %s (%s)", intent.id, ", ".join(changed))

        self._enqueue(SyncOperationKind.intent_updated, intent.id, fields=",".join(changed))
        return intent

    def delete_intent(self, intent_id: str) -> None:
        """Permanent. Urges and rewards go with it; history rows stay."""
        intent = self.get_intent(intent_id)
        title = intent.title
        status = intent.status.value

        self.db.delete(intent)
        self._commit("delete intent")
        logger.info("Deleted intent %s", intent_id)

        self._enqueue(SyncOperationKind.intent_deleted, intent_id, title=title, status=status)

    # ------------------------------------------------------------------
    # Urges
    # ------------------------------------------------------------------

    def log_urge(
        self,
        intent_id: str,
        intensity: int,
        note: Optional[str] = None,
        used_fallback_action: bool = False,
        logged_at: Optional[datetime] = None,
    ) -> UrgeEvent:
        intent = self.get_intent(intent_id)
        self._require_open(intent, "log an urge for")
        now = self.clock.now()

        urge = UrgeEvent(
            intent_id=intent.id,
            logged_at=self._aware(logged_at) if logged_at is not None else now,
            intensity=clamp_intensity(intensity),
            note=_clean(note),
            used_fallback_action=bool(used_fallback_action),
            created_at=now,
        )
        self.db.add(urge)
        if used_fallback_action:
            self.db.add(RewardEntry(
                intent_id=intent.id,
                points=FALLBACK_ACTION_POINTS,
                reason="fallback_action_used",
                created_at=now,
            ))
        intent.updated_at = now
        self._commit("log urge")

        self._enqueue(SyncOperationKind.urge_logged, intent.id,
                      urge_id=urge.id, intensity=urge.intensity,
                      used_fallback_action=str(urge.used_fallback_action).lower())
        self._track(AnalyticsEventName.URGE_LOGGED, intent, intensity=urge.intensity)
        self._refresh_achievements(intent.id)
        return urge

    def delete_urge_event(self, urge_id: str) -> None:
        urge = self.get_urge_event(urge_id)
        intent_id = urge.intent_id
        self.db.delete(urge)
        self._commit("delete urge event")

        self._enqueue(SyncOperationKind.urge_deleted, intent_id, urge_id=urge_id)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def _snapshot(
        self,
        intent: Intent,
        outcome: DecisionOutcome,
        at: datetime,
        reflection: Optional[str] = None,
        urge_score: Optional[int] = None,
        regret_score: Optional[int] = None,
    ) -> CompletionRecord:
        return CompletionRecord(
            intent_id=intent.id,
            intent_title=intent.title,
            category=intent.category,
            kind=intent.kind,
            outcome=outcome,
            protocol_type=intent.delay_protocol_type,
            protocol_duration_hours=intent.delay_duration_hours,
            start_time=intent.start_time,
            checkpoint_time=intent.checkpoint_time,
            completed_at=at,
            duration_days=calendar_days_between(intent.start_time, at, self.clock.tz),
            was_after_checkpoint=at >= intent.checkpoint_time,
            reflection=_clean(reflection),
            urge_score=urge_score,
            regret_score=regret_score,
            estimated_cost=intent.estimated_cost,
            created_at=at,
        )

    def complete_decision(
        self,
        intent_id: str,
        outcome: DecisionOutcome,
        reflection: Optional[str] = None,
        urge_score: Optional[int] = None,
        regret_score: Optional[int] = None,
    ) -> CompletionRecord:
        outcome = DecisionOutcome(outcome)
        if outcome == DecisionOutcome.postponed:
            raise InvalidOutcomeError(outcome.value)

        intent = self.get_intent(intent_id)
        self._require_open(intent, "complete")
        self._validate_score("Urge score", urge_score)
        self._validate_score("Regret score", regret_score)

        now = self.clock.now()
        previous = intent.status
        record = self._snapshot(intent, outcome, now, reflection, urge_score, regret_score)
        self.db.add(record)

        intent.status = (
            IntentStatus.canceled if outcome == DecisionOutcome.canceled
            else IntentStatus.resolved
        )
        intent.outcome = outcome
        intent.resolved_at = now
        intent.updated_at = now

        if outcome in REWARD_POINTS:
            self.db.add(RewardEntry(
                intent_id=intent.id,
                points=REWARD_POINTS[outcome],
                reason=f"decision_{outcome.value}",
                created_at=now,
            ))
            if record.reflection:
                self.db.add(RewardEntry(
                    intent_id=intent.id,
                    points=REFLECTION_BONUS_POINTS,
                    reason="reflection_bonus",
                    created_at=now,
                ))

        self._commit("complete decision")
        logger.info("Intent %s %s → %s (%s)",
                    intent.id, previous.value, intent.status.value, outcome.value)

        self._enqueue(SyncOperationKind.intent_status_changed, intent.id,
                      from_status=previous.value, to_status=intent.status.value,
                      outcome=outcome.value, completion_id=record.id)
        self._track(AnalyticsEventName.DECISION_RECORDED, intent,
                    outcome=outcome.value,
                    was_after_checkpoint=str(record.was_after_checkpoint).lower())
        if record.reflection:
            self._track(AnalyticsEventName.REFLECTION_SUBMITTED, intent)
        self._refresh_achievements(intent.id)
        return record

    def postpone_decision(
        self,
        intent_id: str,
        protocol: DelayProtocol,
        note: Optional[str] = None,
    ) -> CompletionRecord:
        """
        Start a fresh wait from now under `protocol`. The old wait is kept
        as a postponed completion record.
        """
        intent = self.get_intent(intent_id)
        if intent.status.is_terminal:
            raise CheckpointUnavailableError(intent.id, intent.status.value)

        now = self.clock.now()
        checkpoint = protocol.decision_date(now, self.clock.tz)
        duration = protocol.duration_hours(now, self.clock.tz)
        self._validate_duration(duration)
        self._validate_range(intent.start_time, checkpoint)

        record = self._snapshot(intent, DecisionOutcome.postponed, now, reflection=note)
        self.db.add(record)

        intent.checkpoint_time = checkpoint
        intent.delay_protocol_type = protocol.type
        intent.delay_duration_hours = duration
        intent.postpone_count += 1
        intent.status = IntentStatus.active_wait
        intent.updated_at = now

        self._commit("postpone decision")
        logger.info("Postponed intent %s to %s (count %d)",
                    intent.id, checkpoint.isoformat(), intent.postpone_count)

        self._enqueue(SyncOperationKind.completion_snapshot_created, intent.id,
                      completion_id=record.id, outcome=DecisionOutcome.postponed.value,
                      checkpoint_time=checkpoint.isoformat(),
                      postpone_count=intent.postpone_count)
        self._track(AnalyticsEventName.DECISION_POSTPONED, intent,
                    postpone_count=intent.postpone_count)
        self._refresh_achievements(intent.id)
        return record

    def recover_latest_strict_failure(self, intent_id: Optional[str] = None) -> Optional[Intent]:
        """
        Re-open the most recently resolved gave_in intent (or the given one).
        Returns None when there is nothing to recover.
        """
        if intent_id is not None:
            intent = self.get_intent(intent_id)
            if not (intent.status == IntentStatus.resolved
                    and intent.outcome == DecisionOutcome.gave_in):
                raise InvalidStatusTransitionError(intent.id, intent.status.value, "recover")
        else:
            intent = (
                self.db.query(Intent)
                .filter(
                    Intent.status == IntentStatus.resolved,
                    Intent.outcome == DecisionOutcome.gave_in,
                )
                .order_by(Intent.resolved_at.desc())
                .first()
            )
            if intent is None:
                return None

        now = self.clock.now()
        intent.checkpoint_time = max(intent.checkpoint_time, now) + RECOVERY_EXTENSION
        intent.status = IntentStatus.active_wait
        intent.outcome = None
        intent.resolved_at = None
        intent.updated_at = now

        self._commit("recover intent")
        logger.info("Recovered intent %s (new checkpoint %s)",
                    intent.id, intent.checkpoint_time.isoformat())

        self._enqueue(SyncOperationKind.intent_status_changed, intent.id,
                      from_status=IntentStatus.resolved.value,
                      to_status=IntentStatus.active_wait.value,
                      reason="recovery")
        return intent

    # ------------------------------------------------------------------
    # Lifecycle sweep
    # ------------------------------------------------------------------

    def refresh_lifecycle(
        self,
        reference: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Move every active_wait intent whose checkpoint has passed to
        checkpoint_due. All-or-nothing; a second run transitions nothing.
        """
        reference = reference or self.clock.now()
        now = self.clock.now()

        due = (
            self.db.query(Intent)
            .filter(
                Intent.status == IntentStatus.active_wait,
                Intent.checkpoint_time <= reference,
            )
            .all()
        )

        def check_cancelled() -> None:
            if cancel_event is not None and cancel_event.is_set():
                self.db.rollback()
                logger.info("Lifecycle refresh cancelled; rolled back")
                raise LifecycleRefreshCancelled()

        for intent in due:
            check_cancelled()
            intent.status = IntentStatus.checkpoint_due
            intent.updated_at = now

        check_cancelled()
        if not due:
            return 0

        self._commit("refresh lifecycle")
        logger.info("Lifecycle refresh: %d intents reached their checkpoint", len(due))

        for intent in due:
            self._enqueue(SyncOperationKind.intent_status_changed, intent.id,
                          from_status=IntentStatus.active_wait.value,
                          to_status=IntentStatus.checkpoint_due.value)
            self._track(AnalyticsEventName.CHECKPOINT_DUE, intent)
        return len(due)

    # ------------------------------------------------------------------
    # Queries (always read from the store)
    # ------------------------------------------------------------------

    def list_intents(self) -> list[Intent]:
        return self.db.query(Intent).order_by(Intent.created_at.desc(), Intent.id).all()

    def list_due(self, reference: Optional[datetime] = None) -> list[Intent]:
        reference = reference or self.clock.now()
        return (
            self.db.query(Intent)
            .filter(or_(
                Intent.status == IntentStatus.checkpoint_due,
                (Intent.status == IntentStatus.active_wait)
                & (Intent.checkpoint_time <= reference),
            ))
            .order_by(Intent.checkpoint_time)
            .all()
        )

    def list_in_delay_window(self, reference: Optional[datetime] = None) -> list[Intent]:
        reference = reference or self.clock.now()
        return (
            self.db.query(Intent)
            .filter(
                Intent.status == IntentStatus.active_wait,
                Intent.checkpoint_time > reference,
            )
            .order_by(Intent.checkpoint_time)
            .all()
        )

    def list_resolved(self) -> list[Intent]:
        return (
            self.db.query(Intent)
            .filter(Intent.status.in_([IntentStatus.resolved, IntentStatus.canceled]))
            .order_by(Intent.resolved_at.desc())
            .all()
        )

    def recent_urges(self, limit: int = 20) -> list[UrgeEvent]:
        if limit < 1:
            raise InvalidStateError("limit must be at least 1.")
        return (
            self.db.query(UrgeEvent)
            .order_by(UrgeEvent.logged_at.desc())
            .limit(limit)
            .all()
        )

    def completions_for(self, intent_id: str) -> list[CompletionRecord]:
        return (
            self.db.query(CompletionRecord)
            .filter(CompletionRecord.intent_id == intent_id)
            .order_by(CompletionRecord.completed_at, CompletionRecord.created_at)
            .all()
        )

    def unlocks_for(self, intent_id: str) -> list[AchievementUnlock]:
        return (
            self.db.query(AchievementUnlock)
            .filter(AchievementUnlock.source_intent_id == intent_id)
            .order_by(AchievementUnlock.unlocked_at)
            .all()
        )

    def reward_total(self, intent_id: Optional[str] = None) -> int:
        q = self.db.query(func.coalesce(func.sum(RewardEntry.points), 0))
        if intent_id is not None:
            q = q.filter(RewardEntry.intent_id == intent_id)
        return int(q.scalar())

    def progress(self) -> achievement_engine.AchievementProgress:
        return achievement_engine.calculate_progress(
            self.db, buffered_urge_count=self._buffered_urge_logs()
        )


__all__ = [
    "IntentRepository",
    "LifecycleRefreshCancelled",
    "REWARD_POINTS",
    "REFLECTION_BONUS_POINTS",
    "FALLBACK_ACTION_POINTS",
    "RECOVERY_EXTENSION",
]
