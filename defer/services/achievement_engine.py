"""
Achievement Engine — progress aggregation + idempotent unlocks.

Progress (recomputed from the full history on every call)
---------------------------------------------------------
  resolved_count          completions that are resisted / intentional_yes / gave_in
  intentional_count       resolved with resisted or intentional_yes
  resisted_count          resolved with resisted
  postpone_count          postponed completions
  reflection_count        resolved completions with a non-blank reflection
  delay_adherence_rate    resolved & was_after_checkpoint / resolved_count (0 if none)
  estimated_spend_avoided sum of cost over resisted completions
  max_intentional_run     longest run of intentional outcomes over resolved
                          completions ordered by completed_at; gave_in resets it
  urge_log_count          max(buffered urge_logged analytics events,
                          live urge events across all intents)

Idempotency
-----------
The catalog rules are pure. Unlocks are made at most once per key by
checking the keys already persisted, with the unique constraint on
achievement_unlocks.key as the final guard (IntegrityError → rollback).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from defer.models.achievement_unlock import AchievementUnlock
from defer.models.completion_record import CompletionRecord
from defer.models.enums import DecisionOutcome
from defer.models.urge_event import UrgeEvent
from defer.services.achievement_catalog import CATALOG, AchievementDefinition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AchievementProgress:
    resolved_count: int = 0
    intentional_count: int = 0
    resisted_count: int = 0
    postpone_count: int = 0
    reflection_count: int = 0
    delay_adherence_rate: float = 0.0
    estimated_spend_avoided: Decimal = Decimal("0")
    max_intentional_run: int = 0
    urge_log_count: int = 0


@dataclass
class UnlockResult:
    """What one evaluation run did."""
    created: list[AchievementUnlock] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)   # keys already unlocked

    @property
    def created_keys(self) -> list[str]:
        return [u.key for u in self.created]


@dataclass
class AchievementStatus:
    definition: AchievementDefinition
    unlocked: bool
    unlocked_at: Optional[datetime]
    current: object
    target: object


# ---------------------------------------------------------------------------
# Aggregation (pure)
# ---------------------------------------------------------------------------

def aggregate_progress(
    completions: Iterable,
    live_urge_count: int = 0,
    buffered_urge_count: int = 0,
) -> AchievementProgress:
    """
    Build the progress aggregate from completion rows.

    `completions` only needs attributes: outcome, completed_at, reflection,
    was_after_checkpoint, estimated_cost. ORM objects and column rows both work.
    """
    resolved = 0
    intentional = 0
    resisted = 0
    postponed = 0
    reflections = 0
    adherent = 0
    spend_avoided = Decimal("0")

    resolved_outcomes: list[tuple[datetime, DecisionOutcome]] = []

    for c in completions:
        outcome = DecisionOutcome(c.outcome)
        if outcome == DecisionOutcome.postponed:
            postponed += 1
            continue
        if not outcome.is_resolution:
            continue

        resolved += 1
        resolved_outcomes.append((c.completed_at, outcome))
        if outcome.is_intentional:
            intentional += 1
        if outcome == DecisionOutcome.resisted:
            resisted += 1
            if c.estimated_cost is not None:
                spend_avoided += Decimal(c.estimated_cost)
        if c.reflection and c.reflection.strip():
            reflections += 1
        if c.was_after_checkpoint:
            adherent += 1

    # Stable sort keeps insertion order for identical timestamps.
    resolved_outcomes.sort(key=lambda pair: pair[0])
    best = run = 0
    for _, outcome in resolved_outcomes:
        if outcome.is_intentional:
            run += 1
            best = max(best, run)
        else:
            run = 0

    return AchievementProgress(
        resolved_count=resolved,
        intentional_count=intentional,
        resisted_count=resisted,
        postpone_count=postponed,
        reflection_count=reflections,
        delay_adherence_rate=(adherent / resolved) if resolved else 0.0,
        estimated_spend_avoided=spend_avoided,
        max_intentional_run=best,
        urge_log_count=max(buffered_urge_count, live_urge_count),
    )


def calculate_progress(db: Session, buffered_urge_count: int = 0) -> AchievementProgress:
    """Read the full history from the store and aggregate it."""
    rows = (
        db.query(
            CompletionRecord.outcome,
            CompletionRecord.completed_at,
            CompletionRecord.reflection,
            CompletionRecord.was_after_checkpoint,
            CompletionRecord.estimated_cost,
        )
        .order_by(CompletionRecord.completed_at, CompletionRecord.created_at)
        .all()
    )
    live_urges: int = db.query(func.count(UrgeEvent.id)).scalar() or 0
    return aggregate_progress(rows, live_urges, buffered_urge_count)


# ---------------------------------------------------------------------------
# Unlocking
# ---------------------------------------------------------------------------

def _unlocked_keys(db: Session) -> set[str]:
    return {key for (key,) in db.query(AchievementUnlock.key).all()}


def evaluate_and_unlock(
    db: Session,
    progress: AchievementProgress,
    at: datetime,
    source_intent_id: Optional[str] = None,
) -> UnlockResult:
    """
    Insert an unlock for every satisfied catalog rule not yet unlocked.
    Safe to call any number of times; commits once if anything is new.
    """
    result = UnlockResult()
    existing = _unlocked_keys(db)

    for definition in CATALOG:
        if definition.key in existing:
            result.skipped.append(definition.key)
            continue
        if not definition.rule.is_satisfied(progress):
            continue
        unlock = AchievementUnlock(
            key=definition.key,
            tier=definition.tier,
            unlocked_at=at,
            source_intent_id=source_intent_id,
            created_at=at,
        )
        db.add(unlock)
        result.created.append(unlock)

    if result.created:
        try:
            db.commit()
        except IntegrityError:
            # Another writer unlocked the same key first.
            db.rollback()
            logger.info("Concurrent unlock detected; keeping the stored rows")
            result.skipped.extend(result.created_keys)
            result.created = []
        else:
            logger.info("Unlocked achievements: %s", ", ".join(result.created_keys))

    return result


def achievement_statuses(db: Session, progress: AchievementProgress) -> list[AchievementStatus]:
    """Every catalog entry with unlock state and (current, target) progress."""
    unlocks = {u.key: u for u in db.query(AchievementUnlock).all()}
    statuses = []
    for definition in CATALOG:
        current, target = definition.rule.progress_pair(progress)
        unlock = unlocks.get(definition.key)
        statuses.append(AchievementStatus(
            definition=definition,
            unlocked=unlock is not None,
            unlocked_at=unlock.unlocked_at if unlock else None,
            current=current,
            target=target,
        ))
    return statuses
