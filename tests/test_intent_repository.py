"""
Tests for the intent lifecycle repository.

Covered scenarios:
  A) capture       — checkpoint from protocol, validation before any write
  B) decisions     — resolved / canceled, rewards, invalid outcome, scores
  C) postpone      — new wait from now, postponed completion record
  D) terminal      — every mutation refused on resolved / canceled intents
  E) recovery      — the one way out of resolved (gave_in only)
  F) refresh       — idempotent sweep, cooperative cancellation
  G) delete        — owned rows cascade, history rows survive
  H) side effects  — outbox + analytics after commit, failures never undo it
  I) queries
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.exc import OperationalError

from defer.core.clock import FixedClock
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
from defer.models import AchievementUnlock, CompletionRecord, Intent, RewardEntry, UrgeEvent
from defer.models.enums import DecisionOutcome, DelayProtocolType, IntentCategory, IntentStatus
from defer.services import achievement_engine
from defer.services.delay_protocol import DelayProtocol
from defer.services.intent_repository import (
    RECOVERY_EXTENSION,
    IntentRepository,
    LifecycleRefreshCancelled,
)
from defer.services.outbox import AnalyticsEventName, SyncOperationKind

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

H24 = DelayProtocol(DelayProtocolType.twenty_four_hours)
H72 = DelayProtocol(DelayProtocolType.seventy_two_hours)
M10 = DelayProtocol(DelayProtocolType.ten_minutes)


def _kinds(side_effects) -> list[SyncOperationKind]:
    side_effects.flush()
    return [op.kind for op in side_effects.outbox.pending()]


def _events(side_effects) -> list[str]:
    side_effects.flush()
    return [e.event for e in side_effects.analytics.pending()]


# ---------------------------------------------------------------------------
# A) capture
# ---------------------------------------------------------------------------

class TestCapture:
    def test_capture_sets_checkpoint_and_status(self, repo):
        intent = repo.capture_intent("  New headphones  ", H24, category=IntentCategory.spending)
        assert intent.title == "New headphones"
        assert intent.status == IntentStatus.active_wait
        assert intent.start_time == T0
        assert intent.checkpoint_time == T0 + timedelta(hours=24)
        assert intent.delay_protocol_type == DelayProtocolType.twenty_four_hours
        assert intent.delay_duration_hours == 24
        assert intent.postpone_count == 0

    def test_naive_custom_date_duration_matches_checkpoint(self, db, side_effects):
        berlin = IntentRepository(db, FixedClock(T0, ZoneInfo("Europe/Berlin")), side_effects)
        protocol = DelayProtocol(DelayProtocolType.custom_date, datetime(2026, 3, 12, 9, 0))
        intent = berlin.capture_intent("Jacket", protocol)
        assert intent.checkpoint_time == datetime(2026, 3, 12, 8, 0, tzinfo=timezone.utc)
        span = intent.checkpoint_time - intent.start_time
        assert intent.delay_duration_hours == int(span.total_seconds() // 3600) == 44

    def test_capture_emits_outbox_and_analytics(self, repo, side_effects):
        intent = repo.capture_intent("Snack", M10)
        assert _kinds(side_effects) == [SyncOperationKind.intent_created]
        assert _events(side_effects) == [
            AnalyticsEventName.DESIRE_CAPTURED,
            AnalyticsEventName.DELAY_PROTOCOL_SELECTED,
        ]
        event = side_effects.analytics.pending()[0]
        assert event.intent_id == intent.id
        assert event.protocol_type == "ten_minutes"
        assert event.protocol_duration_hours == 1

    @pytest.mark.parametrize("title", ["", "   ", "\n\t"])
    def test_blank_title_rejected_and_nothing_stored(self, repo, db, side_effects, title):
        with pytest.raises(EmptyTitleError):
            repo.capture_intent(title, H24)
        assert db.query(Intent).count() == 0
        assert _kinds(side_effects) == []

    def test_negative_cost_rejected(self, repo, db):
        with pytest.raises(InvalidStateError):
            repo.capture_intent("Shoes", H24, estimated_cost=Decimal("-1"))
        assert db.query(Intent).count() == 0

    def test_naive_start_read_in_calendar_zone(self, repo):
        intent = repo.capture_intent("Coffee", H24, start_time=datetime(2026, 3, 9, 8, 0))
        assert intent.start_time == datetime(2026, 3, 9, 8, 0, tzinfo=timezone.utc)

    def test_optional_text_is_trimmed_or_dropped(self, repo):
        intent = repo.capture_intent("Coffee", H24, rationale="   ", fallback_action=" walk ")
        assert intent.rationale is None
        assert intent.fallback_action == "walk"


# ---------------------------------------------------------------------------
# B) decisions
# ---------------------------------------------------------------------------

class TestCompleteDecision:
    def test_resisted_resolves_and_rewards(self, repo, db, clock):
        intent = repo.capture_intent("Cake", H24)
        clock.advance(hours=25)
        record = repo.complete_decision(intent.id, DecisionOutcome.resisted, reflection="felt fine")

        intent = repo.get_intent(intent.id)
        assert intent.status == IntentStatus.resolved
        assert intent.outcome == DecisionOutcome.resisted
        assert intent.resolved_at == T0 + timedelta(hours=25)

        assert record.outcome == DecisionOutcome.resisted
        assert record.was_after_checkpoint is True
        assert record.duration_days == 1
        assert record.intent_title == "Cake"
        assert repo.reward_total(intent.id) == 12

    @pytest.mark.parametrize("outcome, points", [
        (DecisionOutcome.resisted, 10),
        (DecisionOutcome.intentional_yes, 6),
        (DecisionOutcome.gave_in, 2),
    ])
    def test_reward_points_per_outcome(self, repo, outcome, points):
        intent = repo.capture_intent("Thing", H24)
        repo.complete_decision(intent.id, outcome)
        assert repo.reward_total(intent.id) == points

    def test_early_decision_is_not_adherent(self, repo, clock):
        intent = repo.capture_intent("Thing", H24)
        clock.advance(hours=2)
        record = repo.complete_decision(intent.id, DecisionOutcome.gave_in)
        assert record.was_after_checkpoint is False

    def test_cancel_sets_canceled_without_reward(self, repo, db):
        intent = repo.capture_intent("Thing", H24)
        record = repo.complete_decision(intent.id, DecisionOutcome.canceled)
        assert repo.get_intent(intent.id).status == IntentStatus.canceled
        assert record.outcome == DecisionOutcome.canceled
        assert db.query(RewardEntry).count() == 0

    def test_postponed_outcome_always_rejected(self, repo, db):
        intent = repo.capture_intent("Thing", H24)
        with pytest.raises(InvalidOutcomeError):
            repo.complete_decision(intent.id, DecisionOutcome.postponed)
        with pytest.raises(InvalidOutcomeError):
            repo.complete_decision("no-such-id", "postponed")
        assert db.query(CompletionRecord).count() == 0
        assert repo.get_intent(intent.id).status == IntentStatus.active_wait

    @pytest.mark.parametrize("field", ["urge_score", "regret_score"])
    @pytest.mark.parametrize("value", [0, 6])
    def test_scores_outside_range_rejected(self, repo, db, field, value):
        intent = repo.capture_intent("Thing", H24)
        with pytest.raises(InvalidStateError):
            repo.complete_decision(intent.id, DecisionOutcome.resisted, **{field: value})
        assert db.query(CompletionRecord).count() == 0

    def test_scores_stored(self, repo):
        intent = repo.capture_intent("Thing", H24)
        record = repo.complete_decision(
            intent.id, DecisionOutcome.intentional_yes, urge_score=4, regret_score=1
        )
        assert (record.urge_score, record.regret_score) == (4, 1)

    def test_unknown_intent(self, repo):
        with pytest.raises(IntentNotFoundError):
            repo.complete_decision("missing", DecisionOutcome.resisted)

    def test_one_outbox_entry_per_decision(self, repo, side_effects):
        intent = repo.capture_intent("Thing", H24)
        repo.complete_decision(intent.id, DecisionOutcome.resisted, reflection="ok")
        side_effects.flush()
        ops = [op for op in side_effects.outbox.pending() if op.intent_id == intent.id]
        assert [op.kind for op in ops] == [
            SyncOperationKind.intent_created,
            SyncOperationKind.intent_status_changed,
            SyncOperationKind.achievement_unlocked,
        ]
        status_op = ops[1]
        assert status_op.payload["to_status"] == "resolved"
        assert status_op.payload["completion_id"]
        events = _events(side_effects)
        assert AnalyticsEventName.DECISION_RECORDED in events
        assert AnalyticsEventName.REFLECTION_SUBMITTED in events

    def test_completion_record_is_immutable(self, repo, db):
        intent = repo.capture_intent("Thing", H24)
        record = repo.complete_decision(intent.id, DecisionOutcome.resisted)
        stored = db.get(CompletionRecord, record.id)
        stored.reflection = "rewritten"
        with pytest.raises(ValueError):
            db.commit()
        db.rollback()


# ---------------------------------------------------------------------------
# C) postpone
# ---------------------------------------------------------------------------

class TestPostpone:
    def test_postpone_scenario(self, repo, db, clock):
        intent = repo.capture_intent("Jacket", H24)
        assert intent.checkpoint_time == T0 + timedelta(hours=24)

        clock.advance(hours=26)
        record = repo.postpone_decision(intent.id, H72, note="still unsure")

        intent = repo.get_intent(intent.id)
        assert intent.checkpoint_time == T0 + timedelta(hours=26 + 72)
        assert intent.postpone_count == 1
        assert intent.status == IntentStatus.active_wait
        assert intent.delay_protocol_type == DelayProtocolType.seventy_two_hours
        assert intent.delay_duration_hours == 72

        records = db.query(CompletionRecord).filter_by(intent_id=intent.id).all()
        assert len(records) == 1
        assert records[0].id == record.id
        assert record.outcome == DecisionOutcome.postponed
        assert record.was_after_checkpoint is True
        assert record.reflection == "still unsure"
        assert record.checkpoint_time == T0 + timedelta(hours=24)

    def test_postpone_reopens_due_intent(self, repo, clock):
        intent = repo.capture_intent("Jacket", M10)
        clock.advance(minutes=30)
        repo.refresh_lifecycle()
        assert repo.get_intent(intent.id).status == IntentStatus.checkpoint_due
        repo.postpone_decision(intent.id, H24)
        assert repo.get_intent(intent.id).status == IntentStatus.active_wait

    def test_postpone_before_future_start_is_invalid_range(self, repo, db):
        intent = repo.capture_intent("Trip", H24, start_time=T0 + timedelta(days=10))
        with pytest.raises(InvalidDateRangeError):
            repo.postpone_decision(intent.id, M10)
        assert repo.get_intent(intent.id).postpone_count == 0
        assert db.query(CompletionRecord).count() == 0

    def test_postpone_emits_analytics(self, repo, side_effects):
        intent = repo.capture_intent("Jacket", H24)
        repo.postpone_decision(intent.id, H24)
        assert AnalyticsEventName.DECISION_POSTPONED in _events(side_effects)

    def test_one_outbox_entry_per_postpone(self, repo, side_effects):
        intent = repo.capture_intent("Jacket", H24)
        repo.postpone_decision(intent.id, H72)
        assert _kinds(side_effects) == [
            SyncOperationKind.intent_created,
            SyncOperationKind.completion_snapshot_created,
            SyncOperationKind.achievement_unlocked,
        ]
        op = side_effects.outbox.pending()[1]
        assert op.payload["postpone_count"] == "1"
        assert op.payload["checkpoint_time"] == (T0 + timedelta(hours=72)).isoformat()


# ---------------------------------------------------------------------------
# D) terminal intents
# ---------------------------------------------------------------------------

class TestTerminalIntents:
    @pytest.fixture(params=[DecisionOutcome.resisted, DecisionOutcome.canceled])
    def closed(self, request, repo):
        intent = repo.capture_intent("Closed", H24)
        repo.complete_decision(intent.id, request.param)
        return intent.id

    def test_complete_again_rejected(self, repo, closed):
        with pytest.raises(InvalidStatusTransitionError):
            repo.complete_decision(closed, DecisionOutcome.intentional_yes)

    def test_postpone_rejected(self, repo, closed):
        with pytest.raises(CheckpointUnavailableError):
            repo.postpone_decision(closed, H24)

    def test_log_urge_rejected(self, repo, closed):
        with pytest.raises(InvalidStatusTransitionError):
            repo.log_urge(closed, 3)

    def test_update_rejected(self, repo, closed):
        with pytest.raises(InvalidStatusTransitionError):
            repo.update_intent(closed, title="Edited")

    def test_delete_still_allowed(self, repo, db, closed):
        repo.delete_intent(closed)
        assert db.get(Intent, closed) is None


# ---------------------------------------------------------------------------
# E) recovery
# ---------------------------------------------------------------------------

class TestRecovery:
    def test_recovers_latest_gave_in(self, repo, clock):
        older = repo.capture_intent("Older", H24)
        newer = repo.capture_intent("Newer", H24)
        clock.advance(hours=30)
        repo.complete_decision(older.id, DecisionOutcome.gave_in)
        clock.advance(hours=1)
        repo.complete_decision(newer.id, DecisionOutcome.gave_in)

        recovered = repo.recover_latest_strict_failure()
        assert recovered.id == newer.id
        assert recovered.status == IntentStatus.active_wait
        assert recovered.outcome is None
        assert recovered.resolved_at is None
        assert recovered.checkpoint_time == clock.now() + RECOVERY_EXTENSION
        assert repo.get_intent(older.id).status == IntentStatus.resolved

    def test_future_checkpoint_is_extended_from_itself(self, repo, clock):
        intent = repo.capture_intent("Early slip", H72)
        repo.complete_decision(intent.id, DecisionOutcome.gave_in)
        recovered = repo.recover_latest_strict_failure(intent.id)
        assert recovered.checkpoint_time == T0 + timedelta(hours=72) + RECOVERY_EXTENSION

    def test_nothing_to_recover(self, repo):
        intent = repo.capture_intent("Fine", H24)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        assert repo.recover_latest_strict_failure() is None

    def test_only_gave_in_can_be_recovered(self, repo):
        intent = repo.capture_intent("Fine", H24)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        with pytest.raises(InvalidStatusTransitionError):
            repo.recover_latest_strict_failure(intent.id)

    def test_recovered_intent_can_be_decided_again(self, repo, db):
        intent = repo.capture_intent("Again", H24)
        repo.complete_decision(intent.id, DecisionOutcome.gave_in)
        repo.recover_latest_strict_failure(intent.id)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        assert db.query(CompletionRecord).filter_by(intent_id=intent.id).count() == 2


# ---------------------------------------------------------------------------
# F) lifecycle refresh
# ---------------------------------------------------------------------------

class TestRefreshLifecycle:
    def test_sweep_is_idempotent(self, repo, clock):
        a = repo.capture_intent("A", H24)
        b = repo.capture_intent("B", M10)
        waiting = repo.capture_intent("C", H72)
        clock.advance(hours=25)

        assert repo.refresh_lifecycle() == 2
        assert repo.refresh_lifecycle() == 0
        assert repo.get_intent(a.id).status == IntentStatus.checkpoint_due
        assert repo.get_intent(b.id).status == IntentStatus.checkpoint_due
        assert repo.get_intent(waiting.id).status == IntentStatus.active_wait

    def test_sweep_leaves_terminal_intents_alone(self, repo, clock):
        intent = repo.capture_intent("A", M10)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        clock.advance(hours=1)
        assert repo.refresh_lifecycle() == 0
        assert repo.get_intent(intent.id).status == IntentStatus.resolved

    def test_explicit_reference(self, repo):
        repo.capture_intent("A", H24)
        assert repo.refresh_lifecycle(reference=T0 + timedelta(hours=1)) == 0
        assert repo.refresh_lifecycle(reference=T0 + timedelta(hours=24)) == 1

    def test_cancellation_rolls_back(self, repo, db, clock):
        ids = [repo.capture_intent(f"I{n}", M10).id for n in range(3)]
        clock.advance(hours=1)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(LifecycleRefreshCancelled):
            repo.refresh_lifecycle(cancel_event=cancel)

        db.expire_all()
        assert all(repo.get_intent(i).status == IntentStatus.active_wait for i in ids)
        assert repo.refresh_lifecycle() == 3

    def test_sweep_emits_checkpoint_due(self, repo, clock, side_effects):
        repo.capture_intent("A", M10)
        clock.advance(hours=1)
        repo.refresh_lifecycle()
        assert AnalyticsEventName.CHECKPOINT_DUE in _events(side_effects)


# ---------------------------------------------------------------------------
# G) delete
# ---------------------------------------------------------------------------

class TestDelete:
    def test_cascade_and_history_survival(self, repo, db):
        intent = repo.capture_intent("Gone", H24)
        repo.log_urge(intent.id, 3, used_fallback_action=True)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        assert db.query(AchievementUnlock).filter_by(source_intent_id=intent.id).count() > 0

        repo.delete_intent(intent.id)

        assert db.get(Intent, intent.id) is None
        assert db.query(UrgeEvent).count() == 0
        assert db.query(RewardEntry).count() == 0
        assert len(repo.completions_for(intent.id)) == 1
        assert len(repo.unlocks_for(intent.id)) > 0

    def test_delete_recorded_in_outbox(self, repo, side_effects):
        intent = repo.capture_intent("Gone", H24)
        repo.delete_intent(intent.id)
        side_effects.flush()
        last = side_effects.outbox.pending()[-1]
        assert last.kind == SyncOperationKind.intent_deleted
        assert last.intent_id == intent.id
        assert last.payload["title"] == "Gone"

    def test_delete_unknown(self, repo):
        with pytest.raises(IntentNotFoundError):
            repo.delete_intent("missing")


# ---------------------------------------------------------------------------
# Urges
# ---------------------------------------------------------------------------

class TestUrges:
    @pytest.mark.parametrize("raw, stored", [(0, 1), (3, 3), (9, 5), (-4, 1)])
    def test_intensity_clamped(self, repo, raw, stored):
        intent = repo.capture_intent("Urgy", H24)
        assert repo.log_urge(intent.id, raw).intensity == stored

    def test_fallback_action_earns_a_point(self, repo):
        intent = repo.capture_intent("Urgy", H24)
        repo.log_urge(intent.id, 2)
        repo.log_urge(intent.id, 2, used_fallback_action=True)
        assert repo.reward_total(intent.id) == 1

    def test_delete_urge(self, repo, db, side_effects):
        intent = repo.capture_intent("Urgy", H24)
        urge = repo.log_urge(intent.id, 2)
        repo.delete_urge_event(urge.id)
        assert db.query(UrgeEvent).count() == 0
        assert _kinds(side_effects)[-1] == SyncOperationKind.urge_deleted
        with pytest.raises(UrgeEventNotFoundError):
            repo.delete_urge_event(urge.id)

    def test_recent_urges_newest_first_and_bounded(self, repo, clock):
        intent = repo.capture_intent("Urgy", H24)
        for n in range(5):
            clock.advance(minutes=1)
            repo.log_urge(intent.id, n + 1)
        recent = repo.recent_urges(limit=3)
        assert [u.intensity for u in recent] == [5, 4, 3]
        with pytest.raises(InvalidStateError):
            repo.recent_urges(limit=0)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_new_protocol_recomputes_from_start(self, repo, clock):
        intent = repo.capture_intent("Edit me", H24)
        clock.advance(hours=2)
        updated = repo.update_intent(intent.id, protocol=H72)
        assert updated.checkpoint_time == T0 + timedelta(hours=72)
        assert updated.delay_duration_hours == 72

    def test_blank_title_rejected(self, repo):
        intent = repo.capture_intent("Edit me", H24)
        with pytest.raises(EmptyTitleError):
            repo.update_intent(intent.id, title="  ")
        assert repo.get_intent(intent.id).title == "Edit me"

    def test_custom_checkpoint_before_new_start_is_invalid(self, repo):
        custom = DelayProtocol(DelayProtocolType.custom_date, T0 + timedelta(days=2))
        intent = repo.capture_intent("Edit me", custom)
        with pytest.raises(InvalidDateRangeError):
            repo.update_intent(intent.id, start_time=T0 + timedelta(days=3))

    def test_pushing_checkpoint_out_reopens_wait(self, repo, clock):
        intent = repo.capture_intent("Edit me", M10)
        clock.advance(hours=1)
        repo.refresh_lifecycle()
        updated = repo.update_intent(intent.id, protocol=H72)
        assert updated.status == IntentStatus.active_wait

    def test_none_clears_optional_text(self, repo, side_effects):
        intent = repo.capture_intent("Edit me", H24, rationale="because")
        updated = repo.update_intent(intent.id, rationale=None)
        assert updated.rationale is None
        assert _kinds(side_effects)[-1] == SyncOperationKind.intent_updated

    def test_no_changes_writes_nothing(self, repo, side_effects):
        intent = repo.capture_intent("Edit me", H24)
        repo.update_intent(intent.id, title="Edit me")
        assert SyncOperationKind.intent_updated not in _kinds(side_effects)


# ---------------------------------------------------------------------------
# H) side effects and failures
# ---------------------------------------------------------------------------

class TestFailureSurface:
    def test_commit_failure_becomes_persistence_error(self, repo, db, monkeypatch):
        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db, "commit", broken_commit)
        with pytest.raises(PersistenceError):
            repo.capture_intent("Never stored", H24)
        monkeypatch.undo()
        assert db.query(Intent).count() == 0

    def test_achievement_failure_does_not_undo_decision(self, repo, db, monkeypatch):
        intent = repo.capture_intent("Sticky", H24)

        def boom(*args, **kwargs):
            raise RuntimeError("engine down")

        monkeypatch.setattr(achievement_engine, "calculate_progress", boom)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)

        db.expire_all()
        assert repo.get_intent(intent.id).status == IntentStatus.resolved
        assert db.query(AchievementUnlock).count() == 0

    def test_without_dispatcher_nothing_is_enqueued(self, db, clock):
        repo = IntentRepository(db, clock)
        intent = repo.capture_intent("Quiet", H24)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        assert repo.get_intent(intent.id).status == IntentStatus.resolved


# ---------------------------------------------------------------------------
# I) queries + progress scenarios
# ---------------------------------------------------------------------------

class TestQueries:
    def test_due_waiting_resolved(self, repo, clock):
        due = repo.capture_intent("Due", M10)
        waiting = repo.capture_intent("Waiting", H24)
        done = repo.capture_intent("Done", H24)
        repo.complete_decision(done.id, DecisionOutcome.intentional_yes)
        clock.advance(minutes=30)

        # due before any sweep: active_wait with a passed checkpoint counts
        assert [i.id for i in repo.list_due()] == [due.id]
        assert [i.id for i in repo.list_in_delay_window()] == [waiting.id]
        assert [i.id for i in repo.list_resolved()] == [done.id]

        repo.refresh_lifecycle()
        assert [i.id for i in repo.list_due()] == [due.id]

    def test_spend_avoided_increases_by_cost(self, repo):
        before = repo.progress().estimated_spend_avoided
        intent = repo.capture_intent("Sneakers", H24, estimated_cost=50)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        assert repo.progress().estimated_spend_avoided - before == Decimal("50")

    def test_unlocks_are_attributed_to_source_intent(self, repo):
        intent = repo.capture_intent("First", H24)
        repo.complete_decision(intent.id, DecisionOutcome.resisted)
        keys = {u.key for u in repo.unlocks_for(intent.id)}
        assert "first_intentional_decision" in keys
