"""
Tests for the bounded outbox / analytics logs and the side-effect dispatcher.
"""
import threading
from datetime import datetime, timezone

import pytest

from defer.services.outbox import (
    AnalyticsBuffer,
    AnalyticsEvent,
    AnalyticsEventName,
    BoundedLog,
    OutboxStore,
    SideEffectDispatcher,
    SyncOperation,
    SyncOperationKind,
)

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _op(n: int) -> SyncOperation:
    return SyncOperation(
        kind=SyncOperationKind.intent_created,
        intent_id=f"intent-{n}",
        created_at=T0,
        payload={"n": str(n)},
    )


def _event(name: str = AnalyticsEventName.URGE_LOGGED) -> AnalyticsEvent:
    return AnalyticsEvent(
        event=name,
        intent_id="intent-1",
        category="spending",
        protocol_type="twenty_four_hours",
        protocol_duration_hours=24,
        timestamp=T0,
    )


class TestBoundedLog:
    def test_drops_oldest(self):
        log = OutboxStore(max_size=3)
        for n in range(5):
            log.append(_op(n))
        assert [op.intent_id for op in log.pending()] == ["intent-2", "intent-3", "intent-4"]
        assert log.dropped == 2
        assert len(log) == 3

    def test_drain_empties(self):
        log = OutboxStore()
        log.append(_op(1))
        log.append(_op(2))
        assert len(log.drain()) == 2
        assert log.pending() == []

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            BoundedLog(0)

    def test_operation_ids_unique(self):
        assert _op(1).id != _op(1).id

    def test_event_names_are_the_emitted_set(self):
        names = {v for k, v in vars(AnalyticsEventName).items() if k.isupper()}
        assert names == {
            "desire_captured",
            "delay_protocol_selected",
            "urge_logged",
            "checkpoint_due",
            "decision_recorded",
            "decision_postponed",
            "reflection_submitted",
        }

    def test_analytics_count(self):
        buffer = AnalyticsBuffer()
        buffer.append(_event())
        buffer.append(_event())
        buffer.append(_event(AnalyticsEventName.DECISION_RECORDED))
        assert buffer.count(AnalyticsEventName.URGE_LOGGED) == 2
        assert buffer.count(AnalyticsEventName.CHECKPOINT_DUE) == 0

    def test_concurrent_appends_stay_bounded(self):
        log = OutboxStore(max_size=50)

        def writer(offset):
            for n in range(200):
                log.append(_op(offset + n))

        threads = [threading.Thread(target=writer, args=(k * 1000,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(log) == 50
        assert log.dropped == 800 - 50


class TestSideEffectDispatcher:
    def test_flush_inline_when_not_started(self):
        dispatcher = SideEffectDispatcher(OutboxStore(), AnalyticsBuffer())
        dispatcher.enqueue_operation(_op(1))
        dispatcher.track(_event())
        assert dispatcher.outbox.pending() == []
        dispatcher.flush()
        assert len(dispatcher.outbox) == 1
        assert len(dispatcher.analytics) == 1

    def test_worker_thread_preserves_order(self):
        dispatcher = SideEffectDispatcher(OutboxStore(), AnalyticsBuffer())
        dispatcher.start()
        try:
            assert dispatcher.running
            for n in range(100):
                dispatcher.enqueue_operation(_op(n))
            dispatcher.flush()
            assert [op.payload["n"] for op in dispatcher.outbox.pending()] == [
                str(n) for n in range(100)
            ]
        finally:
            dispatcher.stop()
        assert not dispatcher.running

    def test_full_queue_drops_oldest_message(self):
        dispatcher = SideEffectDispatcher(OutboxStore(), AnalyticsBuffer(), queue_size=2)
        for n in range(5):
            dispatcher.enqueue_operation(_op(n))
        assert dispatcher.dropped_count == 3
        dispatcher.flush()
        assert [op.intent_id for op in dispatcher.outbox.pending()] == ["intent-3", "intent-4"]

    def test_handler_failure_is_counted_not_raised(self):
        def boom(message):
            raise RuntimeError("sink unavailable")

        dispatcher = SideEffectDispatcher(OutboxStore(), AnalyticsBuffer(), handler=boom)
        dispatcher.enqueue_operation(_op(1))
        dispatcher.enqueue_operation(_op(2))
        dispatcher.flush()
        assert dispatcher.failure_count == 2
        assert dispatcher.last_error == "sink unavailable"

    def test_start_twice_keeps_one_worker(self):
        dispatcher = SideEffectDispatcher(OutboxStore(), AnalyticsBuffer())
        dispatcher.start()
        first = dispatcher._thread
        dispatcher.start()
        assert dispatcher._thread is first
        dispatcher.stop()

    def test_stop_without_start_is_noop(self):
        SideEffectDispatcher(OutboxStore(), AnalyticsBuffer()).stop()
