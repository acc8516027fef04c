"""
Sync / analytics outbox — bounded local logs written after primary commits.

Pieces
------
  SyncOperation      one mutation event for the external sync consumer
  AnalyticsEvent     one product-analytics event
  BoundedLog         thread-safe ring buffer, drop-oldest on overflow
  SideEffectDispatcher
                     bounded queue + one worker thread. Repository code
                     submits messages and returns immediately; the worker
                     appends them to the logs. Producers never block and
                     never see a failure: overflow drops the oldest queued
                     message, handler errors are logged and counted.

Nothing here is a module-level singleton. The app constructs one
dispatcher at startup and injects it into each repository.
"""
from __future__ import annotations

import enum
import logging
import queue
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Message types
# ---------------------------------------------------------------------------

class SyncOperationKind(str, enum.Enum):
    intent_created = "intent_created"
    intent_updated = "intent_updated"
    intent_deleted = "intent_deleted"
    intent_status_changed = "intent_status_changed"
    urge_logged = "urge_logged"
    urge_deleted = "urge_deleted"
    completion_snapshot_created = "completion_snapshot_created"
    achievement_unlocked = "achievement_unlocked"


@dataclass(frozen=True)
class SyncOperation:
    kind: SyncOperationKind
    intent_id: Optional[str]
    created_at: datetime
    payload: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class AnalyticsEventName:
    DESIRE_CAPTURED         = "desire_captured"
    DELAY_PROTOCOL_SELECTED = "delay_protocol_selected"
    URGE_LOGGED             = "urge_logged"
    CHECKPOINT_DUE          = "checkpoint_due"
    DECISION_RECORDED       = "decision_recorded"
    DECISION_POSTPONED      = "decision_postponed"
    REFLECTION_SUBMITTED    = "reflection_submitted"


@dataclass(frozen=True)
class AnalyticsEvent:
    event: str
    intent_id: str
    category: str
    protocol_type: str
    protocol_duration_hours: int
    timestamp: datetime
    extras: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Ring buffer
# ---------------------------------------------------------------------------

class BoundedLog(Generic[T]):
    """Append-only ring buffer guarded by a lock. Oldest entries fall off."""

    def __init__(self, max_size: int, name: str = "log"):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.name = name
        self.max_size = max_size
        self._items: deque[T] = deque(maxlen=max_size)
        self._lock = threading.Lock()
        self.dropped = 0

    def append(self, item: T) -> None:
        with self._lock:
            if len(self._items) == self.max_size:
                self.dropped += 1
            self._items.append(item)

    def pending(self) -> list[T]:
        with self._lock:
            return list(self._items)

    def drain(self) -> list[T]:
        """Hand every entry to the consumer and empty the log."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
            return items

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class OutboxStore(BoundedLog[SyncOperation]):
    def __init__(self, max_size: int = 500):
        super().__init__(max_size, name="outbox")


class AnalyticsBuffer(BoundedLog[AnalyticsEvent]):
    def __init__(self, max_size: int = 400):
        super().__init__(max_size, name="analytics")

    def count(self, event: str) -> int:
        return sum(1 for e in self.pending() if e.event == event)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

Message = Union[SyncOperation, AnalyticsEvent]

_STOP = object()


class SideEffectDispatcher:
    """
    Fire-and-forget channel from the repository to the outbox logs.

    Messages are handled in submission order by a single worker thread.
    Call flush() to wait until everything submitted so far is handled
    (tests, shutdown).
    """

    def __init__(
        self,
        outbox: OutboxStore,
        analytics: AnalyticsBuffer,
        queue_size: int = 1000,
        handler: Optional[Callable[[Message], None]] = None,
    ):
        self.outbox = outbox
        self.analytics = analytics
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._handler = handler or self._default_handler
        self._thread: Optional[threading.Thread] = None
        self._put_lock = threading.Lock()
        self.failure_count = 0
        self.dropped_count = 0
        self.last_error: Optional[str] = None

    # --- lifecycle ---

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="SideEffectDispatcher"
        )
        self._thread.start()
        logger.info("Side-effect dispatcher started")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._put(_STOP)
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Side-effect dispatcher stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def flush(self) -> None:
        """Block until every message submitted so far has been handled."""
        if not self.running:
            self._drain_inline()
            return
        self._queue.join()

    # --- producers ---

    def enqueue_operation(self, operation: SyncOperation) -> None:
        self._put(operation)

    def track(self, event: AnalyticsEvent) -> None:
        self._put(event)

    # --- internals ---

    def _put(self, message) -> None:
        with self._put_lock:
            while True:
                try:
                    self._queue.put_nowait(message)
                    return
                except queue.Full:
                    try:
                        dropped = self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    self._queue.task_done()
                    self.dropped_count += 1
                    logger.warning(
                        "Side-effect queue full, dropped oldest %s",
                        type(dropped).__name__,
                    )

    def _default_handler(self, message: Message) -> None:
        if isinstance(message, SyncOperation):
            self.outbox.append(message)
        elif isinstance(message, AnalyticsEvent):
            self.analytics.append(message)
        else:
            raise TypeError(f"Unsupported side-effect message: {message!r}")

    def _handle(self, message) -> None:
        try:
            self._handler(message)
        except Exception as exc:
            self.failure_count += 1
            self.last_error = str(exc)
            logger.exception("Side-effect handler failed for %s", type(message).__name__)

    def _run(self) -> None:
        while True:
            message = self._queue.get()
            try:
                if message is _STOP:
                    return
                self._handle(message)
            finally:
                self._queue.task_done()

    def _drain_inline(self) -> None:
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return
            try:
                if message is not _STOP:
                    self._handle(message)
            finally:
                self._queue.task_done()
