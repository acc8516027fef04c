"""
Periodic lifecycle sweep.

A daemon thread runs IntentRepository.refresh_lifecycle() every `interval`
seconds with its own session. The stop event doubles as the cancellation
signal: stopping mid-sweep rolls the sweep back instead of committing part
of it.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from sqlalchemy.orm import Session

from defer.core.clock import Clock
from defer.services.intent_repository import IntentRepository, LifecycleRefreshCancelled
from defer.services.outbox import SideEffectDispatcher

logger = logging.getLogger(__name__)


class LifecycleRefresher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock,
        side_effects: Optional[SideEffectDispatcher] = None,
        interval: float = 6 * 60 * 60,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.side_effects = side_effects
        self.interval = interval

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.runs = 0
        self.last_transitioned = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="LifecycleRefresher"
        )
        self._thread.start()
        logger.info("Lifecycle refresher started (%ss interval)", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Lifecycle refresher stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        """One sweep in a fresh session. Returns the number of transitions."""
        db = self.session_factory()
        try:
            repo = IntentRepository(db, self.clock, self.side_effects)
            count = repo.refresh_lifecycle(cancel_event=self._stop_event)
        finally:
            db.close()
        self.runs += 1
        self.last_transitioned = count
        return count

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except LifecycleRefreshCancelled:
                return
            except Exception:
                logger.exception("Lifecycle refresh failed")
            self._stop_event.wait(self.interval)
