"""Poll scheduling: interval timer, preference watch, single-flight cycles."""

import logging
import threading
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .engine import CycleResult, NotificationEngine
from .models import PollState

logger = logging.getLogger(__name__)


class PollScheduler:
    """
    Drives NotificationEngine cycles as an explicit state machine::

        IDLE -> FETCHING -> DIFFING -> SYNTHESIZING -> COMMITTING -> IDLE

    Triggers are "start", "interval", "preferences" and "manual". Only one
    cycle runs at a time: a trigger that arrives while a cycle is in flight is
    coalesced into it and returns None. stop() cancels an in-flight cycle at
    its next stage boundary, and that cycle commits nothing.
    """

    def __init__(
        self,
        engine: NotificationEngine,
        interval_seconds: int,
        preference_check_seconds: float = 2.0,
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.preference_check_seconds = preference_check_seconds
        self._state = PollState.IDLE
        self._state_lock = threading.Lock()
        self._flight = threading.Lock()
        self._cancelled = threading.Event()
        self._scheduler: Optional[BackgroundScheduler] = None
        self.last_result: Optional[CycleResult] = None
        self.coalesced = 0

        self.engine.preferences.subscribe(self._on_preferences_changed)

    @property
    def state(self) -> PollState:
        with self._state_lock:
            return self._state

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def _set_state(self, state: PollState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        logger.debug(f"Poll state {previous.value} -> {state.value}")

    def trigger(self, reason: str = "manual") -> Optional[CycleResult]:
        """
        Run one cycle now unless one is already in flight.

        Returns:
            The cycle result, or None if the trigger was coalesced or the
            scheduler has been stopped.
        """
        if self._cancelled.is_set():
            logger.debug(f"Ignoring '{reason}' trigger: scheduler stopped")
            return None
        if not self._flight.acquire(blocking=False):
            self.coalesced += 1
            logger.info(f"Cycle already in progress ({self.state.value}); coalescing '{reason}' trigger")
            return None
        try:
            result = self.engine.run_cycle(
                trigger=reason,
                on_stage=self._set_state,
                is_cancelled=self._cancelled.is_set,
            )
            self.last_result = result
            return result
        except Exception as e:
            logger.error(f"Poll cycle ({reason}) failed: {e}", exc_info=True)
            return None
        finally:
            self._set_state(PollState.IDLE)
            self._flight.release()

    def _on_preferences_changed(self, prefs) -> None:
        # A preference change re-runs the whole cycle, not a partial patch.
        enabled = sorted(name for name, value in prefs.items() if value)
        logger.info(f"Preferences changed (enabled: {', '.join(enabled) or 'none'}); re-polling")
        if self.running:
            self._scheduler.add_job(self.trigger, args=["preferences"], id="preferences_refresh",
                                    replace_existing=True)
        else:
            self.trigger("preferences")

    def _check_preferences(self) -> None:
        self.engine.preferences.poll_changes()

    def start(self) -> None:
        """Start the interval timer and preference watcher, and poll immediately."""
        if self._scheduler is not None:
            logger.info("Poll scheduler already running, skipping start")
            return
        self._cancelled.clear()
        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self.trigger,
            trigger="interval",
            seconds=self.interval_seconds,
            args=["interval"],
            id="notification_poll",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(
            self._check_preferences,
            trigger="interval",
            seconds=self.preference_check_seconds,
            id="preference_watch",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(self.trigger, args=["start"], id="initial_poll",
                                next_run_time=datetime.now())
        self._scheduler.start()
        logger.info(f"Poll scheduler started: every {self.interval_seconds}s")

    def stop(self, wait: bool = False) -> None:
        """Cancel any in-flight cycle and stop all timers."""
        self._cancelled.set()
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
        logger.info("Poll scheduler stopped")
