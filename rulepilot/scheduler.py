"""
RulePilot Scheduler

Drives the CycleController on an interval or on demand.

  Disabled → Enabled(Idle) → Enabled(Running) → Enabled(Idle) → …

A single-flight guard makes sure at most one cycle is ever in flight.
A manual trigger during a running cycle is a no-op, not a queued request.
`stop()` while running lets the cycle finish and cancels the next tick.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from rulepilot.config_loader import MIN_INTERVAL_MS
from rulepilot.controller import CycleController
from rulepilot.event_bus import CYCLE_FINISHED, CYCLE_STARTED, SCHEDULER_STATE, EventBus
from rulepilot.models import CycleResult, utcnow
from rulepilot.ports import Timer

DEFAULT_INTERVAL_MS = 5 * 60 * 1000


class SingleFlight:
    """Non-blocking try-acquire guard."""

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def busy(self) -> bool:
        return self._lock.locked()


class ThreadingTimer:
    """Timer backed by daemon `threading.Timer` threads."""

    def __init__(self):
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(delay_s, callback)
            timer.daemon = True
            timer.name = "rulepilot-tick"
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class Scheduler:
    def __init__(
        self,
        controller: CycleController,
        timer: Timer | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
        interval_ms: int = DEFAULT_INTERVAL_MS,
    ):
        self.controller = controller
        self.timer = timer or ThreadingTimer()
        self.bus = bus or EventBus()
        self.clock = clock
        self._flight = SingleFlight()
        self._state_lock = threading.RLock()
        self._enabled = False
        self._interval_ms = max(MIN_INTERVAL_MS, interval_ms)
        self._next_run_at: datetime | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_processing(self) -> bool:
        return self._flight.busy

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def next_run_at(self) -> datetime | None:
        return self._next_run_at

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._state_lock:
            if self._enabled:
                return
            self._enabled = True
            self._schedule_next()
        logger.info(f"[SCHED] Autonomy enabled, every {self._interval_ms // 1000}s")
        self._publish_state()

    def stop(self) -> None:
        with self._state_lock:
            if not self._enabled:
                return
            self._enabled = False
            self.timer.cancel()
            self._next_run_at = None
        logger.info("[SCHED] Autonomy disabled")
        self._publish_state()

    def toggle(self) -> bool:
        """Flip enabled state. Returns the new state."""
        if self._enabled:
            self.stop()
        else:
            self.start()
        return self._enabled

    def set_interval(self, interval_ms: int) -> int:
        """Set the tick interval, clamped to at least 30s. Reschedules if running."""
        clamped = max(MIN_INTERVAL_MS, int(interval_ms))
        if clamped != interval_ms:
            logger.warning(f"[SCHED] Interval {interval_ms}ms below minimum, using {clamped}ms")
        with self._state_lock:
            self._interval_ms = clamped
            if self._enabled:
                self._schedule_next()
        return clamped

    def trigger_now(self) -> CycleResult:
        """Run one cycle now. Returns a zero result if a cycle is already in flight."""
        result = self._run_guarded()
        if result is None:
            logger.info("[SCHED] A cycle is already processing, manual trigger ignored")
            return CycleResult()
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule_next(self) -> None:
        delay_s = self._interval_ms / 1000
        self._next_run_at = self.clock() + timedelta(milliseconds=self._interval_ms)
        self.timer.schedule(delay_s, self._tick)

    def _tick(self) -> None:
        if self._enabled and not self._flight.busy:
            self._run_guarded()
        with self._state_lock:
            if self._enabled:
                self._schedule_next()

    def _run_guarded(self) -> CycleResult | None:
        if not self._flight.try_acquire():
            return None

        result = CycleResult()
        self.bus.emit(CYCLE_STARTED, "scheduler", {})
        try:
            result = self.controller.run_cycle()
        except Exception:
            logger.exception("[SCHED] Cycle raised unexpectedly")
        finally:
            self._flight.release()
            self.bus.emit(CYCLE_FINISHED, "scheduler", result.model_dump())
        return result

    def _publish_state(self) -> None:
        self.bus.emit(SCHEDULER_STATE, "scheduler", {
            "enabled": self._enabled,
            "interval_ms": self._interval_ms,
            "next_run_at": self._next_run_at.isoformat() if self._next_run_at else None,
        })
