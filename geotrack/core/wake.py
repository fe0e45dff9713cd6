"""
Wake Scheduler

Forces an acquisition-and-upload cycle at a fixed period even when nothing
else would wake the worker. Each cycle runs under a wake lock (execution
guarantee token) so the host cannot suspend the process half-way through:

    acquire lock -> force one fix -> settle delay -> notify upload -> release lock

The lock is released on every exit path, including when a step raises.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Optional
import random
import threading
import time
from loguru import logger

from .config import settings, MIN_WAKE_INTERVAL_MS, MAX_WAKE_INTERVAL_MS
from .events import StateCell


class RepeatingTimer(ABC):
    """A periodic timer: schedule(period, callback) / cancel()"""

    @abstractmethod
    def schedule(self, period: float, callback: Callable[[], None]) -> None:
        """Start calling callback every `period` seconds"""
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the schedule. Safe to call when not scheduled."""
        pass

    @property
    @abstractmethod
    def is_scheduled(self) -> bool:
        pass


class ThreadRepeatingTimer(RepeatingTimer):
    """
    Repeating timer on a daemon thread.

    The period is approximate: each wait is randomized by +/- jitter so
    several workers on one host do not wake in lockstep.
    """

    def __init__(self, jitter: Optional[float] = None, name: str = "wake-timer"):
        self.jitter = jitter if jitter is not None else settings.wake.jitter
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_scheduled(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def schedule(self, period: float, callback: Callable[[], None]) -> None:
        self.cancel()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._loop,
            args=(period, callback, stop_event),
            name=self.name,
            daemon=True
        )
        self._thread.start()

    def cancel(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)

    def _loop(self, period: float, callback: Callable[[], None], stop_event: threading.Event) -> None:
        while True:
            delay = period * (1 + random.uniform(-self.jitter, self.jitter))
            if stop_event.wait(delay):
                return
            try:
                callback()
            except Exception as e:
                logger.error(f"Timer callback error: {e}")


class WakeLock:
    """
    Execution guarantee token.

    Reference counted: the lock is held while at least one acquire() is
    outstanding. Every hold is bounded: after max_hold seconds the lock is
    force-released even if release() was never called.
    """

    def __init__(self, name: str = "geotrack-wake"):
        self.name = name
        self._count = 0
        self._lock = threading.Lock()
        self._watchdog: Optional[threading.Timer] = None
        self.held: StateCell[bool] = StateCell(False, "wake-lock")
        self.forced_releases = 0

    @property
    def hold_count(self) -> int:
        with self._lock:
            return self._count

    @property
    def is_held(self) -> bool:
        return self.held.value

    def acquire(self, max_hold: float) -> None:
        """
        Take a hold on the lock.

        Args:
            max_hold: Safety ceiling in seconds for this hold
        """
        with self._lock:
            self._count += 1
            self._restart_watchdog(max_hold)
        self.held.set(True)
        logger.debug(f"Wake lock {self.name} acquired (holds={self.hold_count})")

    def release(self) -> None:
        """Drop one hold. Releasing an unheld lock is a no-op."""
        with self._lock:
            if self._count == 0:
                return
            self._count -= 1
            released = self._count == 0
            if released:
                self._cancel_watchdog()
        if released:
            self.held.set(False)
            logger.debug(f"Wake lock {self.name} released")

    @contextmanager
    def hold(self, max_hold: float):
        """Hold the lock for the duration of a with-block"""
        self.acquire(max_hold)
        try:
            yield self
        finally:
            self.release()

    def _restart_watchdog(self, max_hold: float) -> None:
        self._cancel_watchdog()
        self._watchdog = threading.Timer(max_hold, self._force_release)
        self._watchdog.daemon = True
        self._watchdog.start()

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _force_release(self) -> None:
        with self._lock:
            if self._count == 0:
                return
            logger.warning(f"Wake lock {self.name} exceeded max hold, forcing release ({self._count} holds)")
            self._count = 0
            self._watchdog = None
            self.forced_releases += 1
        self.held.set(False)


class WakeState(Enum):
    """Wake scheduler state"""
    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    FIRING = "firing"


class WakeScheduler:
    """
    Periodic forced acquisition-and-upload cycles.

    The scheduler does not know about the pipeline or the engine directly:
    it is given a callable that forces one acquisition and a callable that
    asks for a delivery attempt.
    """

    def __init__(
        self,
        force_acquisition: Callable[[], object],
        notify_upload: Callable[[], object],
        wake_lock: Optional[WakeLock] = None,
        timer: Optional[RepeatingTimer] = None,
        period_ms: Optional[int] = None,
        settle_delay: Optional[float] = None,
        max_hold: Optional[float] = None,
    ):
        """
        Initialize wake scheduler.

        Args:
            force_acquisition: Requests one fix (the engine's force_single_update)
            notify_upload: Requests a forced delivery attempt
            wake_lock: Execution guarantee token
            timer: Repeating timer implementation
            period_ms: Initial period in ms (uses settings if not specified)
            settle_delay: Seconds to wait for the provider to answer
            max_hold: Wake lock ceiling per cycle in seconds
        """
        self.force_acquisition = force_acquisition
        self.notify_upload = notify_upload
        self.wake_lock = wake_lock or WakeLock()
        self.timer = timer or ThreadRepeatingTimer()
        self.settle_delay = settle_delay if settle_delay is not None else settings.wake.settle_delay
        self.max_hold = max_hold if max_hold is not None else settings.wake.max_hold

        period_ms = period_ms if period_ms is not None else settings.wake.interval_ms
        if not self.is_valid_period(period_ms):
            raise ValueError(f"Wake period out of range: {period_ms} ms")
        self._period_ms = period_ms

        self.state: StateCell[WakeState] = StateCell(WakeState.STOPPED, "wake")
        self._lock = threading.RLock()
        self._cancelled = threading.Event()
        self.cycles = 0

    @staticmethod
    def is_valid_period(period_ms: int) -> bool:
        return MIN_WAKE_INTERVAL_MS <= period_ms <= MAX_WAKE_INTERVAL_MS

    @property
    def period_ms(self) -> int:
        return self._period_ms

    @property
    def is_running(self) -> bool:
        return self.state.value != WakeState.STOPPED

    def start(self) -> None:
        """Register the repeating timer. Starting twice is a no-op."""
        with self._lock:
            if self.is_running:
                return
            self._cancelled.clear()
            self.timer.schedule(self._period_ms / 1000.0, self.fire)
            self.state.set(WakeState.SCHEDULED)
        logger.info(f"Wake scheduler started, period {self._period_ms} ms")

    def stop(self) -> None:
        """Cancel the timer. Stopping twice is a no-op."""
        with self._lock:
            if not self.is_running:
                return
            self._cancelled.set()
            self.timer.cancel()
            self.state.set(WakeState.STOPPED)
        logger.info("Wake scheduler stopped")

    def set_period(self, period_ms: int) -> bool:
        """
        Change the wake period.

        Re-registers the timer when running.

        Returns:
            False if the period is outside [60000, 1800000] ms (unchanged)
        """
        if not self.is_valid_period(period_ms):
            logger.warning(
                f"Wake period {period_ms} ms rejected: must be between "
                f"{MIN_WAKE_INTERVAL_MS} and {MAX_WAKE_INTERVAL_MS} ms"
            )
            return False

        with self._lock:
            if period_ms == self._period_ms:
                return True
            self._period_ms = period_ms
            if self.is_running:
                self.timer.cancel()
                self.timer.schedule(period_ms / 1000.0, self.fire)

        logger.info(f"Wake period set to {period_ms} ms ({period_ms / 60000:.1f} min)")
        return True

    def fire(self) -> None:
        """Run one wake cycle (called by the timer)"""
        with self._lock:
            if self.state.value != WakeState.SCHEDULED:
                return
            self.state.set(WakeState.FIRING)

        self.cycles += 1
        logger.debug(f"Wake cycle {self.cycles}")
        try:
            with self.wake_lock.hold(self.max_hold):
                self.force_acquisition()
                if self._cancelled.wait(self.settle_delay):
                    return
                self.notify_upload()
        except Exception as e:
            logger.error(f"Wake cycle {self.cycles} failed: {e}")
        finally:
            with self._lock:
                if self.state.value == WakeState.FIRING:
                    self.state.set(WakeState.SCHEDULED)
