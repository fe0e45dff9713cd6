"""
Location Acquisition Engine

Owns the positioning provider's lifecycle and publishes fixes:

- fix_cell holds the last successful fix ("last known good")
- fix_events emits every successful fix in arrival order
- init_state tracks provider initialization so the worker can report
  a degraded state while initialization keeps being retried

Provider exceptions never propagate out of start()/stop(): a failed
initialization is logged and retried after a fixed delay.
"""

from typing import Callable, Optional, TYPE_CHECKING
import threading
from loguru import logger

from .config import settings
from .errors import ProviderInitError, ProviderReadError
from .events import EventStream, StateCell, Subscription
from .models import LocationFix, ProviderInitState
from ..providers.network import NetworkProbe

if TYPE_CHECKING:
    from ..providers.base import PositionProvider


class LocationAcquisitionEngine:
    """Manages a PositionProvider and publishes its fixes"""

    def __init__(
        self,
        provider: "PositionProvider",
        probe: Optional[NetworkProbe] = None,
        retry_delay: Optional[float] = None,
        fix_interval: Optional[float] = None,
    ):
        """
        Initialize acquisition engine.

        Args:
            provider: Positioning provider (not yet initialized)
            probe: Network reachability check run before initialization
            retry_delay: Seconds between initialization attempts
            fix_interval: Continuous fix cadence in seconds
        """
        self.provider = provider
        self.probe = probe or NetworkProbe()
        self.retry_delay = retry_delay if retry_delay is not None else settings.provider.retry_delay
        self.fix_interval = fix_interval if fix_interval is not None else settings.provider.fix_interval

        self.fix_cell: StateCell[Optional[LocationFix]] = StateCell(None, "fix")
        self.fix_events: EventStream[LocationFix] = EventStream("fix-events")
        self.init_state: StateCell[ProviderInitState] = StateCell(ProviderInitState.UNINITIALIZED, "provider-init")

        self._running = False
        self._retry_timer: Optional[threading.Timer] = None
        self._lock = threading.RLock()

        self.read_errors = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def initialized(self) -> bool:
        return self.provider.is_initialized

    def start(self) -> None:
        """
        Start continuous acquisition.

        Idempotent. Initializes the provider first if needed; if that fails
        (network unreachable or provider error) it is retried after
        retry_delay for as long as the engine is running.
        """
        with self._lock:
            if self._running:
                return
            self._running = True
        logger.info("Location acquisition starting")
        self._try_start()

    def stop(self) -> None:
        """Stop continuous acquisition. The provider stays initialized."""
        with self._lock:
            self._running = False
            self._cancel_retry()

        try:
            self.provider.stop()
        except Exception as e:
            logger.error(f"Error stopping provider: {e}")
        logger.info("Location acquisition stopped")

    def shutdown(self) -> None:
        """Stop and release the provider handle"""
        self.stop()
        try:
            self.provider.destroy()
        except Exception as e:
            logger.error(f"Error destroying provider: {e}")
        finally:
            self.provider.on_fix(None)
            self.init_state.set(ProviderInitState.UNINITIALIZED)

    def force_single_update(self) -> bool:
        """
        Request exactly one fix, independently of continuous delivery.

        Initializes the provider on the spot if it is not ready yet.

        Returns:
            True if the request was issued
        """
        if not self.provider.is_initialized and not self._initialize():
            logger.warning("Single update skipped: provider not initialized")
            return False

        try:
            self.provider.acquire_once()
            logger.debug("Single update requested")
            return True
        except Exception as e:
            logger.error(f"Single update request failed: {e}")
            return False

    def current_fix(self) -> Optional[LocationFix]:
        """Most recent successful fix, or None"""
        return self.fix_cell.value

    def observe_fix(self, callback: Callable[[LocationFix], None]) -> Subscription:
        """Subscribe to successful fix events"""
        return self.fix_events.subscribe(callback)

    def _try_start(self) -> None:
        with self._lock:
            if not self._running:
                return

        if not self.provider.is_initialized and not self._initialize():
            self._schedule_retry()
            return

        # stop() may have run while initializing
        with self._lock:
            if not self._running:
                logger.info("Acquisition stopped during provider start, not going continuous")
                return
            try:
                self.provider.acquire_continuous(self.fix_interval)
                logger.info(f"Continuous acquisition every {self.fix_interval}s")
                return
            except Exception as e:
                logger.error(f"Failed to start continuous acquisition: {e}")
        self._schedule_retry()

    def _initialize(self) -> bool:
        self.init_state.set(ProviderInitState.INITIALIZING)
        try:
            if not self.probe.is_reachable():
                raise ProviderInitError("network unreachable")
            self.provider.on_fix(self._on_fix)
            self.provider.initialize()
        except Exception as e:
            logger.warning(f"Provider initialization failed: {e}")
            self.init_state.set(ProviderInitState.FAILED)
            return False

        self.init_state.set(ProviderInitState.READY)
        logger.info(f"Provider initialized: {self.provider.provider_type.value}")
        return True

    def _schedule_retry(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._cancel_retry()
            self._retry_timer = threading.Timer(self.retry_delay, self._retry)
            self._retry_timer.daemon = True
            self._retry_timer.start()
        logger.info(f"Retrying provider start in {self.retry_delay}s")

    def _retry(self) -> None:
        with self._lock:
            self._retry_timer = None
        self._try_start()

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _on_fix(self, fix: LocationFix) -> None:
        if not fix.is_success:
            self.read_errors += 1
            error = ProviderReadError(fix.error_code, fix.error_info)
            logger.warning(f"Location fix failed, keeping last known fix: {error}")
            return

        self.fix_cell.set(fix)
        self.fix_events.publish(fix)
        logger.debug(f"Fix: {fix.latitude:.6f}, {fix.longitude:.6f} (+/-{fix.accuracy:.1f} m)")
