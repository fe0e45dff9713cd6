"""
Location Worker

The single owned worker value hosting the acquisition engine, wake
scheduler, upload pipeline and mode tracker. The host process constructs
one LocationWorker and hands it to whatever needs to observe or control it.

Threading model: provider callbacks, wake cycles, mode changes and manual
triggers all arrive on other threads and are queued onto one serial event
queue, so throttling state is only touched from that queue. Network sends
run on a separate bounded pool.

Lifecycle: STOPPED -> INITIALIZING -> RUNNING (or DEGRADED while the
provider keeps failing to initialize) -> STOPPING -> STOPPED. Stopping
means "accept no new work"; uploads already in flight finish on their own.
"""

from typing import Any, Callable, Dict, List, Optional, Union, TYPE_CHECKING
import threading
import time

import httpx
from loguru import logger

from .acquisition import LocationAcquisitionEngine
from .config import Settings, settings as default_settings
from .events import EventStream, StateCell, Subscription
from .mode import ForegroundModeTracker
from .models import (
    Configuration, DeliveryState, DeliveryStatus, IntervalKind, LocationFix,
    ProviderInitState, SettingKey, WorkerState,
)
from .settings_store import ConfigurationStore
from .task_queue import TaskManager, TaskType
from .uploader import UploadPipeline, build_http_client
from .wake import RepeatingTimer, WakeLock, WakeScheduler
from ..providers.network import NetworkProbe

if TYPE_CHECKING:
    from ..providers.base import PositionProvider


class LocationWorker:
    """
    Background location worker.

    Exposes:
    - start() / stop() / close()
    - observe_fix(), observe_delivery_status(), observe_state(), observe_errors()
    - set_foreground_mode(), upload_latest(), set_upload_enabled(), set_interval()
    """

    def __init__(
        self,
        config_store: ConfigurationStore,
        provider: "PositionProvider",
        probe: Optional[NetworkProbe] = None,
        http_client: Optional[httpx.Client] = None,
        wake_lock: Optional[WakeLock] = None,
        timer: Optional[RepeatingTimer] = None,
        app_settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        foreground: bool = True,
    ):
        """
        Initialize the worker. Nothing runs until start().

        Args:
            config_store: Persisted runtime configuration
            provider: Positioning provider (not yet initialized)
            probe: Network reachability check for provider initialization
            http_client: HTTP client for uploads
            wake_lock: Execution guarantee token
            timer: Repeating timer for wake cycles
            app_settings: Process settings (global settings if not specified)
            clock: Monotonic clock used for throttling
            foreground: Initial app mode
        """
        self.settings = app_settings or default_settings
        self.config_store = config_store

        self.events = TaskManager(num_workers=1, name="worker-events")
        self.sends = TaskManager(num_workers=self.settings.upload.max_concurrent_sends, name="worker-sends")

        self.mode = ForegroundModeTracker(foreground)
        self.engine = LocationAcquisitionEngine(
            provider,
            probe=probe,
            retry_delay=self.settings.provider.retry_delay,
            fix_interval=self.settings.provider.fix_interval,
        )
        self.pipeline = UploadPipeline(
            config_store,
            self.mode,
            dispatcher=self.sends,
            client=http_client or build_http_client(self.settings.upload),
            clock=clock,
            forced_send_floor_ms=self.settings.upload.forced_send_floor_ms,
        )
        self.scheduler = WakeScheduler(
            force_acquisition=self._force_wake_acquisition,
            notify_upload=self._notify_wake,
            wake_lock=wake_lock,
            timer=timer,
            period_ms=self.settings.wake.interval_ms,
            settle_delay=self.settings.wake.settle_delay,
            max_hold=self.settings.wake.max_hold,
        )

        self.state: StateCell[WorkerState] = StateCell(WorkerState.STOPPED, "worker")
        self.errors: EventStream[str] = EventStream("worker-errors")

        self._subscriptions: List[Subscription] = []
        self._lifecycle_lock = threading.RLock()
        self._accepting = False
        self._closed = False

        # Worker-lifetime observers (status errors are reported even while stopping)
        self.pipeline.status.subscribe(self._on_status, replay=False)
        self.engine.init_state.subscribe(self._on_provider_init, replay=False)

    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self.state.value in (WorkerState.RUNNING, WorkerState.DEGRADED, WorkerState.INITIALIZING)

    def start(self, config: Optional[Configuration] = None) -> None:
        """
        Start acquiring and uploading.

        Args:
            config: Optional configuration to apply before starting
        """
        with self._lifecycle_lock:
            if self._closed:
                raise RuntimeError("worker has been closed")
            if self.state.value != WorkerState.STOPPED:
                return

            self.state.set(WorkerState.INITIALIZING)
            logger.info("Location worker starting")

            self.config_store.load()
            if config is not None:
                self._apply(config)

            wake_ms = self.config_store.get(SettingKey.WAKE_INTERVAL)
            if not self.scheduler.set_period(wake_ms):
                logger.warning(f"Keeping wake period {self.scheduler.period_ms} ms")

            self._accepting = True
            self._subscriptions = [
                self.config_store.observe(SettingKey.WAKE_INTERVAL, self._on_wake_interval, replay=False),
                self.config_store.observe(SettingKey.UPLOAD_ENABLED, self._on_upload_enabled, replay=False),
                self.mode.observe(self._on_mode),
            ]
            self.pipeline.attach(self.engine.observe_fix, handler=self._on_fix)

            self.engine.start()
            self.scheduler.start()

            if self.engine.init_state.value == ProviderInitState.READY:
                self.state.set(WorkerState.RUNNING)
            elif self.engine.init_state.value == ProviderInitState.FAILED:
                self.state.set(WorkerState.DEGRADED)

        logger.info(f"Location worker {self.state.value.value}")

    def stop(self) -> None:
        """Stop accepting work. In-flight uploads are left to complete."""
        with self._lifecycle_lock:
            if self.state.value in (WorkerState.STOPPED, WorkerState.STOPPING):
                return

            self.state.set(WorkerState.STOPPING)
            logger.info("Location worker stopping")

            self._accepting = False
            self.scheduler.stop()
            self.pipeline.detach()
            for subscription in self._subscriptions:
                subscription.cancel()
            self._subscriptions = []
            self.engine.stop()

            self.state.set(WorkerState.STOPPED)
        logger.info("Location worker stopped")

    def close(self, timeout: float = 5.0) -> None:
        """Stop, release the provider and shut down the task pools"""
        self.stop()
        with self._lifecycle_lock:
            if self._closed:
                return
            self._closed = True
        self.engine.shutdown()
        self.events.shutdown(wait=True, timeout=timeout)
        self.sends.shutdown(wait=True, timeout=timeout)
        self.pipeline.close()
        logger.info("Location worker closed")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Observation

    def observe_fix(self, callback: Callable[[LocationFix], None]) -> Subscription:
        """Subscribe to successful fixes"""
        return self.engine.observe_fix(callback)

    def observe_delivery_status(self, callback: Callable[[DeliveryStatus], None],
                                replay: bool = True) -> Subscription:
        """Subscribe to delivery status changes"""
        return self.pipeline.status.subscribe(callback, replay=replay)

    def observe_state(self, callback: Callable[[WorkerState], None],
                      replay: bool = True) -> Subscription:
        """Subscribe to lifecycle state changes"""
        return self.state.subscribe(callback, replay=replay)

    def observe_errors(self, callback: Callable[[str], None]) -> Subscription:
        """Subscribe to error messages (provider and delivery failures)"""
        return self.errors.subscribe(callback)

    def current_fix(self) -> Optional[LocationFix]:
        return self.engine.current_fix()

    @property
    def delivery_status(self) -> DeliveryStatus:
        return self.pipeline.status.value

    # Control

    def set_foreground_mode(self, foreground: bool) -> bool:
        """
        Set the app mode. A transition forces one immediate send.

        Returns:
            True if the mode changed
        """
        return self.mode.set(foreground)

    def upload_latest(self) -> bool:
        """
        Send the last known fix now, bypassing throttling.

        Returns:
            True if the request was queued
        """
        return self._enqueue(TaskType.MANUAL, self.pipeline.upload_latest)

    def set_upload_enabled(self, enabled: bool) -> bool:
        return self.config_store.set(SettingKey.UPLOAD_ENABLED, bool(enabled))

    def set_server_url(self, url: str) -> bool:
        return self.config_store.set(SettingKey.SERVER_URL, url.strip())

    def set_user_name(self, name: str) -> bool:
        return self.config_store.set(SettingKey.USER_NAME, name)

    def set_interval(self, kind: Union[IntervalKind, str], interval_ms: int) -> bool:
        """
        Set the foreground, background or wake interval.

        Returns:
            False if the value is rejected (previous value kept)
        """
        try:
            kind = IntervalKind(kind)
        except ValueError:
            logger.warning(f"Unknown interval kind: {kind}")
            return False
        return self.config_store.set(kind.setting_key, interval_ms)

    def snapshot(self) -> Dict[str, Any]:
        """Current worker state for status endpoints and diagnostics"""
        fix = self.engine.current_fix()
        return {
            'state': self.state.value.value,
            'foreground': self.mode.foreground,
            'configuration': self.config_store.snapshot().model_dump(),
            'last_fix': fix.to_dict() if fix else None,
            'delivery_status': self.pipeline.status.value.to_dict(),
            'upload_stats': self.pipeline.stats(),
            'wake': {
                'state': self.scheduler.state.value.value,
                'period_ms': self.scheduler.period_ms,
                'cycles': self.scheduler.cycles,
                'lock_held': self.scheduler.wake_lock.is_held,
            },
            'provider': {
                'type': self.engine.provider.provider_type.value,
                'init_state': self.engine.init_state.value.value,
                'read_errors': self.engine.read_errors,
            },
        }

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until queued events and sends have been processed"""
        deadline = None if timeout is None else time.monotonic() + timeout
        if not self.events.wait_idle(timeout):
            return False
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self.sends.wait_idle(remaining)

    # Internals

    def _apply(self, config: Configuration) -> None:
        for key in SettingKey:
            value = config.get(key)
            if self.config_store.get(key) != value and not self.config_store.set(key, value):
                logger.warning(f"Could not apply {key.value}={value!r}")

    def _enqueue(self, task_type: TaskType, func: Callable, *args) -> bool:
        if not self._accepting:
            logger.debug(f"Worker not accepting work, dropping {task_type.value}")
            return False
        return self.events.submit(task_type, func, *args) is not None

    def _on_fix(self, fix: LocationFix) -> None:
        self._enqueue(TaskType.FIX, self.pipeline.on_fix, fix)

    def _on_mode(self, foreground: bool) -> None:
        self._enqueue(TaskType.MODE, self.pipeline.on_mode_change, foreground)

    def _on_wake_interval(self, interval_ms: int) -> None:
        if not self.scheduler.set_period(interval_ms):
            self.errors.publish(f"wake interval {interval_ms} ms rejected")

    def _on_upload_enabled(self, enabled: bool) -> None:
        logger.info(f"Location upload {'enabled' if enabled else 'disabled'}")

    def _force_wake_acquisition(self) -> bool:
        self.pipeline.begin_wake_cycle()
        return self.engine.force_single_update()

    def _notify_wake(self) -> None:
        done = threading.Event()

        def run():
            try:
                self.pipeline.on_wake()
            finally:
                done.set()

        if self._enqueue(TaskType.WAKE, run):
            done.wait(timeout=self.scheduler.max_hold)

    def _on_status(self, status: DeliveryStatus) -> None:
        if status.state == DeliveryState.ERROR:
            self.errors.publish(f"upload failed: {status.message}")

    def _on_provider_init(self, init_state: ProviderInitState) -> None:
        current = self.state.value
        if init_state == ProviderInitState.FAILED:
            if current in (WorkerState.INITIALIZING, WorkerState.RUNNING):
                self.state.set(WorkerState.DEGRADED)
            self.errors.publish("positioning provider failed to initialize, retrying")
        elif init_state == ProviderInitState.READY:
            if current in (WorkerState.INITIALIZING, WorkerState.DEGRADED):
                self.state.set(WorkerState.RUNNING)
