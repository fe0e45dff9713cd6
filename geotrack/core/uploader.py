"""
Upload Pipeline

Decides when a fix is sent, serializes it, POSTs it to the collector and
publishes the delivery status.

Throttling: a fix is sent when at least the mode's interval (foreground or
background) has elapsed since the previous attempt, measured on a monotonic
clock read at decision time. The attempt time is recorded whether or not the
send succeeds, so failures never cause retry storms; the next natural or
forced trigger is the retry.

Forced sends bypass the interval:
- mode transitions and upload_latest() always send the last known fix
- wake cycles send unless the previous attempt was less than
  forced_send_floor_ms ago

Decisions are expected to be made from the worker's serial queue; the
network calls themselves run on the send pool passed in as `dispatcher`.
"""

from typing import Any, Callable, Dict, Optional
import json
import threading
import time

import httpx
from loguru import logger

from .config import settings, UploadSettings
from .errors import NetworkTransportError, ServerError
from .events import StateCell, Subscription
from .mode import ForegroundModeTracker
from .models import Configuration, DeliveryState, DeliveryStatus, LocationFix
from .settings_store import ConfigurationStore
from .task_queue import TaskType


CONTENT_TYPE = "application/json; charset=utf-8"


def fix_to_payload(fix: LocationFix, user_name: str) -> Dict[str, Any]:
    """
    Build the wire payload for a fix.

    Field names are fixed; strings are never null and numbers stay numbers.
    """
    return {
        "timestamp": fix.timestamp_text,
        "latitude": float(fix.latitude),
        "longitude": float(fix.longitude),
        "accuracy": float(fix.accuracy),
        "address": fix.address or "",
        "country": fix.country or "",
        "province": fix.province or "",
        "city": fix.city or "",
        "district": fix.district or "",
        "street": fix.street or "",
        "streetNum": fix.street_num or "",
        "cityCode": fix.city_code or "",
        "adCode": fix.ad_code or "",
        "poiName": fix.poi_name or "",
        "aoiName": fix.aoi_name or "",
        "buildingId": fix.building_id or "",
        "floor": fix.floor or "",
        "gpsAccuracyStatus": int(fix.gps_accuracy_status),
        "locationType": int(fix.location_type),
        "speed": float(fix.speed),
        "bearing": float(fix.bearing),
        "altitude": float(fix.altitude),
        "errorCode": int(fix.error_code),
        "errorInfo": fix.error_info or "",
        "userName": user_name or "",
    }


def serialize_fix(fix: LocationFix, user_name: str) -> str:
    """Serialize a fix to the JSON request body"""
    return json.dumps(fix_to_payload(fix, user_name), ensure_ascii=False)


def build_http_client(config: Optional[UploadSettings] = None) -> httpx.Client:
    """Create the HTTP client with the fixed upload timeouts"""
    config = config or settings.upload
    timeout = httpx.Timeout(
        connect=config.connect_timeout,
        read=config.read_timeout,
        write=config.write_timeout,
        pool=config.connect_timeout,
    )
    return httpx.Client(timeout=timeout)


class UploadPipeline:
    """
    Forwards fixes to the collector.

    Provides:
    - on_fix(): throttled handling of fix events
    - on_mode_change() / on_wake() / upload_latest(): forced sends
    - status: observable DeliveryStatus cell
    """

    def __init__(
        self,
        config_store: ConfigurationStore,
        mode: ForegroundModeTracker,
        dispatcher,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
        forced_send_floor_ms: Optional[int] = None,
    ):
        """
        Initialize upload pipeline.

        Args:
            config_store: Source of server URL, user name, flags and intervals
            mode: Foreground/background tracker selecting the interval
            dispatcher: Executor for network sends (submit(task_type, func, *args))
            client: HTTP client (created with the configured timeouts if not specified)
            clock: Monotonic clock in seconds
            forced_send_floor_ms: Minimum spacing for wake-cycle sends
        """
        self.config_store = config_store
        self.mode = mode
        self.dispatcher = dispatcher
        self.client = client or build_http_client()
        self.clock = clock
        self.forced_send_floor_ms = (
            forced_send_floor_ms if forced_send_floor_ms is not None
            else settings.upload.forced_send_floor_ms
        )

        self.status: StateCell[DeliveryStatus] = StateCell(DeliveryStatus.idle(), "delivery-status")
        self._last_send_time: Optional[float] = None
        self._last_fix: Optional[LocationFix] = None
        self._subscription: Optional[Subscription] = None
        self._lock = threading.Lock()
        self._send_seq = 0
        self._wake_mark: Optional[int] = None

        self._stats = {
            'attempted': 0,
            'succeeded': 0,
            'failed': 0,
            'throttled': 0,
        }

    @property
    def last_send_time(self) -> Optional[float]:
        """Monotonic time of the last send attempt (None if never)"""
        with self._lock:
            return self._last_send_time

    @property
    def last_fix(self) -> Optional[LocationFix]:
        with self._lock:
            return self._last_fix

    def attach(self, subscribe: Callable[[Callable[[LocationFix], None]], Subscription],
               handler: Optional[Callable[[LocationFix], None]] = None) -> None:
        """
        Subscribe to a fix stream.

        Args:
            subscribe: The stream's subscribe function
            handler: Callback to register (defaults to on_fix)
        """
        self.detach()
        self._subscription = subscribe(handler or self.on_fix)

    def detach(self) -> None:
        """Unsubscribe from the fix stream"""
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def current_interval_ms(self, config: Optional[Configuration] = None) -> int:
        """Throttle interval for the current mode"""
        config = config or self.config_store.snapshot()
        if self.mode.foreground:
            return config.foreground_interval_ms
        return config.background_interval_ms

    def is_eligible(self, now: Optional[float] = None, config: Optional[Configuration] = None) -> bool:
        """Whether enough time has passed since the last attempt"""
        now = self.clock() if now is None else now
        last = self.last_send_time
        if last is None:
            return True
        return (now - last) * 1000.0 >= self.current_interval_ms(config)

    def on_fix(self, fix: LocationFix) -> bool:
        """
        Handle a fix event.

        Returns:
            True if a send was dispatched
        """
        with self._lock:
            self._last_fix = fix

        config = self.config_store.snapshot()
        if not self._can_send(config):
            return False

        now = self.clock()
        if not self.is_eligible(now, config):
            with self._lock:
                self._stats['throttled'] += 1
            return False

        return self._send(fix, config, now, "interval")

    def on_mode_change(self, foreground: bool) -> bool:
        """Send the last known fix immediately after a mode transition"""
        return self._force(f"mode change ({'foreground' if foreground else 'background'})")

    def upload_latest(self) -> bool:
        """Send the last known fix immediately (explicit user action)"""
        return self._force("manual")

    def begin_wake_cycle(self) -> None:
        """Mark the start of a wake cycle, before its forced acquisition"""
        with self._lock:
            self._wake_mark = self._send_seq

    def on_wake(self, fix: Optional[LocationFix] = None) -> bool:
        """
        Forced send for a wake cycle.

        Bypasses the interval but not the minimum floor since the last attempt.
        Skipped when the cycle's own fix was already sent after begin_wake_cycle().

        Args:
            fix: Fix to send (defaults to the last known fix)
        """
        with self._lock:
            if fix is not None:
                self._last_fix = fix
            mark, self._wake_mark = self._wake_mark, None
            sent_this_cycle = mark is not None and self._send_seq > mark

        if sent_this_cycle:
            logger.debug("Wake send skipped: already sent during this cycle")
            return False

        last = self.last_send_time
        now = self.clock()
        if last is not None and (now - last) * 1000.0 < self.forced_send_floor_ms:
            logger.debug("Wake send skipped: within forced send floor")
            return False
        return self._force("wake cycle", now)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def _force(self, reason: str, now: Optional[float] = None) -> bool:
        fix = self.last_fix
        if fix is None:
            logger.debug(f"Forced send ({reason}) skipped: no known fix")
            return False

        config = self.config_store.snapshot()
        if not self._can_send(config):
            return False

        return self._send(fix, config, self.clock() if now is None else now, reason)

    @staticmethod
    def _can_send(config: Configuration) -> bool:
        return config.upload_enabled and bool(config.server_url)

    def _send(self, fix: LocationFix, config: Configuration, now: float, reason: str) -> bool:
        with self._lock:
            self._last_send_time = now
            self._send_seq += 1
            self._stats['attempted'] += 1

        logger.debug(f"Dispatching upload ({reason})")
        task_id = self.dispatcher.submit(
            TaskType.UPLOAD, self.deliver, fix, config.server_url, config.user_name
        )
        return task_id is not None

    def deliver(self, fix: LocationFix, server_url: str, user_name: str) -> DeliveryStatus:
        """
        POST one fix and publish the outcome.

        Runs on the send pool. No retry is attempted here.
        """
        self.status.set(DeliveryStatus.uploading())
        body = serialize_fix(fix, user_name)

        try:
            response = self.client.post(
                server_url,
                content=body.encode("utf-8"),
                headers={"Content-Type": CONTENT_TYPE},
            )
            if not response.is_success:
                raise ServerError(response.status_code)
            result = DeliveryStatus.success(response.status_code)
            logger.info(f"Location uploaded: {response.status_code}")
        except ServerError as e:
            result = DeliveryStatus.error(str(e))
            logger.error(f"Location upload failed: {e}")
        except Exception as e:
            error = NetworkTransportError(str(e) or type(e).__name__)
            result = DeliveryStatus.error(str(error))
            logger.error(f"Error sending location to {server_url}: {error}")

        with self._lock:
            key = 'succeeded' if result.state == DeliveryState.SUCCESS else 'failed'
            self._stats[key] += 1

        self.status.set(result)
        return result

    def close(self) -> None:
        """Close the HTTP client"""
        self.detach()
        self.client.close()
