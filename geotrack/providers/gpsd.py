"""
GPSD Positioning Provider

Reads fixes from a gpsd daemon through the gpsd-py3 client library.
"""

from typing import Optional
import threading
import time
from loguru import logger

from ..core.config import settings
from ..core.errors import ProviderInitError
from ..core.models import LocationFix
from .base import PositionProvider, ProviderType, ERROR_NO_FIX, ERROR_READ_FAILED


class GpsdPositionProvider(PositionProvider):
    """Positioning provider backed by gpsd"""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Initialize GPSD provider.

        Args:
            host: gpsd host (uses settings if not specified)
            port: gpsd port (uses settings if not specified)
        """
        super().__init__()
        self.host = host or settings.provider.gpsd_host
        self.port = port or settings.provider.gpsd_port
        self._session = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._read_lock = threading.Lock()

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GPSD

    def initialize(self) -> None:
        try:
            import gpsd
        except ImportError as e:
            raise ProviderInitError("gpsd-py3 library not installed") from e

        try:
            gpsd.connect(host=self.host, port=self.port)
        except Exception as e:
            raise ProviderInitError(f"Failed to connect to gpsd at {self.host}:{self.port}: {e}") from e

        self._session = gpsd
        self.is_initialized = True
        logger.info(f"Connected to gpsd at {self.host}:{self.port}")

    def acquire_continuous(self, interval: float) -> None:
        if not self.is_initialized:
            raise ProviderInitError("provider not initialized")
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self.is_continuous = True
        self._thread = threading.Thread(
            target=self._update_loop,
            args=(interval,),
            name="gpsd-provider",
            daemon=True
        )
        self._thread.start()

    def acquire_once(self) -> None:
        if not self.is_initialized:
            raise ProviderInitError("provider not initialized")
        threading.Thread(
            target=lambda: self._deliver(self.read_fix()),
            name="gpsd-once",
            daemon=True
        ).start()

    def stop(self) -> None:
        self._stop_event.set()
        self.is_continuous = False
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

    def destroy(self) -> None:
        self.stop()
        self._session = None
        self.is_initialized = False
        logger.info("gpsd provider destroyed")

    def read_fix(self) -> LocationFix:
        """Read the current packet from gpsd and convert it to a fix"""
        try:
            with self._read_lock:
                packet = self._session.get_current()
        except Exception as e:
            return LocationFix.failure(ERROR_READ_FAILED, str(e), provider="gpsd")

        if packet.mode < 2:
            return LocationFix.failure(ERROR_NO_FIX, "no 2D/3D fix", provider="gpsd")

        error = getattr(packet, 'error', None) or {}
        accuracy = max(error.get('x', 0.0) or 0.0, error.get('y', 0.0) or 0.0)

        return LocationFix.now(
            packet.lat,
            packet.lon,
            accuracy=float(accuracy),
            altitude=float(packet.alt) if packet.mode >= 3 else 0.0,
            speed=float(getattr(packet, 'hspeed', 0.0) or 0.0),
            bearing=float(getattr(packet, 'track', 0.0) or 0.0),
            gps_accuracy_status=packet.mode,
            location_type=1,
            coord_type="WGS84",
            provider="gpsd",
        )

    def _update_loop(self, interval: float) -> None:
        """Background thread for continuous gpsd updates"""
        while not self._stop_event.is_set():
            started = time.monotonic()
            self._deliver(self.read_fix())
            remaining = interval - (time.monotonic() - started)
            self._stop_event.wait(max(0.0, remaining))
