"""
Mock Positioning Provider

This module provides a simulated positioning provider for testing and
development without a receiver. It can hold a static position, walk a route
of waypoints, replay scripted fixes, and inject initialization or read
failures.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import random
import threading
import time
from loguru import logger

from ..core.config import settings
from ..core.errors import ProviderInitError
from ..core.models import LocationFix
from .base import PositionProvider, ProviderType, ERROR_SIMULATED


@dataclass
class MockRoute:
    """A named route for the simulated receiver to follow"""
    name: str
    waypoints: List[Tuple[float, float]] = field(default_factory=list)
    segment_seconds: float = 10.0    # Time to travel between two waypoints
    speed: float = 1.4               # Reported speed in m/s


# Predefined routes
ROUTES = {
    'bund_walk': MockRoute(
        name="Bund Walk, Shanghai",
        waypoints=[
            (31.2400, 121.4900),
            (31.2365, 121.4905),
            (31.2330, 121.4895),
            (31.2301, 121.4880),
        ],
        speed=1.4,
    ),
    'ring_road': MockRoute(
        name="Inner Ring Road loop",
        waypoints=[
            (31.2450, 121.4550),
            (31.2450, 121.4950),
            (31.2100, 121.4950),
            (31.2100, 121.4550),
        ],
        segment_seconds=60.0,
        speed=13.9,
    ),
}


class MockPositionProvider(PositionProvider):
    """
    Simulated positioning provider.

    Fix delivery happens on background threads like a real receiver. Tests
    that need determinism can call emit() directly or use scripted fixes.
    """

    def __init__(
        self,
        route: Optional[str] = None,
        init_failures: int = 0,
        response_delay: float = 0.05,
        jitter_deg: float = 0.00001,
    ):
        """
        Initialize mock provider.

        Args:
            route: Name of a predefined route (static position if not specified)
            init_failures: Number of initialize() calls that fail before succeeding
            response_delay: Delay before a single-shot fix is delivered (seconds)
            jitter_deg: Standard deviation of position noise (degrees)
        """
        super().__init__()
        self._route: Optional[MockRoute] = ROUTES[route] if route else None
        self.init_failures = init_failures
        self.fail_reads = False
        self.response_delay = response_delay
        self.jitter_deg = jitter_deg

        self._position = (settings.provider.mock_default_lat, settings.provider.mock_default_lon)
        self._scripted: List[LocationFix] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = time.monotonic()

        self.init_calls = 0
        self.once_requests = 0

        logger.info(f"Mock provider created ({self._route.name if self._route else 'static position'})")

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.MOCK

    def initialize(self) -> None:
        self.init_calls += 1
        if self.init_failures > 0:
            self.init_failures -= 1
            raise ProviderInitError("simulated initialization failure")
        self.is_initialized = True
        logger.debug("Mock provider initialized")

    def acquire_continuous(self, interval: float) -> None:
        if not self.is_initialized:
            raise ProviderInitError("provider not initialized")
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self.is_continuous = True
        self._thread = threading.Thread(
            target=self._continuous_loop,
            args=(interval,),
            name="mock-provider",
            daemon=True
        )
        self._thread.start()
        logger.debug(f"Mock provider continuous mode every {interval}s")

    def acquire_once(self) -> None:
        if not self.is_initialized:
            raise ProviderInitError("provider not initialized")
        self.once_requests += 1
        timer = threading.Timer(self.response_delay, lambda: self._deliver(self.next_fix()))
        timer.daemon = True
        timer.start()

    def stop(self) -> None:
        self._stop_event.set()
        self.is_continuous = False
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

    def destroy(self) -> None:
        self.stop()
        self.is_initialized = False
        logger.debug("Mock provider destroyed")

    def set_position(self, latitude: float, longitude: float) -> None:
        """Move the static position"""
        with self._lock:
            self._position = (latitude, longitude)
            self._route = None

    def set_route(self, waypoints: List[Tuple[float, float]], speed: float = 1.4,
                  segment_seconds: float = 10.0) -> None:
        """
        Set a custom route to follow.

        Args:
            waypoints: List of (latitude, longitude) tuples
            speed: Reported speed in m/s
            segment_seconds: Time between waypoints
        """
        with self._lock:
            self._route = MockRoute("custom", list(waypoints), segment_seconds, speed)
            self._started_at = time.monotonic()
        logger.info(f"Mock route set: {len(waypoints)} waypoints")

    def script(self, *fixes: LocationFix) -> None:
        """Queue fixes to be delivered before any simulated ones"""
        with self._lock:
            self._scripted.extend(fixes)

    def emit(self, fix: Optional[LocationFix] = None) -> LocationFix:
        """Deliver a fix synchronously on the calling thread"""
        fix = fix or self.next_fix()
        self._deliver(fix)
        return fix

    def next_fix(self) -> LocationFix:
        """Produce the next fix (scripted, failed, or simulated)"""
        with self._lock:
            if self._scripted:
                return self._scripted.pop(0)
            route = self._route
            position = self._position

        if self.fail_reads:
            return LocationFix.failure(ERROR_SIMULATED, "simulated read failure", provider="mock")

        if route and len(route.waypoints) == 1:
            position = route.waypoints[0]
        elif route and len(route.waypoints) > 1:
            elapsed = time.monotonic() - self._started_at
            leg = int(elapsed // route.segment_seconds)
            idx = leg % len(route.waypoints)
            next_idx = (idx + 1) % len(route.waypoints)
            t = (elapsed % route.segment_seconds) / route.segment_seconds

            lat1, lon1 = route.waypoints[idx]
            lat2, lon2 = route.waypoints[next_idx]
            return LocationFix.now(
                lat1 + (lat2 - lat1) * t,
                lon1 + (lon2 - lon1) * t,
                accuracy=3.0,
                speed=route.speed,
                location_type=1,
                provider="mock",
            )

        return LocationFix.now(
            position[0] + random.gauss(0, self.jitter_deg),
            position[1] + random.gauss(0, self.jitter_deg),
            accuracy=5.0,
            speed=0.0,
            location_type=1,
            provider="mock",
        )

    def _continuous_loop(self, interval: float) -> None:
        while not self._stop_event.is_set():
            self._deliver(self.next_fix())
            self._stop_event.wait(interval)
