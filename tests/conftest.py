"""
Shared fixtures: deterministic clock, inline executor, manual timer,
scripted provider and a recording collector built on httpx.MockTransport.
"""

import json
import threading
import uuid
from typing import Callable, List, Optional

import httpx
import pytest

from geotrack.core import (
    Configuration,
    ForegroundModeTracker,
    InMemoryConfigurationStore,
    LocationFix,
    UploadPipeline,
)
from geotrack.core.config import Settings, WakeSettings, ProviderSettings
from geotrack.core.errors import ProviderInitError
from geotrack.core.wake import RepeatingTimer
from geotrack.providers import PositionProvider, ProviderType


COLLECTOR_URL = "http://collector.test/locations"


class FakeClock:
    """Monotonic clock advanced by hand (seconds)"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class InlineDispatcher:
    """Executor running submitted tasks immediately on the calling thread"""

    def __init__(self):
        self.submitted = []
        self.accepting = True

    def submit(self, task_type, func, *args, **kwargs) -> Optional[str]:
        if not self.accepting:
            return None
        self.submitted.append(task_type)
        func(*args, **kwargs)
        return str(uuid.uuid4())


class ManualTimer(RepeatingTimer):
    """Repeating timer fired by the test"""

    def __init__(self):
        self.period: Optional[float] = None
        self.callback: Optional[Callable[[], None]] = None
        self.schedule_calls = 0

    @property
    def is_scheduled(self) -> bool:
        return self.callback is not None

    def schedule(self, period: float, callback: Callable[[], None]) -> None:
        self.period = period
        self.callback = callback
        self.schedule_calls += 1

    def cancel(self) -> None:
        self.callback = None

    def fire(self) -> None:
        assert self.callback is not None, "timer not scheduled"
        self.callback()


class ScriptedProvider(PositionProvider):
    """
    Provider driven entirely by the test.

    acquire_continuous() only records the interval; acquire_once() delivers
    the next queued fix synchronously.
    """

    def __init__(self, init_failures: int = 0):
        super().__init__()
        self.init_failures = init_failures
        self.init_calls = 0
        self.continuous_interval: Optional[float] = None
        self.once_requests = 0
        self.queued: List[LocationFix] = []
        self.destroyed = False

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.MOCK

    def initialize(self) -> None:
        self.init_calls += 1
        if self.init_failures > 0:
            self.init_failures -= 1
            raise ProviderInitError("scripted failure")
        self.is_initialized = True

    def acquire_continuous(self, interval: float) -> None:
        self.continuous_interval = interval
        self.is_continuous = True

    def acquire_once(self) -> None:
        self.once_requests += 1
        if self.queued:
            self._deliver(self.queued.pop(0))

    def stop(self) -> None:
        self.is_continuous = False

    def destroy(self) -> None:
        self.destroyed = True
        self.is_initialized = False

    def emit(self, fix: LocationFix) -> None:
        self._deliver(fix)


class Collector:
    """Records requests made through an httpx.MockTransport"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.error: Optional[Exception] = None
        self.lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self.lock:
            self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": True})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    @property
    def count(self) -> int:
        with self.lock:
            return len(self.requests)

    def bodies(self) -> List[dict]:
        with self.lock:
            return [json.loads(r.content.decode("utf-8")) for r in self.requests]


def make_fix(latitude: float = 31.2304, longitude: float = 121.4737, **kwargs) -> LocationFix:
    kwargs.setdefault("accuracy", 5.0)
    kwargs.setdefault("wall_time", 1_700_000_000.0)
    return LocationFix(latitude=latitude, longitude=longitude, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dispatcher():
    return InlineDispatcher()


@pytest.fixture
def collector():
    return Collector()


@pytest.fixture
def defaults():
    return Configuration(server_url=COLLECTOR_URL, user_name="tester")


@pytest.fixture
def store(defaults):
    store = InMemoryConfigurationStore(defaults=defaults)
    store.load()
    return store


@pytest.fixture
def mode():
    return ForegroundModeTracker(foreground=True)


@pytest.fixture
def pipeline(store, mode, dispatcher, collector, clock):
    pipeline = UploadPipeline(
        store,
        mode,
        dispatcher=dispatcher,
        client=collector.client(),
        clock=clock,
        forced_send_floor_ms=1000,
    )
    yield pipeline
    pipeline.close()


@pytest.fixture
def fast_settings():
    """Process settings with no settle delay and a short retry"""
    return Settings(
        wake=WakeSettings(settle_delay=0.0),
        provider=ProviderSettings(retry_delay=0.05, fix_interval=2.0),
    )
