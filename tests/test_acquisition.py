"""Tests for the location acquisition engine"""

import threading
from unittest.mock import MagicMock

import pytest

from geotrack.core import LocationAcquisitionEngine, ProviderInitState, first_value
from geotrack.providers import StaticNetworkProbe

from conftest import ScriptedProvider, make_fix


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def engine(provider):
    engine = LocationAcquisitionEngine(provider, probe=StaticNetworkProbe(True), retry_delay=0.05, fix_interval=1.5)
    yield engine
    engine.shutdown()


def test_start_initializes_and_goes_continuous(engine, provider):
    engine.start()
    assert provider.is_initialized
    assert provider.continuous_interval == 1.5
    assert engine.init_state.value == ProviderInitState.READY


def test_start_is_idempotent(engine, provider):
    engine.start()
    engine.start()
    assert provider.init_calls == 1


def test_successful_fix_updates_cell_and_stream(engine, provider):
    events = []
    engine.observe_fix(events.append)
    engine.start()

    fix = make_fix(latitude=10.0)
    provider.emit(fix)

    assert engine.current_fix() == fix
    assert events == [fix]


def test_failed_fix_keeps_last_good(engine, provider):
    events = []
    engine.observe_fix(events.append)
    engine.start()

    good = make_fix(latitude=10.0)
    provider.emit(good)
    provider.emit(make_fix(error_code=4, error_info="timeout"))

    assert engine.current_fix() == good
    assert events == [good]
    assert engine.read_errors == 1


def test_current_fix_none_before_any_fix(engine):
    assert engine.current_fix() is None


def test_unreachable_network_retries(provider):
    probe = StaticNetworkProbe(False)
    engine = LocationAcquisitionEngine(provider, probe=probe, retry_delay=0.05)
    try:
        engine.start()
        assert engine.init_state.value == ProviderInitState.FAILED
        assert provider.init_calls == 0

        probe.reachable = True
        ready = first_value(engine.init_state, lambda s: s == ProviderInitState.READY, timeout=5)
        assert ready == ProviderInitState.READY
        assert provider.init_calls == 1
    finally:
        engine.shutdown()


def test_provider_init_error_is_retried():
    provider = ScriptedProvider(init_failures=2)
    engine = LocationAcquisitionEngine(provider, probe=StaticNetworkProbe(True), retry_delay=0.02)
    try:
        engine.start()
        assert first_value(engine.init_state, lambda s: s == ProviderInitState.READY, timeout=5)
        assert provider.init_calls == 3
    finally:
        engine.shutdown()


def test_stop_keeps_provider_initialized(engine, provider):
    engine.start()
    engine.stop()
    assert provider.is_initialized
    assert provider.is_continuous is False
    assert engine.is_running is False


def test_stop_swallows_provider_errors(engine, provider):
    engine.start()
    provider.stop = MagicMock(side_effect=RuntimeError("device busy"))
    engine.stop()


def test_shutdown_destroys_provider(engine, provider):
    engine.start()
    engine.shutdown()
    assert provider.destroyed
    assert engine.init_state.value == ProviderInitState.UNINITIALIZED


def test_force_single_update_initializes_on_demand(engine, provider):
    provider.queued.append(make_fix(latitude=5.0))
    assert engine.force_single_update() is True
    assert provider.once_requests == 1
    assert engine.current_fix().latitude == 5.0


def test_force_single_update_fails_when_unreachable(provider):
    engine = LocationAcquisitionEngine(provider, probe=StaticNetworkProbe(False))
    assert engine.force_single_update() is False
    assert provider.once_requests == 0


def test_force_single_update_does_not_touch_continuous_mode(engine, provider):
    engine.start()
    engine.force_single_update()
    assert provider.is_continuous is True


class GatedProbe(StaticNetworkProbe):
    """Reachable probe that blocks until the test opens the gate"""

    def __init__(self):
        super().__init__(True)
        self.entered = threading.Event()
        self.gate = threading.Event()

    def is_reachable(self) -> bool:
        self.entered.set()
        self.gate.wait(5)
        return True


def test_stop_during_initialization_does_not_go_continuous(provider):
    probe = GatedProbe()
    engine = LocationAcquisitionEngine(provider, probe=probe, retry_delay=0.05)
    starter = threading.Thread(target=engine.start)
    try:
        starter.start()
        assert probe.entered.wait(5)

        engine.stop()
        probe.gate.set()
        starter.join(5)

        assert provider.is_initialized
        assert provider.is_continuous is False
        assert provider.continuous_interval is None
    finally:
        probe.gate.set()
        engine.shutdown()
