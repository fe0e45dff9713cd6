"""Tests for the location worker wiring: lifecycle, events, wake cycles and control"""

import pytest

from geotrack.core import (
    DeliveryState,
    IntervalKind,
    LocationWorker,
    SettingKey,
    WakeState,
    WorkerState,
    first_value,
)
from geotrack.providers import StaticNetworkProbe

from conftest import ManualTimer, ScriptedProvider, make_fix


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def make_worker(store, timer, collector, clock, fast_settings):
    created = []

    def factory(provider, reachable=True):
        worker = LocationWorker(
            store,
            provider,
            probe=StaticNetworkProbe(reachable),
            http_client=collector.client(),
            timer=timer,
            app_settings=fast_settings,
            clock=clock,
        )
        created.append(worker)
        return worker

    yield factory
    for worker in created:
        worker.close()


@pytest.fixture
def worker(make_worker, provider):
    worker = make_worker(provider)
    worker.start()
    yield worker


class TestLifecycle:

    def test_start_runs_provider_and_timer(self, worker, provider, timer):
        assert worker.state.value == WorkerState.RUNNING
        assert provider.continuous_interval == 2.0
        assert timer.period == 60.0
        assert worker.scheduler.state.value == WakeState.SCHEDULED

    def test_state_transitions(self, make_worker, provider):
        worker = make_worker(provider)
        seen = []
        worker.observe_state(seen.append)

        worker.start()
        worker.stop()

        assert seen == [
            WorkerState.STOPPED,
            WorkerState.INITIALIZING,
            WorkerState.RUNNING,
            WorkerState.STOPPING,
            WorkerState.STOPPED,
        ]

    def test_start_twice_is_noop(self, worker, timer):
        worker.start()
        assert timer.schedule_calls == 1

    def test_stop_cancels_timer_and_ignores_new_fixes(self, worker, provider, timer, collector):
        worker.stop()
        assert timer.is_scheduled is False

        provider.emit(make_fix())
        worker.drain(timeout=2)
        assert collector.count == 0
        assert worker.upload_latest() is False

    def test_degraded_until_provider_initializes(self, make_worker):
        provider = ScriptedProvider(init_failures=1)
        worker = make_worker(provider)
        errors = []
        worker.observe_errors(errors.append)

        worker.start()

        assert first_value(worker.state, lambda s: s == WorkerState.RUNNING, timeout=5) == WorkerState.RUNNING
        assert provider.init_calls == 2
        assert any("failed to initialize" in e for e in errors)

    def test_unreachable_network_keeps_worker_degraded(self, make_worker, provider):
        worker = make_worker(provider, reachable=False)
        worker.start()
        assert worker.state.value == WorkerState.DEGRADED
        assert provider.init_calls == 0

    def test_close_destroys_provider(self, make_worker, provider):
        worker = make_worker(provider)
        worker.start()
        worker.close()
        assert provider.destroyed is True
        with pytest.raises(RuntimeError):
            worker.start()

    def test_start_applies_given_configuration(self, make_worker, provider, store):
        worker = make_worker(provider)
        worker.start(store.snapshot().model_copy(update={'user_name': 'field-unit-7'}))
        assert store.get(SettingKey.USER_NAME) == 'field-unit-7'


class TestFixFlow:

    def test_fix_is_published_and_uploaded(self, worker, provider, collector):
        fixes = []
        worker.observe_fix(fixes.append)

        fix = make_fix(latitude=30.5)
        provider.emit(fix)
        assert worker.drain(timeout=2)

        assert fixes == [fix]
        assert worker.current_fix() == fix
        assert collector.count == 1
        assert worker.delivery_status.state == DeliveryState.SUCCESS

    def test_failed_fix_keeps_last_known_good(self, worker, provider):
        good = make_fix(latitude=30.5)
        provider.emit(good)
        provider.emit(make_fix(error_code=12, error_info="no signal"))
        worker.drain(timeout=2)

        assert worker.current_fix() == good
        assert worker.engine.read_errors == 1

    def test_throttles_fixes_in_arrival_order(self, worker, provider, collector, clock):
        for i in range(6):
            provider.emit(make_fix(latitude=float(i)))
            worker.drain(timeout=2)
            clock.advance_ms(2000)

        assert [b["latitude"] for b in collector.bodies()] == [0.0, 3.0]

    def test_upload_error_is_published(self, worker, provider, collector):
        collector.status_code = 500
        errors = []
        worker.observe_errors(errors.append)

        provider.emit(make_fix())
        worker.drain(timeout=2)

        assert errors == ["upload failed: server responded 500"]


class TestControl:

    def test_mode_flip_forces_one_send(self, worker, provider, collector, clock):
        provider.emit(make_fix())
        worker.drain(timeout=2)
        clock.advance_ms(100)

        assert worker.set_foreground_mode(False) is True
        worker.drain(timeout=2)
        assert collector.count == 2

        assert worker.set_foreground_mode(False) is False
        worker.drain(timeout=2)
        assert collector.count == 2

    def test_upload_latest(self, worker, provider, collector):
        provider.emit(make_fix())
        worker.drain(timeout=2)

        assert worker.upload_latest() is True
        worker.drain(timeout=2)
        assert collector.count == 2

    def test_upload_disabled_then_enabled(self, worker, provider, collector, clock):
        assert worker.set_upload_enabled(False) is True
        provider.emit(make_fix())
        worker.drain(timeout=2)
        assert collector.count == 0

        worker.set_upload_enabled(True)
        worker.drain(timeout=2)
        assert collector.count == 0

    def test_wake_interval_out_of_range_is_rejected(self, worker, timer):
        assert worker.set_interval(IntervalKind.WAKE, 59_999) is False
        assert worker.set_interval("wake", 1_800_001) is False
        assert worker.scheduler.period_ms == 60_000
        assert timer.schedule_calls == 1

    def test_wake_interval_change_reschedules(self, worker, timer, store):
        assert worker.set_interval("wake", 120_000) is True
        assert store.get(SettingKey.WAKE_INTERVAL) == 120_000
        assert worker.scheduler.period_ms == 120_000
        assert timer.period == 120.0

    def test_unknown_interval_kind(self, worker):
        assert worker.set_interval("hourly", 1000) is False

    def test_foreground_interval_must_be_positive(self, worker, store):
        assert worker.set_interval("foreground", 0) is False
        assert store.get(SettingKey.FOREGROUND_INTERVAL) == 5000

    def test_server_url_is_trimmed(self, worker, store):
        assert worker.set_server_url("  http://example.test/loc  ") is True
        assert store.get(SettingKey.SERVER_URL) == "http://example.test/loc"

    def test_snapshot(self, worker, provider):
        provider.emit(make_fix())
        worker.drain(timeout=2)

        snapshot = worker.snapshot()
        assert snapshot['state'] == 'running'
        assert snapshot['foreground'] is True
        assert snapshot['configuration']['user_name'] == 'tester'
        assert snapshot['last_fix']['latitude'] == 31.2304
        assert snapshot['delivery_status']['state'] == 'success'
        assert snapshot['upload_stats']['attempted'] == 1
        assert snapshot['wake']['period_ms'] == 60_000
        assert snapshot['provider']['init_state'] == 'ready'


class TestWakeCycle:

    def test_wake_forces_send_within_interval(self, worker, provider, collector, clock):
        provider.emit(make_fix())
        worker.drain(timeout=2)
        clock.advance_ms(1500)

        provider.queued.append(make_fix(latitude=45.0))
        worker.scheduler.timer.fire()
        worker.drain(timeout=2)

        assert provider.once_requests == 1
        assert [b["latitude"] for b in collector.bodies()] == [31.2304, 45.0]
        assert worker.scheduler.cycles == 1
        assert worker.scheduler.wake_lock.is_held is False

    def test_wake_without_any_fix_sends_nothing(self, worker, provider, collector):
        worker.scheduler.timer.fire()
        worker.drain(timeout=2)

        assert provider.once_requests == 1
        assert collector.count == 0
        assert worker.delivery_status.state == DeliveryState.IDLE
        assert worker.scheduler.state.value == WakeState.SCHEDULED

    def test_wake_cycle_fix_is_sent_once(self, worker, provider, collector, clock):
        worker.set_foreground_mode(False)
        worker.drain(timeout=2)

        acquire_once = provider.acquire_once

        def acquire_then_settle():
            acquire_once()
            worker.drain(timeout=2)
            clock.advance_ms(2000)

        provider.acquire_once = acquire_then_settle
        provider.queued.append(make_fix(latitude=45.0))
        worker.scheduler.timer.fire()
        worker.drain(timeout=2)

        assert [b["latitude"] for b in collector.bodies()] == [45.0]
        assert worker.pipeline.stats()['attempted'] == 1

    def test_wake_within_floor_is_skipped(self, worker, provider, collector):
        provider.emit(make_fix())
        worker.drain(timeout=2)

        worker.scheduler.timer.fire()
        worker.drain(timeout=2)
        assert collector.count == 1
