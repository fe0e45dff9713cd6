"""Tests for the upload pipeline: throttling, forced sends, wire format and status"""

import json

import httpx
import pytest

from geotrack.core import (
    DeliveryState,
    DeliveryStatus,
    SettingKey,
    Subscription,
    TaskType,
    build_http_client,
    fix_to_payload,
    serialize_fix,
)
from geotrack.core.config import UploadSettings
from geotrack.core.uploader import CONTENT_TYPE

from conftest import COLLECTOR_URL, make_fix


WIRE_FIELDS = {
    "timestamp", "latitude", "longitude", "accuracy", "address", "country",
    "province", "city", "district", "street", "streetNum", "cityCode", "adCode",
    "poiName", "aoiName", "buildingId", "floor", "gpsAccuracyStatus",
    "locationType", "speed", "bearing", "altitude", "errorCode", "errorInfo",
    "userName",
}


class TestThrottling:

    def test_first_fix_is_sent(self, pipeline, collector):
        assert pipeline.on_fix(make_fix()) is True
        assert collector.count == 1

    def test_one_send_per_three_arrivals_at_two_second_cadence(self, pipeline, collector, clock):
        sent = []
        for _ in range(9):
            sent.append(pipeline.on_fix(make_fix()))
            clock.advance_ms(2000)

        assert sent == [True, False, False] * 3
        assert collector.count == 3
        assert pipeline.stats()['throttled'] == 6

    @pytest.mark.parametrize("elapsed_ms,expected", [
        (0, False),
        (4999, False),
        (5000, True),
        (12000, True),
    ])
    def test_sent_iff_elapsed_reaches_foreground_interval(self, pipeline, clock, elapsed_ms, expected):
        pipeline.on_fix(make_fix())
        clock.advance_ms(elapsed_ms)
        assert pipeline.on_fix(make_fix()) is expected

    def test_background_interval_applies_in_background(self, pipeline, mode, clock, store):
        store.set(SettingKey.BACKGROUND_INTERVAL, 60000)
        mode.set(False)
        pipeline.on_fix(make_fix())

        clock.advance_ms(59000)
        assert pipeline.on_fix(make_fix()) is False
        clock.advance_ms(1000)
        assert pipeline.on_fix(make_fix()) is True

    def test_failed_send_still_updates_last_send_time(self, pipeline, collector, clock):
        collector.status_code = 500
        pipeline.on_fix(make_fix())
        assert pipeline.status.value == DeliveryStatus.error("server responded 500")
        assert pipeline.last_send_time == clock.now

        clock.advance_ms(1000)
        assert pipeline.on_fix(make_fix()) is False
        assert collector.count == 1

    def test_interval_change_applies_to_next_decision(self, pipeline, clock, store):
        pipeline.on_fix(make_fix())
        store.set(SettingKey.FOREGROUND_INTERVAL, 1000)
        clock.advance_ms(1000)
        assert pipeline.on_fix(make_fix()) is True


class TestSkipConditions:

    def test_empty_server_url_makes_no_call_and_keeps_status(self, pipeline, collector, store):
        store.set(SettingKey.SERVER_URL, "")
        assert pipeline.on_fix(make_fix()) is False
        assert collector.count == 0
        assert pipeline.status.value == DeliveryStatus.idle()
        assert pipeline.last_send_time is None

    def test_upload_disabled_skips_silently(self, pipeline, collector, store):
        store.set(SettingKey.UPLOAD_ENABLED, False)
        assert pipeline.on_fix(make_fix()) is False
        assert collector.count == 0
        assert pipeline.status.value.state == DeliveryState.IDLE

    def test_enabling_upload_does_not_send_buffered_fixes(self, pipeline, collector, store, clock):
        store.set(SettingKey.UPLOAD_ENABLED, False)
        for _ in range(3):
            pipeline.on_fix(make_fix())
            clock.advance_ms(2000)

        store.set(SettingKey.UPLOAD_ENABLED, True)
        assert collector.count == 0

        pipeline.on_fix(make_fix(latitude=40.0))
        assert collector.count == 1
        assert collector.bodies()[0]["latitude"] == 40.0

    def test_skipped_fix_is_still_remembered(self, pipeline, store):
        store.set(SettingKey.UPLOAD_ENABLED, False)
        fix = make_fix(latitude=12.5)
        pipeline.on_fix(fix)
        assert pipeline.last_fix == fix


class TestForcedSends:

    def test_mode_change_sends_immediately(self, pipeline, collector, clock):
        pipeline.on_fix(make_fix())
        clock.advance_ms(100)

        assert pipeline.on_mode_change(False) is True
        assert collector.count == 2

    def test_mode_change_without_fix_sends_nothing(self, pipeline, collector):
        assert pipeline.on_mode_change(False) is False
        assert collector.count == 0

    def test_mode_change_respects_upload_enabled(self, pipeline, collector, store):
        pipeline.on_fix(make_fix())
        store.set(SettingKey.UPLOAD_ENABLED, False)
        assert pipeline.on_mode_change(False) is False
        assert collector.count == 1

    def test_upload_latest_bypasses_throttling(self, pipeline, collector):
        pipeline.on_fix(make_fix())
        assert pipeline.upload_latest() is True
        assert pipeline.upload_latest() is True
        assert collector.count == 3

    def test_forced_send_resets_interval(self, pipeline, clock):
        pipeline.on_fix(make_fix())
        clock.advance_ms(4000)
        pipeline.upload_latest()
        clock.advance_ms(1000)
        assert pipeline.on_fix(make_fix()) is False

    def test_wake_send_bypasses_interval(self, pipeline, collector, clock):
        pipeline.on_fix(make_fix())
        clock.advance_ms(1500)
        assert pipeline.on_wake() is True
        assert collector.count == 2

    def test_wake_send_respects_floor(self, pipeline, collector, clock):
        pipeline.on_fix(make_fix())
        clock.advance_ms(500)
        assert pipeline.on_wake() is False
        assert collector.count == 1

    def test_wake_skipped_when_cycle_fix_already_sent(self, pipeline, collector, clock):
        pipeline.begin_wake_cycle()
        pipeline.on_fix(make_fix())
        clock.advance_ms(2000)
        assert pipeline.on_wake() is False
        assert collector.count == 1

    def test_wake_sends_when_cycle_fix_was_throttled(self, pipeline, collector, clock):
        pipeline.on_fix(make_fix())
        clock.advance_ms(1500)
        pipeline.begin_wake_cycle()
        assert pipeline.on_fix(make_fix(latitude=45.0)) is False
        assert pipeline.on_wake() is True
        assert [b["latitude"] for b in collector.bodies()] == [31.2304, 45.0]

    def test_wake_with_no_fix_does_not_send(self, pipeline, collector):
        assert pipeline.on_wake() is False
        assert collector.count == 0
        assert pipeline.status.value == DeliveryStatus.idle()

    def test_wake_uses_given_fix(self, pipeline, collector):
        assert pipeline.on_wake(make_fix(latitude=1.5)) is True
        assert collector.bodies()[0]["latitude"] == 1.5

    def test_forced_sends_go_through_dispatcher(self, pipeline, dispatcher):
        pipeline.on_fix(make_fix())
        pipeline.upload_latest()
        assert dispatcher.submitted == [TaskType.UPLOAD, TaskType.UPLOAD]


class TestDelivery:

    def test_request_format(self, pipeline, collector):
        pipeline.on_fix(make_fix(city="Shanghai"))

        request = collector.requests[0]
        assert request.method == "POST"
        assert str(request.url) == COLLECTOR_URL
        assert request.headers["content-type"] == CONTENT_TYPE
        body = json.loads(request.content.decode("utf-8"))
        assert body["city"] == "Shanghai"
        assert body["userName"] == "tester"

    def test_success_status_carries_code(self, pipeline, collector):
        collector.status_code = 201
        pipeline.on_fix(make_fix())
        assert pipeline.status.value == DeliveryStatus.success(201)

    def test_server_error_status(self, pipeline, collector):
        collector.status_code = 503
        pipeline.on_fix(make_fix())
        status = pipeline.status.value
        assert status.state == DeliveryState.ERROR
        assert status.message == "server responded 503"

    def test_transport_error_status(self, pipeline, collector):
        collector.error = httpx.ConnectError("connection refused")
        pipeline.on_fix(make_fix())
        status = pipeline.status.value
        assert status.state == DeliveryState.ERROR
        assert "connection refused" in status.message
        assert pipeline.stats()['failed'] == 1

    def test_status_goes_through_uploading(self, pipeline):
        seen = []
        pipeline.status.subscribe(seen.append, replay=False)
        pipeline.on_fix(make_fix())
        assert [s.state for s in seen] == [DeliveryState.UPLOADING, DeliveryState.SUCCESS]

    def test_no_retry_after_failure(self, pipeline, collector):
        collector.status_code = 500
        pipeline.on_fix(make_fix())
        assert collector.count == 1

    def test_detach_stops_fix_handling(self, pipeline, collector):
        handlers = []

        def subscribe(callback):
            handlers.append(callback)
            return Subscription(lambda: handlers.remove(callback))

        pipeline.attach(subscribe)
        assert len(handlers) == 1
        handlers[0](make_fix())
        pipeline.detach()
        assert handlers == []
        assert collector.count == 1


class TestSerialization:

    def test_all_wire_fields_present_with_empty_strings(self):
        payload = fix_to_payload(make_fix(), "someone")
        assert set(payload) == WIRE_FIELDS
        for key in ("address", "country", "province", "city", "district", "street",
                    "streetNum", "cityCode", "adCode", "poiName", "aoiName",
                    "buildingId", "floor", "errorInfo"):
            assert payload[key] == ""

    def test_serialized_json_has_no_nulls(self):
        body = serialize_fix(make_fix(), "")
        decoded = json.loads(body)
        assert None not in decoded.values()
        assert decoded["userName"] == ""

    def test_numbers_stay_numbers(self):
        payload = json.loads(serialize_fix(make_fix(speed=3, altitude=12, location_type=1), "u"))
        assert isinstance(payload["speed"], float)
        assert isinstance(payload["altitude"], float)
        assert isinstance(payload["locationType"], int)
        assert isinstance(payload["errorCode"], int)

    def test_timestamp_is_local_time(self):
        fix = make_fix(wall_time=1_700_000_000.0)
        assert fix_to_payload(fix, "u")["timestamp"] == fix.timestamp_text
        assert len(fix.timestamp_text) == 19

    def test_non_ascii_kept_verbatim(self):
        body = serialize_fix(make_fix(city="上海市"), "用户")
        assert "上海市" in body
        assert "用户" in body


def test_http_client_uses_configured_timeouts():
    client = build_http_client(UploadSettings(connect_timeout=10, read_timeout=30, write_timeout=30))
    try:
        assert client.timeout.connect == 10
        assert client.timeout.read == 30
        assert client.timeout.write == 30
    finally:
        client.close()
