"""Tests for fix and status value types"""

import dataclasses
from datetime import datetime

import pytest

from geotrack.core import DeliveryState, DeliveryStatus, LocationFix

from conftest import make_fix


def test_fix_is_immutable():
    fix = make_fix()
    with pytest.raises(dataclasses.FrozenInstanceError):
        fix.latitude = 0.0


def test_failure_fix():
    fix = LocationFix.failure(12, "permission denied")
    assert not fix.is_success
    assert fix.error_info == "permission denied"
    assert fix.wall_time > 0


def test_timestamp_text_is_local_time():
    fix = make_fix(wall_time=1_700_000_000.0)
    expected = datetime.fromtimestamp(1_700_000_000.0).strftime("%Y-%m-%d %H:%M:%S")
    assert fix.timestamp_text == expected


def test_describe_success():
    text = make_fix(address="1 Zhongshan Rd", city="Shanghai", speed=1.2).describe()
    assert "31.230400, 121.473700" in text
    assert "address: 1 Zhongshan Rd" in text
    assert "region: Shanghai" in text
    assert "speed=1.2" in text


def test_describe_failure():
    text = LocationFix.failure(7, "no signal").describe()
    assert text.startswith("fix failed")
    assert "7 no signal" in text


def test_delivery_status_values():
    assert DeliveryStatus.idle().state == DeliveryState.IDLE
    assert DeliveryStatus.success(204).to_dict() == {'state': 'success', 'code': 204, 'message': None}
    assert DeliveryStatus.error("server responded 404") == DeliveryStatus.error("server responded 404")
