from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from locatr._normalize import parse_timestamp
from locatr.exceptions import InvalidInputError
from locatr.models import (
    Device,
    DeviceDescriptor,
    InsertEvent,
    LocationSample,
    PositionFix,
    generate_device_code,
    normalize_device_code,
)


def test_sample_from_store_row() -> None:
    row = {
        "id": 42,
        "device_id": "3f2c",
        "latitude": "40.7128",
        "longitude": -74.006,
        "timestamp": "2024-05-01T12:00:00Z",
        "accuracy": None,
        "battery_level": 87.4,
        "created_at": "2024-05-01T12:00:01Z",
    }

    sample = LocationSample.model_validate(row)

    assert sample.id == "42"
    assert sample.position == (40.7128, -74.006)
    assert sample.captured_at == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    assert sample.accuracy is None
    assert sample.battery_level == 87


def test_sample_record_uses_timestamp_column() -> None:
    sample = LocationSample(
        device_id="dev-1",
        latitude=1.5,
        longitude=2.5,
        captured_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        accuracy=4.0,
    )

    record = sample.to_record()

    assert record["timestamp"] == "2024-05-01T12:00:00+00:00"
    assert "id" not in record
    assert LocationSample.model_validate(record) == sample


@pytest.mark.parametrize(
    "overrides",
    [
        {"latitude": 91.0},
        {"longitude": -180.5},
        {"battery_level": 101},
        {"accuracy": -1.0},
    ],
)
def test_sample_rejects_out_of_range_values(overrides: dict[str, float]) -> None:
    values = {"device_id": "dev-1", "latitude": 0.0, "longitude": 0.0, "timestamp": 1714564800, **overrides}
    with pytest.raises(ValidationError):
        LocationSample.model_validate(values)


def test_sample_is_immutable() -> None:
    sample = LocationSample(device_id="dev-1", latitude=0.0, longitude=0.0, captured_at=1714564800)
    with pytest.raises(ValidationError):
        sample.latitude = 1.0  # type: ignore[misc]


def test_from_fix_prefers_provider_timestamp() -> None:
    loop_time = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    fix = PositionFix.model_validate({"lat": 10.0, "lng": 20.0, "accuracy": 3, "timestamp": 1714564770000})

    sample = LocationSample.from_fix(fix, device_id="dev-1", captured_at=loop_time, battery_level=None)

    assert sample.captured_at == datetime(2024, 5, 1, 11, 59, 30, tzinfo=UTC)
    assert sample.accuracy == 3.0
    assert sample.battery_level is None

    untimed = PositionFix(latitude=10.0, longitude=20.0)
    assert LocationSample.from_fix(untimed, device_id="dev-1", captured_at=loop_time, battery_level=5).captured_at == loop_time


def test_parse_timestamp_accepts_epoch_seconds_and_millis() -> None:
    assert parse_timestamp(1714564800) == parse_timestamp(1714564800000)
    assert parse_timestamp("1714564800") == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    assert parse_timestamp(datetime(2024, 5, 1, 12, 0)) == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    assert parse_timestamp("") is None
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_device_code_normalization() -> None:
    assert normalize_device_code("  abc123 ") == "ABC123"
    with pytest.raises(InvalidInputError):
        normalize_device_code("   ")
    with pytest.raises(InvalidInputError):
        normalize_device_code("ABC-123")


def test_generated_codes_are_valid() -> None:
    code = generate_device_code()
    assert len(code) == 6
    assert normalize_device_code(code) == code


def test_device_row_parsing() -> None:
    device = Device.model_validate(
        {
            "id": 7,
            "device_code": "abc123",
            "device_name": "",
            "last_seen": None,
            "created_at": "2024-05-01T12:00:00+00:00",
        }
    )

    assert device.id == "7"
    assert device.device_code == "ABC123"
    assert device.display_name == "ABC123"
    assert device.last_seen is None

    with pytest.raises(ValidationError):
        Device.model_validate({"id": 1, "device_code": "no spaces"})


def test_descriptor_display_name() -> None:
    assert DeviceDescriptor(model="Pixel 8", platform="android").display_name == "Pixel 8 - android"
    assert DeviceDescriptor(model="  ", platform="ios").display_name == "Unknown - ios"
    assert DeviceDescriptor().display_name == "Unknown - Unknown"


def test_insert_event_normalizes_type_and_exposes_device() -> None:
    event = InsertEvent(table=" locations ", type="insert", record={"device_id": 12})

    assert event.table == "locations"
    assert event.type == "INSERT"
    assert event.device_id == "12"
    assert InsertEvent(table="locations").device_id is None
    with pytest.raises(ValidationError):
        InsertEvent(table="  ")
