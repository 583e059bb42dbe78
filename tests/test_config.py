from __future__ import annotations

import pytest

from locatr.config import LocatrConfig, MapDefaults
from locatr.exceptions import (
    FixTimeoutError,
    InvalidInputError,
    LoadError,
    LocatrConfigError,
    NotFoundError,
    PermissionDeniedError,
    StoreReadError,
    StoreWriteError,
    describe_error,
)


def test_defaults() -> None:
    config = LocatrConfig().validate()
    assert config.sample_interval == 30.0
    assert config.fix_timeout == 10.0
    assert config.history_limit == 100
    assert config.samples_table == "locations"
    assert config.devices_table == "devices"
    assert config.map.center == (40.7128, -74.0060)
    assert config.map.zoom == 13


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOCATR_STORE_URL", "https://demo.supabase.co/")
    monkeypatch.setenv("LOCATR_API_KEY", "anon-key")
    monkeypatch.setenv("LOCATR_SAMPLE_INTERVAL", "15")
    monkeypatch.setenv("LOCATR_HISTORY_LIMIT", "50")
    monkeypatch.setenv("LOCATR_MQTT_ENABLED", "yes")
    monkeypatch.setenv("LOCATR_MQTT_TLS", "off")
    monkeypatch.setenv("LOCATR_MAP_CENTER", "51.5074,-0.1278")
    monkeypatch.setenv("LOCATR_MAP_ZOOM", "10")

    config = LocatrConfig.from_env(history_limit=25)

    assert config.store_url == "https://demo.supabase.co/"
    assert config.rest_url == "https://demo.supabase.co/rest/v1"
    assert config.api_key == "anon-key"
    assert config.sample_interval == 15.0
    assert config.history_limit == 25
    assert config.mqtt_enabled is True
    assert config.mqtt_tls is False
    assert config.map.center == (51.5074, -0.1278)
    assert config.map.zoom == 10


def test_from_env_map_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOCATR_MAP_CENTER", raising=False)
    config = LocatrConfig.from_env(map={"zoom": 5})
    assert config.map == MapDefaults(zoom=5)


def test_from_env_rejects_bad_center(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOCATR_MAP_CENTER", "somewhere")
    with pytest.raises(LocatrConfigError):
        LocatrConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sample_interval": 0},
        {"fix_timeout": -1.0},
        {"history_limit": 0},
        {"history_limit": 200, "trail_limit": 100},
        {"mqtt_enabled": True, "mqtt_host": ""},
    ],
)
def test_validate_rejects_unusable_values(kwargs: dict[str, object]) -> None:
    with pytest.raises(LocatrConfigError):
        LocatrConfig(**kwargs).validate()  # type: ignore[arg-type]


def test_topic_for_table() -> None:
    config = LocatrConfig(mqtt_topic_prefix="fleet/inserts/")
    assert config.topic_for("locations") == "fleet/inserts/locations"


def test_describe_error_categories() -> None:
    assert describe_error(PermissionDeniedError("denied")) == "Location permission required"
    assert describe_error(FixTimeoutError("slow", timeout=10)) == "Location unavailable"
    assert describe_error(InvalidInputError("")) == "Please enter a device code"
    assert describe_error(NotFoundError("missing", code="ABC123")) == "Device not found"
    assert describe_error(LoadError("boom")) == "Error loading locations"
    assert describe_error(StoreWriteError("503")) == "Error sending location"
    assert describe_error(StoreReadError("500")) == "Error loading locations"
    assert describe_error(RuntimeError("?")) == "Unexpected error"
