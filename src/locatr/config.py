"""Client configuration for locatr."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from locatr._constants import (
    DEFAULT_CENTER,
    DEFAULT_ZOOM,
    DEVICES_TABLE,
    FIX_TIMEOUT_SECONDS,
    HISTORY_LIMIT,
    MAX_ZOOM,
    PATH_COLOR,
    PATH_OPACITY,
    PATH_WEIGHT,
    SAMPLE_INTERVAL_SECONDS,
    SAMPLES_TABLE,
    TILE_ATTRIBUTION,
    TILE_URL,
    TRAIL_LIMIT,
)
from locatr.exceptions import LocatrConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_center(value: str) -> tuple[float, float]:
    lat_text, _, lon_text = value.partition(",")
    try:
        return float(lat_text), float(lon_text)
    except ValueError as exc:
        raise LocatrConfigError(f"map center must be 'lat,lon', got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class MapDefaults:
    """Initial viewport and styling of the live map.

    These mirror the Leaflet options the viewer page is rendered with.
    """

    center: tuple[float, float] = DEFAULT_CENTER
    zoom: int = DEFAULT_ZOOM
    max_zoom: int = MAX_ZOOM
    tile_url: str = TILE_URL
    attribution: str = TILE_ATTRIBUTION
    path_color: str = PATH_COLOR
    path_weight: int = PATH_WEIGHT
    path_opacity: float = PATH_OPACITY


@dataclasses.dataclass(frozen=True)
class LocatrConfig:
    """Library configuration.

    Parameters
    ----------
    store_url : str
        Base URL of the PostgREST-compatible sample store
        (e.g. ``https://<project>.supabase.co``).
    api_key : str
        Anonymous/service key sent as ``apikey`` and bearer token.
    devices_table : str
        Table holding device identity records.
    samples_table : str
        Append-only table holding location samples.
    sample_interval : float
        Seconds between two sampling cycles on the tracked device.
    fix_timeout : float
        Seconds a single position fix may take before the cycle is skipped.
    high_accuracy : bool
        Ask the capability provider for a high-accuracy fix.
    history_limit : int
        Number of most recent samples loaded when a code is resolved.
    trail_limit : int
        Maximum number of samples a viewer keeps in memory; the oldest
        are dropped first.
    request_timeout : float
        Total timeout in seconds for a single store request.
    mqtt_enabled : bool
        Fan out insert events through the MQTT broker.
    mqtt_host : str
        Broker hostname.
    mqtt_port : int
        Broker port.
    mqtt_tls : bool
        Connect to the broker over TLS.
    mqtt_username : str or None
        Broker username.
    mqtt_password : str or None
        Broker password.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_topic_prefix : str
        Topic prefix; events for table ``t`` travel on ``<prefix>/t``.
    map : MapDefaults
        Initial viewport and styling of the live map.
    """

    store_url: str = ""
    api_key: str = ""
    devices_table: str = DEVICES_TABLE
    samples_table: str = SAMPLES_TABLE
    sample_interval: float = SAMPLE_INTERVAL_SECONDS
    fix_timeout: float = FIX_TIMEOUT_SECONDS
    high_accuracy: bool = True
    history_limit: int = HISTORY_LIMIT
    trail_limit: int = TRAIL_LIMIT
    request_timeout: float = 15.0
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 8883
    mqtt_tls: bool = True
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_keepalive: int = 120
    mqtt_topic_prefix: str = "locatr/inserts"
    map: MapDefaults = dataclasses.field(default_factory=MapDefaults)

    def validate(self) -> LocatrConfig:
        """Raise :class:`LocatrConfigError` on values the pipeline cannot run with."""
        if self.sample_interval <= 0:
            raise LocatrConfigError(f"sample_interval must be positive, got {self.sample_interval}")
        if self.fix_timeout <= 0:
            raise LocatrConfigError(f"fix_timeout must be positive, got {self.fix_timeout}")
        if self.history_limit <= 0:
            raise LocatrConfigError(f"history_limit must be positive, got {self.history_limit}")
        if self.trail_limit < self.history_limit:
            raise LocatrConfigError(
                f"trail_limit ({self.trail_limit}) must not be smaller than history_limit ({self.history_limit})"
            )
        if self.mqtt_enabled and not self.mqtt_host:
            raise LocatrConfigError("mqtt_host is required when mqtt_enabled is set")
        return self

    @property
    def rest_url(self) -> str:
        """PostgREST root for table endpoints."""
        return f"{self.store_url.rstrip('/')}/rest/v1"

    def topic_for(self, table: str) -> str:
        """MQTT topic carrying insert events for *table*."""
        return f"{self.mqtt_topic_prefix.rstrip('/')}/{table}"

    @classmethod
    def from_env(cls, **overrides: Any) -> LocatrConfig:
        """Create configuration from environment variables.

        Reads ``LOCATR_STORE_URL``, ``LOCATR_API_KEY`` and optional
        ``LOCATR_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        LocatrConfig
            Populated configuration.
        """
        env = os.environ

        map_kwargs: dict[str, Any] = {}
        center_env = env.get("LOCATR_MAP_CENTER")
        if center_env is not None:
            map_kwargs["center"] = _parse_center(center_env)
        zoom_env = env.get("LOCATR_MAP_ZOOM")
        if zoom_env is not None:
            map_kwargs["zoom"] = int(zoom_env)
        tile_env = env.get("LOCATR_MAP_TILE_URL")
        if tile_env is not None:
            map_kwargs["tile_url"] = tile_env

        map_overrides = overrides.pop("map", None)
        if isinstance(map_overrides, dict):
            map_kwargs.update(map_overrides)
        elif isinstance(map_overrides, MapDefaults):
            map_kwargs = dataclasses.asdict(map_overrides)

        _ENV_CONFIG_MAP = {
            "LOCATR_STORE_URL": "store_url",
            "LOCATR_API_KEY": "api_key",
            "LOCATR_DEVICES_TABLE": "devices_table",
            "LOCATR_SAMPLES_TABLE": "samples_table",
            "LOCATR_MQTT_HOST": "mqtt_host",
            "LOCATR_MQTT_USERNAME": "mqtt_username",
            "LOCATR_MQTT_PASSWORD": "mqtt_password",
            "LOCATR_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        config_kwargs: dict[str, Any] = {"map": MapDefaults(**map_kwargs) if map_kwargs else MapDefaults()}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "LOCATR_SAMPLE_INTERVAL": "sample_interval",
            "LOCATR_FIX_TIMEOUT": "fix_timeout",
            "LOCATR_REQUEST_TIMEOUT": "request_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        _ENV_INT_MAP = {
            "LOCATR_HISTORY_LIMIT": "history_limit",
            "LOCATR_TRAIL_LIMIT": "trail_limit",
            "LOCATR_MQTT_PORT": "mqtt_port",
            "LOCATR_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = int(val)

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("LOCATR_MQTT_ENABLED"), False)
        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("LOCATR_MQTT_TLS"), True)
        if "high_accuracy" not in overrides:
            config_kwargs["high_accuracy"] = _env_bool(env.get("LOCATR_HIGH_ACCURACY"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
