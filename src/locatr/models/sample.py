"""Location sample and position fix models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from locatr._normalize import format_timestamp, safe_float, safe_int
from locatr.models._base import LocatrBaseModel, OptionalTimestamp, Timestamp


class PositionFix(LocatrBaseModel):
    """One position fix as returned by the capability provider.

    ``captured_at`` is optional; the sampling loop stamps the fix with
    its own clock when the provider does not.
    """

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lon", "lng"))
    accuracy: float | None = Field(default=None, ge=0.0)
    captured_at: OptionalTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("captured_at", "capturedAt", "timestamp"),
    )

    @field_validator("latitude", "longitude", "accuracy", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)


class LocationSample(LocatrBaseModel):
    """Immutable telemetry record written once per sampling cycle.

    Parameters
    ----------
    id : str or None
        Store-assigned identifier; ``None`` before the insert.
    device_id : str
        Identifier of the device that captured the sample. The sample
        references the device, it does not own it.
    latitude : float
        WGS84 latitude in degrees.
    longitude : float
        WGS84 longitude in degrees.
    captured_at : datetime
        Capture time (UTC). Stored under the ``timestamp`` column.
    accuracy : float or None
        Horizontal accuracy in metres.
    battery_level : int or None
        Battery percentage at capture time.
    """

    id: str | None = None
    device_id: str = Field(validation_alias=AliasChoices("device_id", "deviceId"))
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    captured_at: Timestamp = Field(validation_alias=AliasChoices("timestamp", "captured_at", "capturedAt"))
    accuracy: float | None = Field(default=None, ge=0.0)
    battery_level: int | None = Field(
        default=None,
        ge=0,
        le=100,
        validation_alias=AliasChoices("battery_level", "batteryLevel"),
    )

    @field_validator("id", "device_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str:
        return str(value)

    @field_validator("latitude", "longitude", "accuracy", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("battery_level", mode="before")
    @classmethod
    def _coerce_battery(cls, value: Any) -> int | None:
        return safe_int(value)

    @classmethod
    def from_fix(
        cls,
        fix: PositionFix,
        *,
        device_id: str,
        captured_at: datetime,
        battery_level: int | None,
    ) -> LocationSample:
        """Tag *fix* with its device and battery reading."""
        return cls(
            device_id=device_id,
            latitude=fix.latitude,
            longitude=fix.longitude,
            captured_at=fix.captured_at or captured_at,
            accuracy=fix.accuracy,
            battery_level=battery_level,
        )

    @property
    def position(self) -> tuple[float, float]:
        return self.latitude, self.longitude

    def to_record(self) -> dict[str, Any]:
        """Column mapping written to the samples table."""
        record: dict[str, Any] = {
            "device_id": self.device_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": format_timestamp(self.captured_at),
            "accuracy": self.accuracy,
            "battery_level": self.battery_level,
        }
        if self.id is not None:
            record["id"] = self.id
        return record
