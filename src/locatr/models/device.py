"""Device identity model and device-code helpers."""

from __future__ import annotations

import secrets
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from locatr._constants import DEVICE_CODE_ALPHABET, DEVICE_CODE_LENGTH, UNKNOWN_DESCRIPTOR
from locatr._normalize import safe_str
from locatr.exceptions import InvalidInputError
from locatr.models._base import LocatrBaseModel, OptionalTimestamp


def normalize_device_code(code: str | None) -> str:
    """Trim and uppercase a human-entered device code.

    Raises :class:`InvalidInputError` when the code is empty or contains
    anything other than ASCII letters and digits.
    """
    text = (code or "").strip().upper()
    if not text:
        raise InvalidInputError("device code must be non-empty")
    if not all(ch in DEVICE_CODE_ALPHABET for ch in text):
        raise InvalidInputError(f"device code must be alphanumeric, got {code!r}")
    return text


def generate_device_code(length: int = DEVICE_CODE_LENGTH) -> str:
    """Return a random uppercase base-36 code for a new tracked device."""
    return "".join(secrets.choice(DEVICE_CODE_ALPHABET) for _ in range(length))


class Device(LocatrBaseModel):
    """A tracked device as registered in the store.

    Parameters
    ----------
    id : str
        Opaque identifier assigned by the store.
    device_code : str
        Unique human-entered code, uppercase.
    device_name : str
        Display name derived from the device descriptor at registration.
    last_seen : datetime or None
        Capture time of the most recent accepted sample.
    created_at : datetime or None
        Registration time.
    """

    id: str = Field(validation_alias=AliasChoices("id", "device_id"))
    device_code: str = Field(validation_alias=AliasChoices("device_code", "deviceCode", "code"))
    device_name: str = Field(default="", validation_alias=AliasChoices("device_name", "deviceName", "name"))
    last_seen: OptionalTimestamp = Field(default=None, validation_alias=AliasChoices("last_seen", "lastSeen"))
    created_at: OptionalTimestamp = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("device_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> str:
        try:
            return normalize_device_code(safe_str(value))
        except InvalidInputError as exc:
            raise ValueError(str(exc)) from exc

    @property
    def display_name(self) -> str:
        """Name shown to viewers; falls back to the code."""
        return self.device_name or self.device_code


class DeviceDescriptor(LocatrBaseModel):
    """Best-effort hardware description reported by the capability provider."""

    model: str | None = None
    platform: str | None = None

    @field_validator("model", "platform", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def display_name(self) -> str:
        """``"<model> - <platform>"`` with ``Unknown`` for missing fields."""
        return f"{self.model or UNKNOWN_DESCRIPTOR} - {self.platform or UNKNOWN_DESCRIPTOR}"
