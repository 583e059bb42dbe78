"""Capability provider contract consumed by the sampling loop.

The native permission, geolocation and battery APIs live outside this
library. Anything implementing :class:`CapabilityProvider` can drive a
:class:`~locatr.sampler.SamplingLoop`.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from locatr.models.device import DeviceDescriptor
from locatr.models.sample import PositionFix


class PermissionState(StrEnum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"

    @property
    def granted(self) -> bool:
        return self is PermissionState.GRANTED


@runtime_checkable
class CapabilityProvider(Protocol):
    """Structural interface to the device's native capabilities."""

    async def request_location_permission(self) -> PermissionState:
        """Ask the user for location access."""
        ...

    async def get_current_fix(self, timeout: float, *, high_accuracy: bool = True) -> PositionFix:
        """Return one position fix.

        Raises :class:`TimeoutError` when no fix arrives within *timeout*
        seconds.
        """
        ...

    async def get_battery_level(self) -> int | None:
        """Battery percentage (0-100), ``None`` when unavailable."""
        ...

    async def get_device_descriptor(self) -> DeviceDescriptor:
        """Best-effort model/platform description."""
        ...
