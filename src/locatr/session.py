"""Tracking session state kept by the sampling loop on the tracked device."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from locatr.exceptions import InvalidInputError
from locatr.models.device import Device
from locatr.models.sample import LocationSample


class TrackingSession(BaseModel):
    """Mutable, client-local session state. Never persisted.

    Parameters
    ----------
    device_code : str or None
        Code the session reports under, set by the first ``start``.
    device_id : str or None
        Store identifier bound by the registration protocol.
    tracking : bool
        Whether periodic reporting is enabled.
    last_sample : LocationSample or None
        Most recent sample accepted by the store. Survives ``stop``.
    accuracy : float or None
        Accuracy of ``last_sample`` in metres.
    battery_level : int or None
        Latest battery reading.
    samples_written : int
        Samples accepted by the store during this session.
    cycles_failed : int
        Cycles that ended in a reported error.
    cycles_dropped : int
        Ticks dropped because a cycle was still in flight.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    device_code: str | None = None
    device_id: str | None = None
    tracking: bool = False
    last_sample: LocationSample | None = None
    accuracy: float | None = None
    battery_level: int | None = None
    samples_written: int = 0
    cycles_failed: int = 0
    cycles_dropped: int = 0

    @property
    def is_bound(self) -> bool:
        return self.device_id is not None

    def bind(self, device: Device) -> None:
        """Attribute the session to *device*; a session never migrates devices."""
        if self.device_id is not None and self.device_id != device.id:
            raise InvalidInputError(f"session already bound to device {self.device_id}, refusing {device.id}")
        if self.device_code is not None and self.device_code != device.device_code:
            raise InvalidInputError(f"session reports as {self.device_code}, refusing {device.device_code}")
        self.device_id = device.id
        self.device_code = device.device_code

    def record(self, sample: LocationSample) -> None:
        self.last_sample = sample
        self.accuracy = sample.accuracy
        if sample.battery_level is not None:
            self.battery_level = sample.battery_level
        self.samples_written += 1
