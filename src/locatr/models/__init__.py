"""Data models for devices, samples and store events."""

from locatr.models._base import LocatrBaseModel, Timestamp
from locatr.models.device import Device, DeviceDescriptor, generate_device_code, normalize_device_code
from locatr.models.events import InsertEvent
from locatr.models.sample import LocationSample, PositionFix

__all__ = [
    "Device",
    "DeviceDescriptor",
    "InsertEvent",
    "LocatrBaseModel",
    "LocationSample",
    "PositionFix",
    "Timestamp",
    "generate_device_code",
    "normalize_device_code",
]
