"""Shared fakes and sample builders for the test modules."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from locatr.capabilities import PermissionState
from locatr.models.device import DeviceDescriptor
from locatr.models.sample import LocationSample, PositionFix

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


@dataclass
class FakeCapabilities:
    """Scripted capability provider.

    ``fixes`` is consumed one entry per fix request; an exception entry is
    raised instead of returned. ``delays`` is consumed the same way and
    makes the matching request sleep first. ``permission_delay`` stalls the
    permission prompt.
    """

    permission: PermissionState = PermissionState.GRANTED
    fixes: list[PositionFix | BaseException] = field(default_factory=list)
    delays: list[float] = field(default_factory=list)
    battery: int | None = 80
    battery_error: BaseException | None = None
    descriptor: DeviceDescriptor = field(default_factory=lambda: DeviceDescriptor(model="Pixel 8", platform="android"))
    fix_calls: int = 0
    permission_delay: float = 0.0
    permission_calls: int = 0

    async def request_location_permission(self) -> PermissionState:
        self.permission_calls += 1
        if self.permission_delay:
            await asyncio.sleep(self.permission_delay)
        return self.permission

    async def get_current_fix(self, timeout: float, *, high_accuracy: bool = True) -> PositionFix:
        self.fix_calls += 1
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        if not self.fixes:
            return PositionFix(latitude=40.7128, longitude=-74.0060, accuracy=5.0)
        item = self.fixes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def get_battery_level(self) -> int | None:
        if self.battery_error is not None:
            raise self.battery_error
        return self.battery

    async def get_device_descriptor(self) -> DeviceDescriptor:
        return self.descriptor


def make_clock(start: datetime = T0, step: timedelta = timedelta(seconds=30)) -> Callable[[], datetime]:
    """Clock advancing by *step* on every call."""
    ticks = itertools.count()
    return lambda: start + step * next(ticks)


def make_sample(device_id: str, minute: int, *, lat: float = 40.0, lon: float = -74.0, **extra: object) -> LocationSample:
    return LocationSample(
        device_id=device_id,
        latitude=lat,
        longitude=lon,
        captured_at=T0 + timedelta(minutes=minute),
        **extra,
    )


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    """Poll *predicate* on the running loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)
