"""Sampling loop turning a tracked device into a periodic telemetry source."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from locatr.capabilities import CapabilityProvider, PermissionState
from locatr.config import LocatrConfig
from locatr.exceptions import (
    CapabilityError,
    FixTimeoutError,
    InvalidInputError,
    LocatrError,
    PermissionDeniedError,
)
from locatr.models.device import DeviceDescriptor, normalize_device_code
from locatr.models.sample import LocationSample, PositionFix
from locatr.session import TrackingSession
from locatr.store.base import SampleStore

_logger = logging.getLogger(__name__)

SampleObserver = Callable[[LocationSample], None]
"""Hook invoked with every sample the store accepted."""

ErrorObserver = Callable[[LocatrError], None]
"""Hook invoked with every non-fatal failure (skipped cycle, failed write)."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SamplerState(StrEnum):
    IDLE = "idle"
    REGISTERING = "registering"
    ARMED = "armed"
    SAMPLING_ON = "sampling_on"
    SAMPLING_OFF = "sampling_off"


class SamplingLoop:
    """Periodic capture-and-report loop for one tracked device.

    The loop owns its timer; two loops never share one. A session is
    attributed to a single device code for its whole lifetime.

    Usage::

        async with SamplingLoop(store, provider, on_sample=print) as loop:
            await loop.start("ABC123")
            ...
    """

    def __init__(
        self,
        store: SampleStore,
        capabilities: CapabilityProvider,
        *,
        config: LocatrConfig | None = None,
        on_sample: SampleObserver | None = None,
        on_error: ErrorObserver | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._capabilities = capabilities
        self._config = (config or LocatrConfig()).validate()
        self._on_sample = on_sample
        self._on_error = on_error
        self._clock = clock
        self.session = TrackingSession()
        self._state = SamplerState.IDLE
        self._timer: asyncio.Task[None] | None = None
        # Bumped by stop(); a start() that sees it change must not arm.
        self._stop_generation = 0
        self._cycles: set[asyncio.Task[Any]] = set()
        self._cycle_lock = asyncio.Lock()
        self._registration_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SamplingLoop:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def is_tracking(self) -> bool:
        return self._state is SamplerState.SAMPLING_ON

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    async def start(self, code: str) -> None:
        """Request permission, report once, then sample every ``sample_interval`` seconds.

        Raises :class:`PermissionDeniedError` when location access is
        refused; the loop then stays where it was and writes nothing.
        """
        normalized = normalize_device_code(code)
        if self.session.device_code is not None and self.session.device_code != normalized:
            raise InvalidInputError(
                f"session reports as {self.session.device_code}; start a new loop for {normalized}"
            )
        if self._state in (SamplerState.SAMPLING_ON, SamplerState.REGISTERING, SamplerState.ARMED):
            _logger.debug("Sampling loop for code=%s already running (state=%s)", normalized, self._state)
            return

        generation = self._stop_generation
        permission = await self._request_permission()
        if not permission.granted:
            _logger.warning("Location permission %s for code=%s", permission, normalized)
            raise PermissionDeniedError("Location permission required")
        if self._stopped_since(generation):
            return

        self.session.device_code = normalized
        if not self.session.is_bound:
            self._state = SamplerState.REGISTERING
            try:
                await self._ensure_registered()
            except LocatrError as exc:
                # Retried lazily by the next cycle.
                self._report(exc)
            if self._stopped_since(generation):
                return

        self._state = SamplerState.ARMED
        self.session.tracking = True
        _logger.debug("Location tracking started code=%s", normalized)

        await self.run_cycle()
        if self._stopped_since(generation):
            return

        self._state = SamplerState.SAMPLING_ON
        self._timer = asyncio.create_task(self._tick_forever(), name=f"locatr-sampler-{normalized}")

    async def stop(self) -> None:
        """Cancel the periodic timer. An in-flight cycle may still complete."""
        self._stop_generation += 1
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer
        self.session.tracking = False
        if self._state is not SamplerState.IDLE:
            self._state = SamplerState.SAMPLING_OFF
            _logger.debug("Location tracking stopped code=%s", self.session.device_code)

    def _stopped_since(self, generation: int) -> bool:
        if generation == self._stop_generation:
            return False
        _logger.debug("Sampling loop for code=%s stopped during start; not arming", self.session.device_code)
        return True

    async def drain(self) -> None:
        """Wait for cycles spawned by the timer to finish."""
        while self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> LocationSample | None:
        """Capture one fix and report it.

        Returns the stored sample, or ``None`` when the cycle failed or was
        dropped because another cycle is still in flight. Failures are
        reported through ``on_error`` and never raised.
        """
        if self._cycle_lock.locked():
            self.session.cycles_dropped += 1
            _logger.debug("Sampling cycle still in flight; dropping tick for code=%s", self.session.device_code)
            return None
        async with self._cycle_lock:
            try:
                return await self._capture_and_report()
            except LocatrError as exc:
                self.session.cycles_failed += 1
                self._report(exc)
                return None

    async def _capture_and_report(self) -> LocationSample:
        device_id = await self._ensure_registered()
        fix = await self._acquire_fix()
        battery_level = await self._refresh_battery()
        sample = LocationSample.from_fix(
            fix,
            device_id=device_id,
            captured_at=self._clock(),
            battery_level=battery_level,
        )
        stored = await self._store.insert_sample(sample)
        self.session.record(stored)
        _logger.debug(
            "Sample stored code=%s lat=%.6f lon=%.6f accuracy=%s battery=%s",
            self.session.device_code,
            stored.latitude,
            stored.longitude,
            stored.accuracy,
            stored.battery_level,
        )
        if self._on_sample is not None:
            try:
                self._on_sample(stored)
            except Exception:
                _logger.debug("on_sample callback failed", exc_info=True)
        return stored

    async def _tick_forever(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self._config.sample_interval
        deadline = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            deadline += interval
            if deadline <= loop.time():
                # Event loop stalled past a boundary; resume the fixed grid from now.
                deadline = loop.time() + interval
            task = asyncio.create_task(self._timed_cycle())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)

    async def _timed_cycle(self) -> None:
        try:
            await self.run_cycle()
        except Exception:
            _logger.warning("Unexpected failure in periodic location update", exc_info=True)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def _ensure_registered(self) -> str:
        """Bind the session's device id, registering the code if unseen."""
        if self.session.device_id is not None:
            return self.session.device_id
        async with self._registration_lock:
            if self.session.device_id is not None:
                return self.session.device_id
            code = self.session.device_code
            if code is None:
                raise InvalidInputError("sampling loop has no device code; call start() first")

            device = await self._store.find_device_by_code(code)
            if device is None:
                descriptor = await self._describe_device()
                device = await self._store.insert_device(code, descriptor.display_name)
                _logger.info("Device registered code=%s id=%s name=%s", code, device.id, device.device_name)
            self.session.bind(device)
            return device.id

    async def _describe_device(self) -> DeviceDescriptor:
        try:
            return await self._capabilities.get_device_descriptor()
        except Exception:
            _logger.debug("Device descriptor unavailable", exc_info=True)
            return DeviceDescriptor()

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def _request_permission(self) -> PermissionState:
        try:
            return PermissionState(await self._capabilities.request_location_permission())
        except Exception:
            _logger.debug("Error requesting location permission", exc_info=True)
            return PermissionState.DENIED

    async def _acquire_fix(self) -> PositionFix:
        timeout = self._config.fix_timeout
        try:
            return await asyncio.wait_for(
                self._capabilities.get_current_fix(timeout, high_accuracy=self._config.high_accuracy),
                timeout,
            )
        except TimeoutError as exc:
            raise FixTimeoutError(f"No position fix within {timeout:g}s", timeout=timeout) from exc
        except LocatrError:
            raise
        except Exception as exc:
            raise CapabilityError(f"Error getting location: {exc}") from exc

    async def _refresh_battery(self) -> int | None:
        """Latest battery reading; a failed read keeps the previous one."""
        try:
            level = await self._capabilities.get_battery_level()
        except Exception:
            _logger.debug("Error getting battery info", exc_info=True)
            return self.session.battery_level
        if level is not None:
            self.session.battery_level = max(0, min(100, int(round(level))))
        return self.session.battery_level

    def _report(self, error: LocatrError) -> None:
        _logger.warning("Location update failed for code=%s: %s", self.session.device_code, error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                _logger.debug("on_error callback failed", exc_info=True)
