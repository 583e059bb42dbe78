"""Resolution of a human-entered code into a device and its recent trail."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict

from locatr._constants import HISTORY_LIMIT
from locatr.exceptions import InvalidInputError, LoadError, NotFoundError, StoreError
from locatr.models.device import Device, normalize_device_code
from locatr.models.sample import LocationSample
from locatr.store.base import SampleStore

_logger = logging.getLogger(__name__)


class Resolution(BaseModel):
    """Outcome of :func:`resolve`.

    ``samples`` is empty both for a device that never reported and for a
    failed history load; ``load_error`` tells the two apart.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    device: Device
    samples: tuple[LocationSample, ...] = ()
    load_error: LoadError | None = None

    @property
    def is_empty(self) -> bool:
        return not self.samples


async def resolve_device(store: SampleStore, code: str) -> Device:
    """Look up exactly one device by code.

    Raises
    ------
    InvalidInputError
        The code is empty after trimming or not alphanumeric.
    NotFoundError
        No device is registered under the code.
    LoadError
        The store failed.
    """
    if not code or not code.strip():
        raise InvalidInputError("Please enter a device code")
    normalized = normalize_device_code(code)
    try:
        device = await store.find_device_by_code(normalized)
    except StoreError as exc:
        raise LoadError(f"Error searching for device {normalized}: {exc}") from exc
    if device is None:
        raise NotFoundError(f"Device {normalized} not found", code=normalized)
    return device


async def load_history(
    store: SampleStore,
    device: Device,
    *,
    limit: int = HISTORY_LIMIT,
) -> list[LocationSample]:
    """Most recent *limit* samples of *device*, ascending by capture time.

    The store applies ordering and the limit; the sort here only makes the
    ascending order hold for backends that return ties or near-ties in
    arbitrary order.
    """
    try:
        samples = await store.query_samples(device.id, limit=limit)
    except StoreError as exc:
        raise LoadError(f"Error loading locations for {device.device_code}: {exc}") from exc

    foreign = [s for s in samples if s.device_id != device.id]
    if foreign:
        _logger.warning("Dropping %d samples not belonging to device id=%s", len(foreign), device.id)
        samples = [s for s in samples if s.device_id == device.id]
    ordered = sorted(samples, key=lambda s: s.captured_at)
    return ordered[-limit:]


async def resolve(store: SampleStore, code: str, *, limit: int = HISTORY_LIMIT) -> Resolution:
    """Resolve *code* and load its bootstrap history.

    A failure while resolving the device raises and leaves no partial
    result. A failure while loading samples still returns the resolved
    device with an empty trail and the error in ``load_error``.
    """
    device = await resolve_device(store, code)
    try:
        samples = await load_history(store, device, limit=limit)
    except LoadError as exc:
        _logger.warning("Device %s resolved but history failed: %s", device.device_code, exc)
        return Resolution(device=device, load_error=exc)
    _logger.debug("Resolved code=%s id=%s samples=%d", device.device_code, device.id, len(samples))
    return Resolution(device=device, samples=tuple(samples))
