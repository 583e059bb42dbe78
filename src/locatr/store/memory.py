"""Deterministic in-memory sample store.

Implements the full :class:`~locatr.store.base.SampleStore` contract
without I/O: the code uniqueness constraint, ``last_seen`` bookkeeping,
order-then-limit queries and asynchronous insert notifications.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from locatr._constants import DEVICES_TABLE, HISTORY_LIMIT, SAMPLES_TABLE
from locatr.exceptions import StoreWriteError
from locatr.models.device import Device, normalize_device_code
from locatr.models.events import InsertEvent
from locatr.models.sample import LocationSample
from locatr.store.base import InsertCallback, InsertSubscription, SubscriptionRegistry

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


class MemorySampleStore:
    """In-process store.

    Insert events are scheduled with ``loop.call_soon`` so listeners run
    after the inserting coroutine resumes, the same way a remote change
    stream delivers them.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
        devices_table: str = DEVICES_TABLE,
        samples_table: str = SAMPLES_TABLE,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self.devices_table = devices_table
        self.samples_table = samples_table
        self._devices: dict[str, Device] = {}
        self._device_ids_by_code: dict[str, str] = {}
        self._samples: dict[str, list[LocationSample]] = {}
        self._registry = SubscriptionRegistry()

    @property
    def subscription_count(self) -> int:
        return len(self._registry)

    def samples_for(self, device_id: str) -> list[LocationSample]:
        """Every stored sample of a device in insertion order."""
        return list(self._samples.get(device_id, []))

    def get_device(self, device_id: str) -> Device | None:
        return self._devices.get(device_id)

    async def find_device_by_code(self, code: str) -> Device | None:
        device_id = self._device_ids_by_code.get(normalize_device_code(code))
        return None if device_id is None else self._devices[device_id]

    async def insert_device(self, code: str, name: str) -> Device:
        normalized = normalize_device_code(code)
        existing_id = self._device_ids_by_code.get(normalized)
        if existing_id is not None:
            _logger.debug("Device code=%s already registered id=%s", normalized, existing_id)
            return self._devices[existing_id]

        device = Device(
            id=self._id_factory(),
            device_code=normalized,
            device_name=name,
            created_at=self._clock(),
        )
        self._devices[device.id] = device
        self._device_ids_by_code[normalized] = device.id
        self._publish(InsertEvent(table=self.devices_table, record=device.model_dump(mode="json")))
        return device

    async def insert_sample(self, sample: LocationSample) -> LocationSample:
        device = self._devices.get(sample.device_id)
        if device is None:
            raise StoreWriteError(
                f"unknown device_id {sample.device_id!r}",
                endpoint=self.samples_table,
            )

        stored = sample.model_copy(update={"id": sample.id or self._id_factory()})
        self._samples.setdefault(stored.device_id, []).append(stored)
        if device.last_seen is None or stored.captured_at > device.last_seen:
            self._devices[device.id] = device.model_copy(update={"last_seen": stored.captured_at})

        self._publish(InsertEvent(table=self.samples_table, record=stored.to_record()))
        return stored

    async def query_samples(self, device_id: str, *, limit: int = HISTORY_LIMIT) -> list[LocationSample]:
        ordered = sorted(self._samples.get(device_id, []), key=lambda s: s.captured_at)
        if limit <= 0:
            return []
        return ordered[-limit:]

    def subscribe_inserts(self, table: str, callback: InsertCallback) -> InsertSubscription:
        return self._registry.add(table, callback)

    def unsubscribe(self, subscription: InsertSubscription) -> None:
        self._registry.remove(subscription)

    def _publish(self, event: InsertEvent) -> None:
        subscriptions = self._registry.matching(event.table)
        if not subscriptions:
            return
        loop = asyncio.get_running_loop()
        for subscription in subscriptions:
            loop.call_soon(self._registry.deliver, subscription, event)
