"""Live feed keeping a viewed device's trail current after the bootstrap load."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from locatr._constants import SAMPLES_TABLE
from locatr.models.device import Device
from locatr.models.events import InsertEvent
from locatr.models.sample import LocationSample
from locatr.store.base import InsertSubscription, SampleStore

_logger = logging.getLogger(__name__)

SampleSink = Callable[[LocationSample], None]


class LiveFeed:
    """Scoped insert listener for one resolved device.

    The device id is captured when the feed is attached and every event
    is compared against that id, so a listener can never act on a stale
    resolution. Attaching to another device releases the previous
    subscription first.
    """

    def __init__(
        self,
        store: SampleStore,
        sink: SampleSink,
        *,
        table: str = SAMPLES_TABLE,
    ) -> None:
        self._store = store
        self._sink = sink
        self._table = table
        self._subscription: InsertSubscription | None = None
        self._device_id: str | None = None
        self.accepted = 0
        self.discarded = 0

    async def __aenter__(self) -> LiveFeed:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.detach()

    @property
    def device_id(self) -> str | None:
        return self._device_id

    @property
    def is_attached(self) -> bool:
        return self._subscription is not None

    def attach(self, device: Device) -> None:
        """Subscribe to sample inserts of *device*."""
        if self._subscription is not None and self._device_id == device.id:
            return
        self.detach()
        device_id = device.id

        def _on_insert(event: InsertEvent) -> None:
            self._handle(device_id, event)

        self._subscription = self._store.subscribe_inserts(self._table, _on_insert)
        self._device_id = device_id
        _logger.debug("Live feed attached code=%s id=%s", device.device_code, device_id)

    def detach(self) -> None:
        """Release the subscription. Safe to call repeatedly."""
        subscription = self._subscription
        self._subscription = None
        device_id = self._device_id
        self._device_id = None
        if subscription is None:
            return
        self._store.unsubscribe(subscription)
        _logger.debug("Live feed detached id=%s", device_id)

    def _handle(self, device_id: str, event: InsertEvent) -> None:
        if device_id != self._device_id:
            # Subscription released or replaced after delivery was scheduled.
            return
        if event.table != self._table or event.device_id != device_id:
            self.discarded += 1
            return
        try:
            sample = LocationSample.model_validate(event.record)
        except ValidationError:
            self.discarded += 1
            _logger.debug("Dropping malformed sample record %s", event.record, exc_info=True)
            return
        self.accepted += 1
        self._sink(sample)
