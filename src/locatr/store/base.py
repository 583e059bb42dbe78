"""Sample store contract and the shared insert-subscription registry."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from locatr._constants import HISTORY_LIMIT
from locatr.models.device import Device
from locatr.models.events import InsertEvent
from locatr.models.sample import LocationSample

_logger = logging.getLogger(__name__)

InsertCallback = Callable[[InsertEvent], None]

_subscription_ids = itertools.count(1)


@dataclass(slots=True, eq=False)
class InsertSubscription:
    """Handle for one change listener registered against a table.

    The handle stays valid until passed to ``unsubscribe``; after that
    no further events are delivered to its callback, including events
    already scheduled for delivery.
    """

    table: str
    callback: InsertCallback
    id: int = field(default_factory=lambda: next(_subscription_ids))
    active: bool = True


class SampleStore(Protocol):
    """Structural interface to the durable sample store.

    Having a protocol here keeps the pipeline independent of the backend
    (:class:`~locatr.store.memory.MemorySampleStore` for tests and local
    runs, :class:`~locatr.store.rest.RestSampleStore` in production).
    """

    async def find_device_by_code(self, code: str) -> Device | None:
        ...

    async def insert_device(self, code: str, name: str) -> Device:
        """Register *code*; returns the existing row if the code is taken."""
        ...

    async def insert_sample(self, sample: LocationSample) -> LocationSample:
        ...

    async def query_samples(self, device_id: str, *, limit: int = HISTORY_LIMIT) -> list[LocationSample]:
        """Most recent *limit* samples of a device, ascending by capture time."""
        ...

    def subscribe_inserts(self, table: str, callback: InsertCallback) -> InsertSubscription:
        ...

    def unsubscribe(self, subscription: InsertSubscription) -> None:
        ...


class SubscriptionRegistry:
    """Bookkeeping of insert listeners shared by the store backends."""

    def __init__(self) -> None:
        self._subscriptions: list[InsertSubscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, table: str, callback: InsertCallback) -> InsertSubscription:
        subscription = InsertSubscription(table=table, callback=callback)
        self._subscriptions.append(subscription)
        _logger.debug("Insert listener added id=%s table=%s", subscription.id, table)
        return subscription

    def remove(self, subscription: InsertSubscription) -> None:
        subscription.active = False
        self._subscriptions = [sub for sub in self._subscriptions if sub is not subscription]
        _logger.debug("Insert listener removed id=%s table=%s", subscription.id, subscription.table)

    def clear(self) -> None:
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()

    def matching(self, table: str) -> list[InsertSubscription]:
        return [sub for sub in self._subscriptions if sub.active and sub.table == table]

    @staticmethod
    def deliver(subscription: InsertSubscription, event: InsertEvent) -> None:
        """Invoke one listener; listener failures never reach the store."""
        if not subscription.active:
            return
        try:
            subscription.callback(event)
        except Exception:
            _logger.debug("Insert listener id=%s failed", subscription.id, exc_info=True)

    def dispatch(self, event: InsertEvent) -> None:
        for subscription in self.matching(event.table):
            self.deliver(subscription, event)
