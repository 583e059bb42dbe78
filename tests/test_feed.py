from __future__ import annotations

import asyncio

import pytest
from helpers import make_sample

from locatr.feed import LiveFeed
from locatr.models.events import InsertEvent
from locatr.models.sample import LocationSample
from locatr.store.memory import MemorySampleStore


@pytest.mark.asyncio
async def test_feed_delivers_only_the_attached_device(store: MemorySampleStore) -> None:
    device = await store.insert_device("ABC123", "Tracked")
    other = await store.insert_device("XYZ999", "Other")
    received: list[LocationSample] = []

    async with LiveFeed(store, received.append) as feed:
        feed.attach(device)
        await store.insert_sample(make_sample(device.id, 1))
        await store.insert_sample(make_sample(other.id, 2))
        await store.insert_sample(make_sample(device.id, 3))
        await asyncio.sleep(0)

        assert [s.device_id for s in received] == [device.id, device.id]
        assert all(s.id is not None for s in received)
        assert feed.accepted == 2
        assert feed.discarded == 1

    assert store.subscription_count == 0


@pytest.mark.asyncio
async def test_detach_is_idempotent_and_stops_delivery(store: MemorySampleStore) -> None:
    device = await store.insert_device("ABC123", "Tracked")
    received: list[LocationSample] = []
    feed = LiveFeed(store, received.append)

    feed.attach(device)
    assert feed.is_attached
    assert feed.device_id == device.id
    feed.detach()
    feed.detach()

    await store.insert_sample(make_sample(device.id, 1))
    await asyncio.sleep(0)
    assert received == []
    assert not feed.is_attached
    assert store.subscription_count == 0


@pytest.mark.asyncio
async def test_event_scheduled_before_detach_is_not_delivered(store: MemorySampleStore) -> None:
    device = await store.insert_device("ABC123", "Tracked")
    received: list[LocationSample] = []
    feed = LiveFeed(store, received.append)
    feed.attach(device)

    await store.insert_sample(make_sample(device.id, 1))
    feed.detach()
    await asyncio.sleep(0)

    assert received == []


@pytest.mark.asyncio
async def test_attaching_another_device_releases_previous_subscription(store: MemorySampleStore) -> None:
    first = await store.insert_device("ABC123", "First")
    second = await store.insert_device("XYZ999", "Second")
    received: list[LocationSample] = []
    feed = LiveFeed(store, received.append)

    feed.attach(first)
    feed.attach(first)
    assert store.subscription_count == 1
    feed.attach(second)
    assert store.subscription_count == 1

    await store.insert_sample(make_sample(first.id, 1))
    await store.insert_sample(make_sample(second.id, 2))
    await asyncio.sleep(0)

    assert [s.device_id for s in received] == [second.id]
    feed.detach()


@pytest.mark.asyncio
async def test_malformed_records_are_discarded(store: MemorySampleStore) -> None:
    device = await store.insert_device("ABC123", "Tracked")
    received: list[LocationSample] = []
    feed = LiveFeed(store, received.append)
    feed.attach(device)

    callback = store._registry.matching("locations")[0].callback  # type: ignore[attr-defined]
    callback(InsertEvent(table="locations", record={"device_id": device.id, "latitude": 123.0}))
    callback(InsertEvent(table="devices", record={"device_id": device.id}))

    assert received == []
    assert feed.discarded == 2
    feed.detach()
