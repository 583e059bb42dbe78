from __future__ import annotations

import asyncio

import pytest
from helpers import make_sample

from locatr.exceptions import StoreWriteError
from locatr.models.events import InsertEvent
from locatr.store.memory import MemorySampleStore


@pytest.mark.asyncio
async def test_insert_device_is_an_upsert_on_code(store: MemorySampleStore) -> None:
    first = await store.insert_device("abc123", "Pixel 8 - android")
    second = await store.insert_device("ABC123", "iPhone - ios")

    assert first.id == second.id
    assert second.device_name == "Pixel 8 - android"
    assert await store.find_device_by_code(" abc123 ") == first


@pytest.mark.asyncio
async def test_sample_for_unknown_device_is_rejected(store: MemorySampleStore) -> None:
    with pytest.raises(StoreWriteError):
        await store.insert_sample(make_sample("missing", 0))


@pytest.mark.asyncio
async def test_query_orders_then_limits(store: MemorySampleStore) -> None:
    device = await store.insert_device("ABC123", "Tracked")
    for minute in (5, 1, 9, 3, 7):
        await store.insert_sample(make_sample(device.id, minute))

    recent = await store.query_samples(device.id, limit=3)

    assert [s.captured_at.minute for s in recent] == [5, 7, 9]
    assert await store.query_samples(device.id, limit=0) == []
    assert await store.query_samples("other", limit=3) == []


@pytest.mark.asyncio
async def test_last_seen_only_moves_forward(store: MemorySampleStore) -> None:
    device = await store.insert_device("ABC123", "Tracked")
    newer = await store.insert_sample(make_sample(device.id, 10))
    await store.insert_sample(make_sample(device.id, 2))

    current = store.get_device(device.id)
    assert current is not None
    assert current.last_seen == newer.captured_at
    assert newer.id is not None


@pytest.mark.asyncio
async def test_insert_events_are_delivered_after_the_insert(store: MemorySampleStore) -> None:
    events: list[InsertEvent] = []
    device_events: list[InsertEvent] = []

    def broken(_event: InsertEvent) -> None:
        raise RuntimeError("listener bug")

    store.subscribe_inserts("locations", broken)
    store.subscribe_inserts("locations", events.append)
    store.subscribe_inserts("devices", device_events.append)

    device = await store.insert_device("ABC123", "Tracked")
    stored = await store.insert_sample(make_sample(device.id, 0, battery_level=40))
    assert events == []

    await asyncio.sleep(0)

    assert len(events) == 1
    assert events[0].type == "INSERT"
    assert events[0].record["id"] == stored.id
    assert events[0].record["battery_level"] == 40
    assert [e.record["device_code"] for e in device_events] == ["ABC123"]


@pytest.mark.asyncio
async def test_unsubscribe_drops_scheduled_events(store: MemorySampleStore) -> None:
    events: list[InsertEvent] = []
    subscription = store.subscribe_inserts("locations", events.append)
    device = await store.insert_device("ABC123", "Tracked")

    await store.insert_sample(make_sample(device.id, 0))
    store.unsubscribe(subscription)
    await asyncio.sleep(0)

    assert events == []
    assert not subscription.active
    assert store.subscription_count == 0
