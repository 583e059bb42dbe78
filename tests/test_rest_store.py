from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer as HttpTestServer
from helpers import make_sample

from locatr.config import LocatrConfig
from locatr.exceptions import LocatrConfigError, StoreError, StoreReadError, StoreWriteError
from locatr.models.events import InsertEvent
from locatr.store.rest import RestSampleStore

DEVICE_ROW = {
    "id": "7d0c",
    "device_code": "ABC123",
    "device_name": "Pixel 8 - android",
    "last_seen": None,
    "created_at": "2024-05-01T12:00:00+00:00",
}


def _sample_row(sample_id: int, minute: int) -> dict[str, Any]:
    return {
        "id": sample_id,
        "device_id": "7d0c",
        "latitude": 40.0,
        "longitude": -74.0,
        "timestamp": f"2024-05-01T12:{minute:02d}:00+00:00",
        "accuracy": 5.0,
        "battery_level": 80,
    }


@dataclass
class FakeTransport:
    responses: dict[tuple[str, str], list[Any]] = field(default_factory=dict)
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(
            {"method": method, "table": table, "params": dict(params or {}), "payload": payload, "prefer": prefer}
        )
        queue = self.responses.get((method, table), [])
        item = queue.pop(0) if queue else []
        if isinstance(item, Exception):
            raise item
        return item


@dataclass
class FakeFeed:
    published: list[InsertEvent] = field(default_factory=list)
    is_running: bool = True

    def publish(self, event: InsertEvent) -> None:
        self.published.append(event)


@pytest.mark.asyncio
async def test_find_device_by_code_filters_on_code() -> None:
    transport = FakeTransport(responses={("GET", "devices"): [[DEVICE_ROW], []]})
    store = RestSampleStore(LocatrConfig(), transport=transport)

    device = await store.find_device_by_code("abc123")
    missing = await store.find_device_by_code("XYZ999")

    assert device is not None and device.id == "7d0c"
    assert missing is None
    assert transport.calls[0]["params"] == {"select": "*", "device_code": "eq.ABC123", "limit": "1"}


@pytest.mark.asyncio
async def test_read_failure_is_mapped() -> None:
    transport = FakeTransport(responses={("GET", "devices"): [StoreError("HTTP 500", status_code=500, endpoint="devices")]})
    store = RestSampleStore(LocatrConfig(), transport=transport)

    with pytest.raises(StoreReadError) as excinfo:
        await store.find_device_by_code("ABC123")
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_insert_device_upserts_on_code() -> None:
    transport = FakeTransport(responses={("POST", "devices"): [[DEVICE_ROW]]})
    store = RestSampleStore(LocatrConfig(), transport=transport)

    device = await store.insert_device("abc123", "Pixel 8 - android")

    assert device.device_code == "ABC123"
    call = transport.calls[0]
    assert call["params"] == {"on_conflict": "device_code"}
    assert call["payload"] == {"device_code": "ABC123", "device_name": "Pixel 8 - android"}
    assert "resolution=ignore-duplicates" in call["prefer"]


@pytest.mark.asyncio
async def test_insert_device_rereads_ignored_duplicate() -> None:
    transport = FakeTransport(responses={("POST", "devices"): [[]], ("GET", "devices"): [[DEVICE_ROW]]})
    store = RestSampleStore(LocatrConfig(), transport=transport)

    device = await store.insert_device("ABC123", "iPhone - ios")

    assert device.device_name == "Pixel 8 - android"
    assert [c["method"] for c in transport.calls] == ["POST", "GET"]


@pytest.mark.asyncio
async def test_insert_device_fails_when_neither_inserted_nor_found() -> None:
    store = RestSampleStore(LocatrConfig(), transport=FakeTransport())
    with pytest.raises(StoreWriteError):
        await store.insert_device("ABC123", "Unknown - Unknown")


@pytest.mark.asyncio
async def test_insert_sample_returns_stored_row_and_fans_out() -> None:
    transport = FakeTransport(responses={("POST", "locations"): [[_sample_row(11, 0)]]})
    feed = FakeFeed()
    store = RestSampleStore(LocatrConfig(), transport=transport, feed=feed)  # type: ignore[arg-type]

    stored = await store.insert_sample(make_sample("7d0c", 0, accuracy=5.0, battery_level=80))

    assert stored.id == "11"
    payload = transport.calls[0]["payload"]
    assert payload["timestamp"] == "2024-05-01T12:00:00+00:00"
    assert "id" not in payload
    assert transport.calls[0]["prefer"] == "return=representation"
    assert len(feed.published) == 1
    assert feed.published[0].table == "locations"
    assert feed.published[0].record["id"] == 11


@pytest.mark.asyncio
async def test_insert_sample_failure_is_a_write_error() -> None:
    transport = FakeTransport(responses={("POST", "locations"): [StoreError("HTTP 401", status_code=401)]})
    store = RestSampleStore(LocatrConfig(), transport=transport)

    with pytest.raises(StoreWriteError):
        await store.insert_sample(make_sample("7d0c", 0))


@pytest.mark.asyncio
async def test_query_samples_returns_ascending() -> None:
    rows = [_sample_row(3, 2), _sample_row(2, 1), _sample_row(1, 0)]
    transport = FakeTransport(responses={("GET", "locations"): [rows]})
    store = RestSampleStore(LocatrConfig(), transport=transport)

    samples = await store.query_samples("7d0c", limit=3)

    assert [s.id for s in samples] == ["1", "2", "3"]
    assert transport.calls[0]["params"] == {
        "select": "*",
        "device_id": "eq.7d0c",
        "order": "timestamp.desc",
        "limit": "3",
    }


def test_subscriptions_need_a_feed() -> None:
    store = RestSampleStore(LocatrConfig(), transport=FakeTransport())
    with pytest.raises(LocatrConfigError):
        store.subscribe_inserts("locations", lambda _event: None)


@pytest.mark.asyncio
async def test_store_requires_context_without_transport() -> None:
    store = RestSampleStore(LocatrConfig())
    with pytest.raises(StoreError, match="not initialized"):
        await store.find_device_by_code("ABC123")


@pytest.mark.asyncio
async def test_postgrest_transport_against_http_server(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="locatr.store.rest")
    seen: list[dict[str, Any]] = []

    async def devices(request: web.Request) -> web.Response:
        seen.append(
            {
                "apikey": request.headers.get("apikey"),
                "authorization": request.headers.get("authorization"),
                "query": dict(request.query),
            }
        )
        return web.json_response([DEVICE_ROW])

    async def locations(request: web.Request) -> web.Response:
        if request.method == "POST":
            return web.Response(status=409, text='{"message":"duplicate key"}')
        return web.json_response([_sample_row(2, 1), _sample_row(1, 0)])

    app = web.Application()
    app.router.add_get("/rest/v1/devices", devices)
    app.router.add_route("*", "/rest/v1/locations", locations)

    async with HttpTestServer(app) as server:
        config = LocatrConfig(store_url=str(server.make_url("/")), api_key="anon-key")
        async with RestSampleStore(config) as store:
            device = await store.find_device_by_code("ABC123")
            samples = await store.query_samples("7d0c", limit=2)
            with pytest.raises(StoreWriteError) as excinfo:
                await store.insert_sample(make_sample("7d0c", 3))

    assert device is not None and device.device_code == "ABC123"
    assert [s.id for s in samples] == ["1", "2"]
    assert excinfo.value.status_code == 409
    assert seen[0]["apikey"] == "anon-key"
    assert seen[0]["authorization"] == "Bearer anon-key"
    assert seen[0]["query"]["device_code"] == "eq.ABC123"
    assert "anon-key" not in caplog.text
    assert "Bearer <redacted>" in caplog.text
