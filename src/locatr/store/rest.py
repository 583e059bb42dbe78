"""PostgREST-backed sample store.

Talks to a PostgREST (or Supabase ``/rest/v1``) endpoint over aiohttp and
fans insert events out through an optional :class:`MqttInsertFeed`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from locatr._constants import HISTORY_LIMIT
from locatr._redact import redact_for_log, redact_url
from locatr.config import LocatrConfig
from locatr.exceptions import LocatrConfigError, StoreError, StoreReadError, StoreWriteError
from locatr.models.device import Device, normalize_device_code
from locatr.models.events import InsertEvent
from locatr.models.sample import LocationSample
from locatr.store.base import InsertCallback, InsertSubscription
from locatr.store.mqtt import MqttInsertFeed

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by :class:`RestSampleStore`.

    Keeps the store testable with in-memory doubles while the production
    implementation (:class:`PostgrestTransport`) stays concrete.
    """

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        ...


class PostgrestTransport:
    """HTTP transport issuing PostgREST table requests."""

    def __init__(self, config: LocatrConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self, prefer: str | None) -> dict[str, str]:
        headers = {
            "apikey": self._config.api_key,
            "authorization": f"Bearer {self._config.api_key}",
            "accept": "application/json",
            "content-type": "application/json",
        }
        if prefer:
            headers["prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        """Send one table request and return the decoded rows."""
        url = f"{self._config.rest_url}/{table}"
        headers = self._headers(prefer)
        body = None if payload is None else json.dumps(payload, default=str)

        _logger.debug(
            "%s %s params=%s headers=%s",
            method,
            redact_url(url),
            redact_for_log(dict(params or {})),
            redact_for_log(headers),
        )

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params or {}),
                data=body,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    raise StoreError(
                        f"HTTP {resp.status} from {table}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=table,
                    )
        except StoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreError(f"Request to {table} failed: {exc}", endpoint=table) from exc

        if not text.strip():
            return []
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Invalid JSON from {table}: {text[:200]}", endpoint=table) from exc

        if isinstance(decoded, dict):
            return [decoded]
        if not isinstance(decoded, list) or not all(isinstance(row, dict) for row in decoded):
            raise StoreError(f"Unexpected payload shape from {table}", endpoint=table)
        return decoded


def _as_read_error(exc: StoreError) -> StoreReadError:
    return StoreReadError(str(exc), status_code=exc.status_code, endpoint=exc.endpoint)


def _as_write_error(exc: StoreError) -> StoreWriteError:
    return StoreWriteError(str(exc), status_code=exc.status_code, endpoint=exc.endpoint)


class RestSampleStore:
    """Sample store over PostgREST.

    Usage::

        async with RestSampleStore(config) as store:
            device = await store.find_device_by_code("ABC123")
    """

    def __init__(
        self,
        config: LocatrConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        feed: MqttInsertFeed | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._feed = feed
        self._owns_feed = False

    async def __aenter__(self) -> RestSampleStore:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = PostgrestTransport(self._config, self._http_session)
        if self._feed is None and self._config.mqtt_enabled:
            self._feed = MqttInsertFeed(self._config, logger=_logger)
            self._owns_feed = True
        if self._feed is not None and not self._feed.is_running:
            self._feed.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._feed is not None and self._owns_feed:
            self._feed.stop()
            self._feed = None
            self._owns_feed = False
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise StoreError("Store not initialized. Use 'async with RestSampleStore(...) as store:'")
        return self._transport

    def _require_feed(self) -> MqttInsertFeed:
        if self._feed is None:
            raise LocatrConfigError("Insert subscriptions need the MQTT feed (set mqtt_enabled)")
        return self._feed

    async def find_device_by_code(self, code: str) -> Device | None:
        transport = self._require_transport()
        params = {
            "select": "*",
            "device_code": f"eq.{normalize_device_code(code)}",
            "limit": "1",
        }
        try:
            rows = await transport.request("GET", self._config.devices_table, params=params)
        except StoreError as exc:
            raise _as_read_error(exc) from exc
        if not rows:
            return None
        try:
            return Device.model_validate(rows[0])
        except ValidationError as exc:
            raise StoreReadError(f"Malformed device row: {exc}", endpoint=self._config.devices_table) from exc

    async def insert_device(self, code: str, name: str) -> Device:
        """Upsert on the unique ``device_code``; concurrent registrations converge."""
        transport = self._require_transport()
        normalized = normalize_device_code(code)
        try:
            rows = await transport.request(
                "POST",
                self._config.devices_table,
                params={"on_conflict": "device_code"},
                payload={"device_code": normalized, "device_name": name},
                prefer="return=representation,resolution=ignore-duplicates",
            )
        except StoreError as exc:
            raise _as_write_error(exc) from exc

        if rows:
            try:
                return Device.model_validate(rows[0])
            except ValidationError as exc:
                raise StoreWriteError(
                    f"Malformed device row: {exc}",
                    endpoint=self._config.devices_table,
                ) from exc

        # Duplicate ignored: another session registered the code first.
        _logger.debug("Device code=%s already registered; re-reading", normalized)
        existing = await self.find_device_by_code(normalized)
        if existing is None:
            raise StoreWriteError(
                f"Device {normalized} neither inserted nor found",
                endpoint=self._config.devices_table,
            )
        return existing

    async def insert_sample(self, sample: LocationSample) -> LocationSample:
        transport = self._require_transport()
        table = self._config.samples_table
        try:
            rows = await transport.request(
                "POST",
                table,
                payload=sample.to_record(),
                prefer="return=representation",
            )
        except StoreError as exc:
            raise _as_write_error(exc) from exc

        if rows:
            try:
                stored = LocationSample.model_validate(rows[0])
            except ValidationError as exc:
                raise StoreWriteError(f"Malformed sample row: {exc}", endpoint=table) from exc
        else:
            stored = sample

        if self._feed is not None:
            try:
                self._feed.publish(InsertEvent(table=table, record=rows[0] if rows else stored.to_record()))
            except Exception:
                _logger.warning("Insert fan-out failed for device_id=%s", stored.device_id, exc_info=True)
        return stored

    async def query_samples(self, device_id: str, *, limit: int = HISTORY_LIMIT) -> list[LocationSample]:
        """Order descending and limit server-side, then flip to ascending."""
        transport = self._require_transport()
        table = self._config.samples_table
        params = {
            "select": "*",
            "device_id": f"eq.{device_id}",
            "order": "timestamp.desc",
            "limit": str(limit),
        }
        try:
            rows = await transport.request("GET", table, params=params)
        except StoreError as exc:
            raise _as_read_error(exc) from exc
        try:
            samples = [LocationSample.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise StoreReadError(f"Malformed sample row: {exc}", endpoint=table) from exc
        samples.reverse()
        return samples

    def subscribe_inserts(self, table: str, callback: InsertCallback) -> InsertSubscription:
        return self._require_feed().subscribe_inserts(table, callback)

    def unsubscribe(self, subscription: InsertSubscription) -> None:
        if self._feed is not None:
            self._feed.unsubscribe(subscription)
