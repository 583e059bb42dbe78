"""MQTT fan-out of store insert events.

Writers publish every accepted insert on ``<prefix>/<table>``; viewers
subscribe to ``<prefix>/#`` and receive the decoded :class:`InsertEvent`
on their asyncio loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from typing import Any, cast

import paho.mqtt.client as mqtt
from pydantic import ValidationError

from locatr.config import LocatrConfig
from locatr.exceptions import LocatrError
from locatr.models.events import InsertEvent
from locatr.store.base import InsertCallback, InsertSubscription, SubscriptionRegistry


def encode_insert_event(event: InsertEvent) -> bytes:
    """Serialize an insert event to its JSON wire form."""
    return json.dumps(event.to_payload(), separators=(",", ":"), default=str).encode("utf-8")


def decode_insert_event(payload: bytes) -> InsertEvent:
    """Parse an MQTT payload into an :class:`InsertEvent`."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LocatrError(f"insert event payload is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise LocatrError("insert event payload decoded to non-object JSON")
    try:
        return InsertEvent.model_validate(parsed)
    except ValidationError as exc:
        raise LocatrError(f"malformed insert event: {exc}") from exc


class MqttInsertFeed:
    """Threaded paho-mqtt runtime that emits insert events onto an asyncio loop."""

    def __init__(
        self,
        config: LocatrConfig,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._registry = SubscriptionRegistry()

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    @property
    def subscription_count(self) -> int:
        return len(self._registry)

    def start(self) -> None:
        """Connect and subscribe to every table topic under the prefix."""
        self.stop()
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        config = self._config
        wildcard = f"{config.mqtt_topic_prefix.rstrip('/')}/#"
        client_id = f"locatr-{secrets.token_hex(6)}"
        self._logger.debug(
            "MQTT feed start requested host=%s port=%s topic=%s client_id=%s",
            config.mqtt_host,
            config.mqtt_port,
            wildcard,
            client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s, subscribing topic=%s", reason_code, wildcard)
            c.subscribe(wildcard, qos=1)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                event = decode_insert_event(msg.payload)
            except LocatrError:
                self._logger.debug("MQTT payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._logger.debug("Received insert topic=%s table=%s", msg.topic, event.table)
            loop = self._loop
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(self.dispatch, event)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def publish(self, event: InsertEvent) -> None:
        """Fan out *event* to every subscriber of its table."""
        client = self._client
        if client is None or not self._running:
            self._logger.debug("MQTT feed not running; insert on table=%s not published", event.table)
            return
        topic = self._config.topic_for(event.table)
        info = client.publish(topic, encode_insert_event(event), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("MQTT publish to %s failed rc=%s", topic, info.rc)

    def subscribe_inserts(self, table: str, callback: InsertCallback) -> InsertSubscription:
        return self._registry.add(table, callback)

    def unsubscribe(self, subscription: InsertSubscription) -> None:
        self._registry.remove(subscription)

    def dispatch(self, event: InsertEvent) -> None:
        """Deliver *event* to local subscribers (runs on the asyncio loop)."""
        self._registry.dispatch(event)
