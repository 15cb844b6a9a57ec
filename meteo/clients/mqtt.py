from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Callable
from urllib.parse import urlparse

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[bytes, str], Any]


def parse_broker_url(url: str) -> tuple[str, int, bool]:
    """``mqtt://host:1883`` -> (host, port, tls)."""
    parsed = urlparse(url if "://" in url else f"mqtt://{url}")
    tls = parsed.scheme in {"mqtts", "ssl"}
    host = parsed.hostname or "localhost"
    port = parsed.port or (8883 if tls else 1883)
    return host, port, tls


class MqttTransport:
    """Subscribes to the device topic and hands messages to the event loop.

    paho runs its network loop in a background thread; every message is passed
    to ``handler`` on ``loop`` via ``call_soon_threadsafe`` so the ingestion
    pipeline only ever runs on the loop thread.
    """

    def __init__(
        self,
        *,
        url: str,
        topic: str,
        handler: MessageHandler,
        loop: asyncio.AbstractEventLoop,
        username: str | None = None,
        password: str | None = None,
        client_id_prefix: str = "meteo-backend",
    ) -> None:
        self._url = url
        self._host, self._port, self._tls = parse_broker_url(url)
        self._topic = topic
        self._handler = handler
        self._loop = loop
        self._connected = False

        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{client_id_prefix}-{secrets.token_hex(4)}",
            protocol=mqtt.MQTTv311,
        )
        if username:
            self._client.username_pw_set(username, password or None)
        if self._tls:
            self._client.tls_set()

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message
        self._client.on_subscribe = self._on_subscribe

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        logger.info("[MQTT] connecting to %s", self._url)
        # Non-blocking: paho keeps retrying in its own thread if the broker is down.
        self._client.connect_async(self._host, self._port, keepalive=60)
        self._client.loop_start()

    def stop(self) -> None:
        try:
            self._client.disconnect()
        finally:
            self._client.loop_stop()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if reason_code.is_failure:
            self._connected = False
            logger.error("[MQTT] connection refused: %s", reason_code)
            return
        self._connected = True
        logger.info("[MQTT] connected to %s", self._url)
        client.subscribe(self._topic)

    def _on_subscribe(self, client, userdata, mid, reason_codes, properties=None) -> None:
        for rc in reason_codes:
            if rc.is_failure:
                logger.error("[MQTT] subscribe error: %s", rc, extra={"topic": self._topic})
                return
        logger.info("[MQTT] subscribed to %s", self._topic)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        self._connected = False
        logger.warning("[MQTT] connection closed: %s", reason_code)

    def _on_message(self, client, userdata, msg) -> None:
        try:
            self._loop.call_soon_threadsafe(self._handler, bytes(msg.payload), msg.topic)
        except RuntimeError:
            # Loop already closed during shutdown.
            logger.debug("[MQTT] dropping message, event loop closed", extra={"topic": msg.topic})
