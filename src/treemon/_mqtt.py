"""Internal MQTT endpoint parsing and threaded runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt

from treemon._constants import MQTT_PASSWORD_PLACEHOLDER, MQTT_USERNAME_PLACEHOLDER
from treemon.exceptions import TreeMonSubscriptionError, TreeMonTransportError
from treemon.state.events import ConnectionEvent, ConnectionEventKind

_DEFAULT_PORTS: dict[str, int] = {"mqtt": 1883, "tcp": 1883, "mqtts": 8883, "ssl": 8883, "ws": 80, "wss": 443}


@dataclass(frozen=True)
class BrokerEndpoint:
    """Connection details derived from a broker URL."""

    host: str
    port: int
    transport: str
    path: str
    tls: bool


@dataclass(frozen=True)
class MqttCredentials:
    username: str | None = None
    password: str | None = None

    def effective(self) -> tuple[str | None, str | None]:
        """Drop empty and placeholder values; those are never sent to the broker."""
        username = self.username if self.username and self.username != MQTT_USERNAME_PLACEHOLDER else None
        password = self.password if self.password and self.password != MQTT_PASSWORD_PLACEHOLDER else None
        return username, password


@dataclass(frozen=True)
class MqttOptions:
    topic_pattern: str
    qos: int = 0
    connect_timeout: float = 10.0
    reconnect_period: float = 5.0
    keepalive: int = 60


def parse_broker_url(url: str) -> BrokerEndpoint:
    value = url.strip()
    if not value:
        raise ValueError("Broker URL is empty")
    if "://" not in value:
        value = f"mqtt://{value}"

    parts = urlsplit(value)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"Unsupported broker URL scheme: {scheme!r}")
    if not parts.hostname:
        raise ValueError(f"Broker URL has no host: {url!r}")

    websockets = scheme in {"ws", "wss"}
    return BrokerEndpoint(
        host=parts.hostname,
        port=parts.port or _DEFAULT_PORTS[scheme],
        transport="websockets" if websockets else "tcp",
        path=(parts.path or "/mqtt") if websockets else "",
        tls=scheme in {"mqtts", "ssl", "wss"},
    )


def subscription_failure(requested_qos: int, reason_codes: list[Any]) -> str | None:
    """Describe a rejected or downgraded subscription, or ``None`` if granted as requested."""
    for code in reason_codes:
        value = int(getattr(code, "value", code))
        if getattr(code, "is_failure", value >= 0x80):
            return f"Broker rejected subscription (code {value})"
        if value < requested_qos:
            return f"Broker downgraded subscription to QoS {value} (requested {requested_qos})"
    return None


class MqttRuntime:
    """Threaded paho-mqtt runtime that emits lifecycle events onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        on_event: Callable[[ConnectionEvent], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._on_event = on_event
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._attempts = 0
        self._last_kind: ConnectionEventKind | None = None

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def _emit(self, event: ConnectionEvent) -> None:
        if not self._running:
            return
        self._last_kind = event.kind
        self._loop.call_soon_threadsafe(self._on_event, event)

    def start(self, endpoint: BrokerEndpoint, credentials: MqttCredentials, options: MqttOptions) -> None:
        """Start the network loop; connection happens asynchronously on the paho thread."""
        self.stop()
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s transport=%s topic=%s",
            endpoint.host,
            endpoint.port,
            endpoint.transport,
            options.topic_pattern,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            transport=endpoint.transport,
            protocol=mqtt.MQTTv311,
        )
        client.enable_logger(self._logger)
        username, password = credentials.effective()
        if username is not None:
            client.username_pw_set(username, password)
        if endpoint.transport == "websockets":
            client.ws_set_options(path=endpoint.path)
        if endpoint.tls:
            client.tls_set()
        client.connect_timeout = options.connect_timeout
        period = max(1, int(round(options.reconnect_period)))
        client.reconnect_delay_set(min_delay=period, max_delay=period)

        def on_pre_connect(_c: mqtt.Client, _userdata: Any) -> None:
            self._attempts += 1
            if self._attempts == 1:
                self._emit(ConnectionEvent(kind=ConnectionEventKind.CONNECTING))
            elif self._last_kind != ConnectionEventKind.RECONNECTING:
                self._emit(ConnectionEvent(kind=ConnectionEventKind.RECONNECTING))

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.is_failure:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                self._emit(
                    ConnectionEvent.error(
                        TreeMonTransportError(
                            f"MQTT Error: connection refused ({reason_code}).",
                            reason=str(reason_code),
                        )
                    )
                )
                return
            self._logger.debug("MQTT connected successfully reason=%s", reason_code)
            self._emit(ConnectionEvent(kind=ConnectionEventKind.CONNECTED))
            self._logger.debug("MQTT subscribing topic=%s qos=%s", options.topic_pattern, options.qos)
            c.subscribe(options.topic_pattern, qos=options.qos)

        def on_connect_fail(_c: mqtt.Client, _userdata: Any) -> None:
            self._logger.debug("MQTT connect attempt failed host=%s", endpoint.host)
            self._emit(
                ConnectionEvent.error(
                    TreeMonTransportError(f"MQTT Error: could not connect to {endpoint.host}:{endpoint.port}.")
                )
            )

        def on_subscribe(
            _c: mqtt.Client,
            _userdata: Any,
            _mid: int,
            reason_code_list: list[Any],
            _properties: Any,
        ) -> None:
            failure = subscription_failure(options.qos, reason_code_list)
            if failure is None:
                self._logger.debug("MQTT subscription granted topic=%s", options.topic_pattern)
                return
            self._logger.warning("MQTT subscription failed topic=%s: %s", options.topic_pattern, failure)
            exc = TreeMonSubscriptionError(
                f"Failed to subscribe to {options.topic_pattern}: {failure}.",
                reason=failure,
            )
            self._emit(
                ConnectionEvent(
                    kind=ConnectionEventKind.SUBSCRIBE_ERROR,
                    reason=str(exc),
                    topic=options.topic_pattern,
                    exception=exc,
                )
            )

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._emit(ConnectionEvent.message(msg.topic, bytes(msg.payload)))

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            # A close after stop() is voluntary; _emit drops it.
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)
                self._emit(ConnectionEvent(kind=ConnectionEventKind.RECONNECTING, reason=str(reason_code)))

        client.on_pre_connect = on_pre_connect
        client.on_connect = on_connect
        client.on_connect_fail = on_connect_fail
        client.on_subscribe = on_subscribe
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        self._client = client
        self._running = True
        self._attempts = 0
        self._last_kind = None

        client.connect_async(endpoint.host, endpoint.port, keepalive=options.keepalive)
        client.loop_start()
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Force-close the current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        # Stop the network thread first so nothing is drained or retried; the
        # DISCONNECT is then written inline and the socket closed.
        try:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
        finally:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
