from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from treemon._mqtt import MqttCredentials, MqttOptions, MqttRuntime, parse_broker_url
from treemon.exceptions import TreeMonSubscriptionError, TreeMonTransportError
from treemon.state.events import ConnectionEvent, ConnectionEventKind


@dataclass
class _Reason:
    value: int
    is_failure: bool = False
    name: str = "Success"

    def __str__(self) -> str:
        return self.name


class _FakePahoClient:
    """Records configuration calls; tests invoke the registered ``on_*`` callbacks directly."""

    instances: list[_FakePahoClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.init_kwargs = kwargs
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.connect_timeout: float | None = None
        self.on_pre_connect: Any = None
        self.on_connect: Any = None
        self.on_connect_fail: Any = None
        self.on_subscribe: Any = None
        self.on_message: Any = None
        self.on_disconnect: Any = None
        _FakePahoClient.instances.append(self)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)

        def record(*args: Any, **kwargs: Any) -> None:
            self.calls.append((name, args, kwargs))

        return record

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]


@dataclass
class _Message:
    topic: str
    payload: bytes


@pytest.fixture
def paho_client(monkeypatch: pytest.MonkeyPatch) -> type[_FakePahoClient]:
    _FakePahoClient.instances = []
    monkeypatch.setattr(mqtt, "Client", _FakePahoClient)
    return _FakePahoClient


async def _started_runtime(
    *,
    url: str = "wss://broker.example/mqtt",
    credentials: MqttCredentials | None = None,
    qos: int = 0,
) -> tuple[MqttRuntime, _FakePahoClient, list[ConnectionEvent]]:
    events: list[ConnectionEvent] = []
    runtime = MqttRuntime(loop=asyncio.get_running_loop(), on_event=events.append)
    runtime.start(
        parse_broker_url(url),
        credentials or MqttCredentials("trees", "secret"),
        MqttOptions(topic_pattern="mapfeed/thws-trees/#", qos=qos),
    )
    return runtime, _FakePahoClient.instances[-1], events


async def _flush() -> None:
    await asyncio.sleep(0)
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_start_configures_websocket_tls_client(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, _ = await _started_runtime()

    assert runtime.is_running
    assert client.init_kwargs["transport"] == "websockets"
    assert client.connect_timeout == 10.0
    assert ("username_pw_set", ("trees", "secret"), {}) in client.calls
    assert ("ws_set_options", (), {"path": "/mqtt"}) in client.calls
    assert ("tls_set", (), {}) in client.calls
    assert ("reconnect_delay_set", (), {"min_delay": 5, "max_delay": 5}) in client.calls
    assert ("connect_async", ("broker.example", 443), {"keepalive": 60}) in client.calls
    assert client.names()[-1] == "loop_start"
    runtime.stop()


@pytest.mark.asyncio
async def test_placeholder_credentials_are_not_sent(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, _ = await _started_runtime(
        url="mqtt://broker.example",
        credentials=MqttCredentials("YOUR_MQTT_USERNAME", "YOUR_MQTT_PASSWORD"),
    )

    assert "username_pw_set" not in client.names()
    assert "tls_set" not in client.names()
    runtime.stop()


@pytest.mark.asyncio
async def test_pre_connect_reports_connecting_then_reconnecting_once(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime()

    client.on_pre_connect(client, None)
    client.on_pre_connect(client, None)
    client.on_pre_connect(client, None)
    await _flush()

    assert [e.kind for e in events] == [ConnectionEventKind.CONNECTING, ConnectionEventKind.RECONNECTING]
    runtime.stop()


@pytest.mark.asyncio
async def test_connack_success_reports_connected_and_subscribes(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime(qos=1)

    client.on_connect(client, None, None, _Reason(0), None)
    await _flush()

    assert [e.kind for e in events] == [ConnectionEventKind.CONNECTED]
    assert ("subscribe", ("mapfeed/thws-trees/#",), {"qos": 1}) in client.calls
    runtime.stop()


@pytest.mark.asyncio
async def test_connack_failure_reports_error(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime()

    client.on_connect(client, None, None, _Reason(135, is_failure=True, name="Not authorized"), None)
    await _flush()

    assert [e.kind for e in events] == [ConnectionEventKind.ERROR]
    assert events[0].reason == "MQTT Error: connection refused (Not authorized)."
    assert isinstance(events[0].exception, TreeMonTransportError)
    assert "subscribe" not in client.names()
    runtime.stop()


@pytest.mark.asyncio
async def test_connect_fail_reports_error(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime()

    client.on_connect_fail(client, None)
    await _flush()

    assert [e.kind for e in events] == [ConnectionEventKind.ERROR]
    assert events[0].reason == "MQTT Error: could not connect to broker.example:443."
    runtime.stop()


@pytest.mark.asyncio
async def test_suback_downgrade_and_denial_report_subscribe_errors(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime(qos=1)

    client.on_subscribe(client, None, 1, [_Reason(1)], None)
    client.on_subscribe(client, None, 2, [_Reason(0)], None)
    client.on_subscribe(client, None, 3, [_Reason(135, is_failure=True)], None)
    await _flush()

    assert [e.kind for e in events] == [ConnectionEventKind.SUBSCRIBE_ERROR, ConnectionEventKind.SUBSCRIBE_ERROR]
    assert events[0].reason == (
        "Failed to subscribe to mapfeed/thws-trees/#: Broker downgraded subscription to QoS 0 (requested 1)."
    )
    assert events[1].reason == "Failed to subscribe to mapfeed/thws-trees/#: Broker rejected subscription (code 135)."
    assert all(isinstance(e.exception, TreeMonSubscriptionError) for e in events)
    assert events[0].state is None
    runtime.stop()


@pytest.mark.asyncio
async def test_message_and_unexpected_disconnect(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime()

    client.on_message(client, None, _Message("mapfeed/thws-trees/pulse-01", b'{"fields": {}}'))
    client.on_disconnect(client, None, None, _Reason(141, is_failure=True, name="Keep alive timeout"), None)
    await _flush()

    assert [e.kind for e in events] == [ConnectionEventKind.MESSAGE, ConnectionEventKind.RECONNECTING]
    assert events[0].topic == "mapfeed/thws-trees/pulse-01"
    assert events[0].payload == b'{"fields": {}}'
    assert events[1].reason == "Keep alive timeout"
    runtime.stop()


@pytest.mark.asyncio
async def test_stop_force_closes_and_silences_late_callbacks(paho_client: type[_FakePahoClient]) -> None:
    runtime, client, events = await _started_runtime()

    runtime.stop()
    client.on_disconnect(client, None, None, _Reason(0), None)
    client.on_connect_fail(client, None)
    client.on_message(client, None, _Message("mapfeed/thws-trees/pulse-01", b"{}"))
    await _flush()

    assert events == []
    assert runtime.is_running is False
    names = client.names()
    assert names.index("loop_stop") < names.index("disconnect")
    runtime.stop()
    assert client.names().count("loop_stop") == 1
