"""Streaming transport lifecycle.

Owns:
- starting/stopping the threaded MQTT runtime
- the single writable :class:`ConnectivityState`
- an ordered async stream of :class:`ConnectionEvent`s for one dispatcher loop
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

from treemon._mqtt import MqttCredentials, MqttOptions, MqttRuntime, parse_broker_url
from treemon.exceptions import TreeMonTransportError
from treemon.state.events import ConnectionEvent, ConnectionEventKind, ConnectivityState

_logger = logging.getLogger(__name__)


class Runtime(Protocol):
    """Structural interface of the MQTT runtime, so tests can drive events without a broker."""

    @property
    def is_running(self) -> bool: ...

    def start(self, endpoint: Any, credentials: MqttCredentials, options: MqttOptions) -> None: ...

    def stop(self) -> None: ...


RuntimeFactory = Callable[[asyncio.AbstractEventLoop, Callable[[ConnectionEvent], None]], Runtime]


def _default_runtime_factory(
    loop: asyncio.AbstractEventLoop,
    on_event: Callable[[ConnectionEvent], None],
) -> Runtime:
    return MqttRuntime(loop=loop, on_event=on_event, logger=_logger)


class ConnectionManager:
    """Connect, subscribe, reconnect and surface errors as state transitions.

    Usage::

        manager = ConnectionManager()
        await manager.connect(url, MqttCredentials("user", "pw"), "base/#")
        async for event in manager.events():
            ...
        await manager.disconnect()

    Transport failures never raise; they arrive as ``error`` or
    ``reconnecting`` events. After :meth:`disconnect` no further events are
    delivered.
    """

    def __init__(self, *, runtime_factory: RuntimeFactory | None = None) -> None:
        self._runtime_factory = runtime_factory or _default_runtime_factory
        self._runtime: Runtime | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[ConnectionEvent | None] = asyncio.Queue()
        self._state = ConnectivityState.DISCONNECTED
        self._last_error: str | None = None
        self._closed = False

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def connect(
        self,
        endpoint: str,
        credentials: MqttCredentials,
        topic_pattern: str,
        *,
        qos: int = 0,
        connect_timeout: float = 10.0,
        reconnect_period: float = 5.0,
        keepalive: int = 60,
    ) -> ConnectionManager:
        """Start a transport session and return this manager as the event handle."""
        if self._closed:
            raise RuntimeError("ConnectionManager has been disconnected")
        loop = self._loop = asyncio.get_running_loop()
        options = MqttOptions(
            topic_pattern=topic_pattern,
            qos=qos,
            connect_timeout=connect_timeout,
            reconnect_period=reconnect_period,
            keepalive=keepalive,
        )
        self._dispatch(ConnectionEvent(kind=ConnectionEventKind.CONNECTING))

        try:
            broker = parse_broker_url(endpoint)
        except ValueError as exc:
            self._dispatch(ConnectionEvent.error(TreeMonTransportError(f"MQTT Error: {exc}.")))
            return self

        runtime = self._runtime_factory(loop, self._dispatch)
        previous = self._runtime
        started = loop.run_in_executor(None, runtime.start, broker, credentials, options)
        try:
            await asyncio.shield(started)
        except asyncio.CancelledError:
            # The executor thread cannot be interrupted; stop the runtime once start returns.
            started.add_done_callback(lambda future: _stop_after_start(loop, runtime, future))
            raise
        except Exception as exc:
            _logger.debug("MQTT runtime start failed", exc_info=True)
            self._dispatch(ConnectionEvent.error(TreeMonTransportError(f"MQTT Error: {exc}.")))
            return self
        if self._closed:
            # disconnect() ran while start was in flight.
            _logger.debug("Stopping MQTT runtime started after disconnect")
            await loop.run_in_executor(None, runtime.stop)
            return self
        self._runtime = runtime
        if previous is not None:
            await loop.run_in_executor(None, previous.stop)
        return self

    def _dispatch(self, event: ConnectionEvent) -> None:
        """Record a runtime event on the loop thread and enqueue it."""
        if self._closed:
            return
        if event.kind in (ConnectionEventKind.ERROR, ConnectionEventKind.SUBSCRIBE_ERROR):
            self._last_error = event.reason
        elif event.kind in (ConnectionEventKind.CONNECTED, ConnectionEventKind.RECONNECTING):
            self._last_error = None

        new_state = event.state
        if new_state is not None and new_state != self._state:
            _logger.debug("Connectivity %s -> %s", self._state, new_state)
            self._state = new_state
        self._queue.put_nowait(event)

    async def events(self) -> AsyncIterator[ConnectionEvent]:
        """Yield events in delivery order until the manager is disconnected."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def disconnect(self) -> None:
        """Force-close the session. Idempotent; nothing is emitted afterwards."""
        if self._closed:
            return
        self._closed = True
        runtime = self._runtime
        self._runtime = None
        try:
            if runtime is not None:
                loop = self._loop or asyncio.get_running_loop()
                await loop.run_in_executor(None, runtime.stop)
        except Exception:
            _logger.debug("MQTT runtime stop failed", exc_info=True)
        finally:
            self._state = ConnectivityState.DISCONNECTED
            self._queue.put_nowait(ConnectionEvent(kind=ConnectionEventKind.DISCONNECTED))
            self._queue.put_nowait(None)


def _stop_after_start(
    loop: asyncio.AbstractEventLoop,
    runtime: Runtime,
    started: asyncio.Future[None],
) -> None:
    if not started.cancelled() and started.exception() is not None:
        _logger.debug("MQTT runtime start failed after cancellation", exc_info=started.exception())
    stopping = loop.run_in_executor(None, runtime.stop)
    stopping.add_done_callback(_log_stop_failure)


def _log_stop_failure(future: asyncio.Future[None]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        _logger.debug("MQTT runtime stop failed", exc_info=exc)
