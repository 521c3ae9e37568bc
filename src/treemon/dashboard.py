"""Dashboard composition: the single owner of the current view.

Wires the connection manager, the live snapshot aggregator and the refresh
scheduler together behind one dispatcher loop, and releases every resource on
teardown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp
from pydantic import Field

from treemon._constants import WAITING_FOR_DATA_TEXT
from treemon._mqtt import MqttCredentials
from treemon.config import TreeMonConfig
from treemon.connection import ConnectionManager
from treemon.exceptions import TreeMonError
from treemon.history.client import HistoricalQueryClient, InfluxQueryClient
from treemon.ingestion.live import LiveSnapshotAggregator
from treemon.models._base import TreeMonBaseModel
from treemon.models.history import HistoryResult
from treemon.models.measurement import MeasurementKind
from treemon.models.snapshot import LiveSnapshot
from treemon.scheduling.refresh import HistoryTracker, RefreshConfig, RefreshScheduler
from treemon.state.events import ConnectionEvent, ConnectionEventKind, ConnectivityState
from treemon.timefmt import format_relative_time

_logger = logging.getLogger(__name__)

TICKER_TASK_NAME = "treemon-relative-time"


class DashboardState(TreeMonBaseModel):
    """Immutable view of everything the dashboard shows. Replaced as a whole."""

    connectivity: ConnectivityState = ConnectivityState.DISCONNECTED
    error: str | None = None
    live: LiveSnapshot = Field(default_factory=LiveSnapshot)
    relative_text: str = WAITING_FOR_DATA_TEXT
    active_sensor_id: str | None = None
    selected_kind: MeasurementKind = MeasurementKind.RESISTANCE
    auto_refresh: bool = True
    history: HistoryResult = Field(default_factory=HistoryResult)


def status_text(state: ConnectivityState) -> str:
    if state == ConnectivityState.CONNECTED:
        return "Connected"
    if state in (ConnectivityState.CONNECTING, ConnectivityState.RECONNECTING):
        return "Connecting..."
    return "Disconnected"


class RelativeTimeTicker:
    """Recomputes the "last update" text on a fixed interval while a timestamp is known."""

    def __init__(
        self,
        *,
        interval: float,
        on_text: Callable[[str], None],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._interval = interval
        self._on_text = on_text
        self._clock = clock
        self._timestamp: str | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _text(self, timestamp: str) -> str:
        now = self._clock() if self._clock is not None else None
        return format_relative_time(timestamp, now=now)

    def update(self, timestamp: str | None) -> None:
        if timestamp == self._timestamp and (timestamp is None or self.is_running):
            return
        self.close()
        self._timestamp = timestamp
        if timestamp is None:
            self._on_text(WAITING_FOR_DATA_TEXT)
            return
        self._on_text(self._text(timestamp))
        self._task = asyncio.get_running_loop().create_task(self._run(timestamp), name=TICKER_TASK_NAME)

    async def _run(self, timestamp: str) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._on_text(self._text(timestamp))

    def close(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def aclose(self) -> None:
        task = self._task
        self.close()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task


class TreeMonitorDashboard:
    """Live tree-sensor dashboard.

    Usage::

        async with TreeMonitorDashboard(TreeMonConfig.from_env()) as dashboard:
            await dashboard.run()

    ``run()`` consumes connection events until the connection is closed.
    Leaving the ``async with`` block disconnects the transport, disarms the
    refresh timer and stops the relative-time ticker, each independently of
    failures in the others.
    """

    def __init__(
        self,
        config: TreeMonConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        connection: ConnectionManager | None = None,
        history_client: HistoricalQueryClient | None = None,
        on_state: Callable[[DashboardState], None] | None = None,
        clock: Callable[[], datetime] | None = None,
        kind: MeasurementKind = MeasurementKind.RESISTANCE,
    ) -> None:
        self._config = config
        self._http_session = session
        self._connection = connection or ConnectionManager()
        self._history_client = history_client
        self._on_state = on_state
        self._clock = clock
        self._aggregator = LiveSnapshotAggregator(field_map=config.field_map)
        self._state = DashboardState(selected_kind=kind, auto_refresh=config.auto_refresh)
        self._scheduler: RefreshScheduler | None = None
        self._ticker: RelativeTimeTicker | None = None
        self._exit_stack: contextlib.AsyncExitStack | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TreeMonitorDashboard:
        stack = contextlib.AsyncExitStack()
        # Callbacks run in reverse; each one runs even if a later one raised.
        client = self._history_client
        if client is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
                stack.push_async_callback(self._close_http_session)
            client = InfluxQueryClient(self._config, self._http_session)
        tracker = HistoryTracker(client, on_result=self._on_history)
        self._scheduler = RefreshScheduler(
            tracker,
            config=RefreshConfig(
                auto_refresh_enabled=self._config.auto_refresh,
                period_seconds=self._config.refresh_period,
            ),
            kind=self._state.selected_kind,
        )
        self._ticker = RelativeTimeTicker(
            interval=self._config.relative_time_interval,
            on_text=self._on_relative_text,
            clock=self._clock,
        )
        stack.push_async_callback(self._ticker.aclose)
        stack.push_async_callback(self._scheduler.aclose)
        stack.push_async_callback(self._connection.disconnect)
        self._exit_stack = stack
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release transport, refresh timer and ticker. Idempotent."""
        stack = self._exit_stack
        self._exit_stack = None
        if stack is not None:
            await stack.aclose()

    async def _close_http_session(self) -> None:
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> DashboardState:
        return self._state

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._require_started()

    def _require_started(self) -> RefreshScheduler:
        if self._scheduler is None:
            raise TreeMonError("Dashboard not started. Use 'async with TreeMonitorDashboard(...) as dashboard:'")
        return self._scheduler

    def _replace(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        if self._on_state is not None:
            self._on_state(self._state)

    def _on_history(self, result: HistoryResult) -> None:
        self._replace(history=result)

    def _on_relative_text(self, text: str) -> None:
        if text != self._state.relative_text:
            self._replace(relative_text=text)

    # ------------------------------------------------------------------
    # Dispatcher loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Connect and dispatch connection events until disconnected."""
        self._require_started()
        await self._connection.connect(
            self._config.broker_url,
            MqttCredentials(self._config.mqtt_username, self._config.mqtt_password),
            self._config.base_topic,
            qos=self._config.subscribe_qos,
            connect_timeout=self._config.connect_timeout,
            reconnect_period=self._config.reconnect_period,
            keepalive=self._config.mqtt_keepalive,
        )
        async for event in self._connection.events():
            self.handle_event(event)

    def handle_event(self, event: ConnectionEvent) -> None:
        """Fold one connection event into the dashboard state."""
        if event.kind == ConnectionEventKind.MESSAGE:
            self._handle_message(event)
            return

        # The manager may already be ahead of the queue; follow the event.
        changes: dict[str, Any] = {"connectivity": event.state or self._state.connectivity}
        if event.kind in (ConnectionEventKind.ERROR, ConnectionEventKind.SUBSCRIBE_ERROR):
            changes["error"] = event.reason
        elif event.kind in (
            ConnectionEventKind.CONNECTING,
            ConnectionEventKind.CONNECTED,
            ConnectionEventKind.RECONNECTING,
        ):
            changes["error"] = None
        self._replace(**changes)

    def _handle_message(self, event: ConnectionEvent) -> None:
        if event.payload is None or event.topic is None:
            return
        snapshot = self._aggregator.apply_message(event.payload, event.topic)
        if snapshot is None:
            return

        sensor_changed = snapshot.last_updated_sensor_id != self._state.active_sensor_id
        self._replace(live=snapshot, active_sensor_id=snapshot.last_updated_sensor_id)
        if self._ticker is not None:
            self._ticker.update(snapshot.last_updated_timestamp)
        if sensor_changed:
            _logger.debug("Active sensor changed to %s", snapshot.last_updated_sensor_id)
            self.scheduler.select(sensor_id=snapshot.last_updated_sensor_id)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def select_kind(self, kind: MeasurementKind) -> None:
        self._replace(selected_kind=kind)
        self.scheduler.select(kind=kind)

    def set_auto_refresh(self, enabled: bool) -> None:
        self._replace(auto_refresh=enabled)
        self.scheduler.set_auto_refresh(enabled)

    def refresh_history(self) -> None:
        self.scheduler.refresh_now()
