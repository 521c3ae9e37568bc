"""History refresh scheduling.

Owns:
- the Idle/Scheduled refresh timer (at most one armed at any instant)
- immediate fetches when the active sensor or measurement kind changes
- the last-writer-wins-by-issue-order policy for overlapping fetches
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from treemon.exceptions import TreeMonError
from treemon.history.client import HistoricalQueryClient
from treemon.models.history import HistoryResult
from treemon.models.measurement import MeasurementKind

_logger = logging.getLogger(__name__)

TIMER_TASK_NAME = "treemon-refresh-timer"
FETCH_TASK_NAME = "treemon-history-fetch"

_UNSET: Any = object()


class SchedulerState(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class RefreshConfig:
    auto_refresh_enabled: bool = True
    period_seconds: float = 5 * 60.0


@dataclass(frozen=True)
class HistoryRequest:
    """One issued fetch. ``issue`` grows monotonically per tracker."""

    issue: int
    sensor_id: str | None
    kind: MeasurementKind

    @property
    def key(self) -> tuple[str | None, MeasurementKind]:
        return self.sensor_id, self.kind


class HistoryTracker:
    """Runs fetches and decides which completed response becomes visible.

    A response is applied only if no request for a different (sensor id,
    kind) pair has been issued since it, and no newer response for its pair
    has been applied already. Switching away and back (A, B, A) therefore
    discards the first A. Discarding is the only cancellation of an
    in-flight query.
    """

    def __init__(
        self,
        client: HistoricalQueryClient,
        *,
        on_result: Callable[[HistoryResult], None] | None = None,
    ) -> None:
        self._client = client
        self._on_result = on_result
        self._issued = 0
        self._applied_issue = 0
        # Issue at which the selected (sensor id, kind) pair last changed.
        self._key_changed_issue = 0
        self._latest: HistoryRequest | None = None
        self._result = HistoryResult()
        self._closed = False

    @property
    def result(self) -> HistoryResult:
        return self._result

    @property
    def latest(self) -> HistoryRequest | None:
        return self._latest

    def close(self) -> None:
        self._closed = True

    def issue(self, sensor_id: str | None, kind: MeasurementKind) -> HistoryRequest:
        """Register a new request; it supersedes every earlier one."""
        self._issued += 1
        request = HistoryRequest(issue=self._issued, sensor_id=sensor_id, kind=kind)
        previous = self._latest
        self._latest = request

        keep_points = previous is not None and previous.key == request.key
        if not keep_points:
            self._key_changed_issue = request.issue
        self._publish(
            HistoryResult(
                sensor_id=sensor_id,
                measurement_kind=kind,
                points=self._result.points if keep_points else (),
                loading=bool(sensor_id),
            )
        )
        return request

    async def run(self, request: HistoryRequest) -> None:
        """Execute *request* and offer its outcome to the race policy."""
        if not request.sensor_id:
            self._complete(request, HistoryResult(sensor_id=None, measurement_kind=request.kind))
            return
        try:
            points = await self._client.fetch(request.sensor_id, request.kind)
        except TreeMonError as exc:
            _logger.debug("History fetch failed sensor=%s kind=%s: %s", request.sensor_id, request.kind, exc)
            outcome = HistoryResult(sensor_id=request.sensor_id, measurement_kind=request.kind, error=str(exc))
        except Exception as exc:
            # A request never stays loading.
            _logger.exception("Unexpected history fetch failure sensor=%s kind=%s", request.sensor_id, request.kind)
            outcome = HistoryResult(
                sensor_id=request.sensor_id,
                measurement_kind=request.kind,
                error=f"Unexpected error: {exc}",
            )
        else:
            outcome = HistoryResult(
                sensor_id=request.sensor_id,
                measurement_kind=request.kind,
                points=tuple(points),
            )
        self._complete(request, outcome)

    def _complete(self, request: HistoryRequest, outcome: HistoryResult) -> None:
        latest = self._latest
        if (
            self._closed
            or latest is None
            or latest.key != request.key
            or request.issue < self._key_changed_issue
            or request.issue < self._applied_issue
        ):
            _logger.debug(
                "Discarding stale history response issue=%s sensor=%s kind=%s",
                request.issue,
                request.sensor_id,
                request.kind,
            )
            return
        self._applied_issue = request.issue
        # A newer request for the same pair may still be in flight.
        self._publish(outcome.model_copy(update={"loading": latest.issue > request.issue}))

    def _publish(self, result: HistoryResult) -> None:
        self._result = result
        if self._on_result is not None:
            self._on_result(result)


class RefreshScheduler:
    """Keeps historical data in sync with the active selection and a periodic timer.

    State machine over :class:`SchedulerState`. Every input change disarms the
    current timer before re-evaluating, so at most one timer exists. The
    timer is armed only while auto-refresh is enabled and both a sensor id and
    a measurement kind are selected.
    """

    def __init__(
        self,
        tracker: HistoryTracker,
        *,
        config: RefreshConfig | None = None,
        kind: MeasurementKind | None = None,
    ) -> None:
        self._tracker = tracker
        self._config = config or RefreshConfig()
        self._auto_refresh = self._config.auto_refresh_enabled
        self._sensor_id: str | None = None
        self._kind = kind
        self._timer: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def state(self) -> SchedulerState:
        if self._timer is not None and not self._timer.done():
            return SchedulerState.SCHEDULED
        return SchedulerState.IDLE

    @property
    def sensor_id(self) -> str | None:
        return self._sensor_id

    @property
    def kind(self) -> MeasurementKind | None:
        return self._kind

    @property
    def auto_refresh(self) -> bool:
        return self._auto_refresh

    @property
    def result(self) -> HistoryResult:
        return self._tracker.result

    def select(self, *, sensor_id: str | None = _UNSET, kind: MeasurementKind | None = _UNSET) -> None:
        """Change the active sensor and/or kind; a change triggers an immediate fetch."""
        if self._closed:
            return
        new_sensor = self._sensor_id if sensor_id is _UNSET else (sensor_id or None)
        new_kind = self._kind if kind is _UNSET else kind
        if new_sensor == self._sensor_id and new_kind == self._kind:
            return

        self._disarm()
        self._sensor_id = new_sensor
        self._kind = new_kind
        self._trigger()
        self._evaluate()

    def set_auto_refresh(self, enabled: bool) -> None:
        if self._closed:
            return
        self._disarm()
        self._auto_refresh = enabled
        self._evaluate()

    def refresh_now(self) -> None:
        """Manual trigger for the current selection."""
        if self._closed:
            return
        self._trigger()

    def _trigger(self) -> None:
        if self._kind is None:
            return
        # Without a sensor the request completes empty and performs no I/O.
        request = self._tracker.issue(self._sensor_id, self._kind)
        _logger.debug("History fetch issued issue=%s sensor=%s kind=%s", request.issue, request.sensor_id, request.kind)
        self._spawn(self._tracker.run(request))

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=FETCH_TASK_NAME)
        self._inflight.add(task)
        task.add_done_callback(self._on_fetch_done)

    def _on_fetch_done(self, task: asyncio.Task[None]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("History fetch task crashed", exc_info=exc)

    def _evaluate(self) -> None:
        if self._closed or self._timer is not None:
            return
        if self._auto_refresh and self._sensor_id and self._kind is not None:
            self._timer = asyncio.get_running_loop().create_task(self._tick(), name=TIMER_TASK_NAME)
            _logger.debug("Refresh timer armed period=%ss", self._config.period_seconds)

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._config.period_seconds)
            _logger.debug("Refresh timer fired")
            self._trigger()

    def _disarm(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done():
            timer.cancel()
            _logger.debug("Refresh timer disarmed")

    def close(self) -> None:
        """Disarm the timer unconditionally and discard all outstanding responses."""
        self._closed = True
        self._disarm()
        self._tracker.close()
        for task in list(self._inflight):
            task.cancel()

    async def aclose(self) -> None:
        timer = self._timer
        pending = [t for t in (timer, *self._inflight) if t is not None]
        self.close()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
