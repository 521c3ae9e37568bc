#!/usr/bin/env python3
"""Console live monitor for the tree-sensor dashboard core.

Connects to the MQTT broker, prints connectivity transitions, live snapshot
updates and historical query outcomes as they happen. Configuration comes from
``TREEMON_*`` environment variables; flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from treemon import (  # noqa: E402
    DashboardState,
    MeasurementKind,
    TreeMonConfig,
    TreeMonitorDashboard,
    format_datetime,
    status_text,
)
from treemon._redact import redact_for_log  # noqa: E402
from treemon.history.client import InfluxQueryClient, describe_request  # noqa: E402

_LOG = logging.getLogger("live_monitor")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live monitor for tree sensor telemetry.")
    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in MeasurementKind],
        default=MeasurementKind.RESISTANCE.value,
        help="Measurement kind to chart historically.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--no-auto-refresh",
        action="store_true",
        help="Disable periodic historical refresh.",
    )
    parser.add_argument(
        "--print-query",
        metavar="SENSOR_ID",
        help="Print the historical query for SENSOR_ID (token redacted) and exit.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging.")
    return parser.parse_args()


class _Printer:
    """Prints only the parts of the state that changed."""

    def __init__(self) -> None:
        self._last: DashboardState | None = None

    def __call__(self, state: DashboardState) -> None:
        last = self._last
        self._last = state
        if last is None or state.connectivity != last.connectivity or state.error != last.error:
            line = f"[status] {status_text(state.connectivity)}"
            if state.error:
                line += f" - {state.error}"
            print(line, flush=True)
        if last is None or state.live != last.live:
            if not state.live.is_empty:
                values = {kind.value: value for kind, value in state.live.values.items()}
                print(
                    f"[live] {state.live.last_raw_sensor_name or state.live.last_updated_sensor_id} "
                    f"{json.dumps(values)} ({state.relative_text})",
                    flush=True,
                )
        if last is None or state.history != last.history:
            history = state.history
            if history.loading:
                print("[history] Loading historical data...", flush=True)
            elif history.error:
                print(f"[history] Error: {history.error}", flush=True)
            elif history.has_data:
                newest = history.points[-1]
                print(
                    f"[history] {len(history.points)} point(s) for {history.measurement_kind} "
                    f"from {history.sensor_id}; last {newest.value} at {format_datetime(newest.timestamp)}",
                    flush=True,
                )
            elif history.sensor_id:
                print(f"[history] No historical data for {history.sensor_id} in range.", flush=True)


async def _run(config: TreeMonConfig, kind: MeasurementKind, duration: int) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)

    async with TreeMonitorDashboard(config, on_state=_Printer(), kind=kind) as dashboard:
        runner = asyncio.create_task(dashboard.run())
        try:
            if duration > 0:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=duration)
            else:
                await stop.wait()
        finally:
            await dashboard.connection.disconnect()
            await runner


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    overrides = {"auto_refresh": False} if args.no_auto_refresh else {}
    config = TreeMonConfig.from_env(**overrides)
    kind = MeasurementKind(args.kind)

    if args.print_query:
        client = InfluxQueryClient(config, None)  # type: ignore[arg-type]
        print(json.dumps(redact_for_log(describe_request(client, args.print_query, kind)), indent=2))
        return 0

    _LOG.info("Connecting to %s topic=%s", config.broker_url, config.base_topic)
    asyncio.run(_run(config, kind, args.duration))
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
