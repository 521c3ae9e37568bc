"""treemon - Async live telemetry dashboard core for tree sensors."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("treemon")
except PackageNotFoundError:
    __version__ = "0+local"

from treemon._mqtt import MqttCredentials
from treemon.config import TreeMonConfig
from treemon.connection import ConnectionManager
from treemon.dashboard import DashboardState, RelativeTimeTicker, TreeMonitorDashboard, status_text
from treemon.exceptions import (
    TreeMonConfigError,
    TreeMonDecodeError,
    TreeMonError,
    TreeMonQueryError,
    TreeMonSubscriptionError,
    TreeMonTransportError,
)
from treemon.history import InfluxQueryClient, build_flux_query, parse_influx_csv
from treemon.ingestion.live import LiveSnapshotAggregator
from treemon.models import (
    ALL_MEASUREMENT_KINDS,
    HistoricalPoint,
    HistoryResult,
    InboundPayload,
    LiveSnapshot,
    MeasurementKind,
)
from treemon.scheduling import HistoryTracker, RefreshConfig, RefreshScheduler, SchedulerState
from treemon.state.events import ConnectionEvent, ConnectionEventKind, ConnectivityState
from treemon.timefmt import format_date_short, format_datetime, format_relative_time

__all__ = [
    "__version__",
    "ALL_MEASUREMENT_KINDS",
    "ConnectionEvent",
    "ConnectionEventKind",
    "ConnectionManager",
    "ConnectivityState",
    "DashboardState",
    "HistoricalPoint",
    "HistoryResult",
    "HistoryTracker",
    "InboundPayload",
    "InfluxQueryClient",
    "LiveSnapshot",
    "LiveSnapshotAggregator",
    "MeasurementKind",
    "MqttCredentials",
    "RefreshConfig",
    "RefreshScheduler",
    "RelativeTimeTicker",
    "SchedulerState",
    "TreeMonConfig",
    "TreeMonConfigError",
    "TreeMonDecodeError",
    "TreeMonError",
    "TreeMonQueryError",
    "TreeMonSubscriptionError",
    "TreeMonTransportError",
    "TreeMonitorDashboard",
    "build_flux_query",
    "format_date_short",
    "format_datetime",
    "format_relative_time",
    "parse_influx_csv",
    "status_text",
]
