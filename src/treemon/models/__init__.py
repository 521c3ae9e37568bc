"""Data models for sensor telemetry."""

from treemon.models._base import TreeMonBaseModel
from treemon.models.history import HistoricalPoint, HistoryResult
from treemon.models.measurement import (
    ALL_MEASUREMENT_KINDS,
    DEFAULT_FIELD_MAP,
    MEASUREMENT_LABELS,
    MEASUREMENT_UNITS,
    MeasurementKind,
)
from treemon.models.payload import InboundPayload
from treemon.models.snapshot import LiveSnapshot

__all__ = [
    "ALL_MEASUREMENT_KINDS",
    "DEFAULT_FIELD_MAP",
    "HistoricalPoint",
    "HistoryResult",
    "InboundPayload",
    "LiveSnapshot",
    "MEASUREMENT_LABELS",
    "MEASUREMENT_UNITS",
    "MeasurementKind",
    "TreeMonBaseModel",
]
