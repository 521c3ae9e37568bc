"""Historical query models."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from treemon.models._base import TreeMonBaseModel
from treemon.models.measurement import MeasurementKind


class HistoricalPoint(TreeMonBaseModel):
    """One time-stamped value of one measurement kind."""

    timestamp: datetime
    original_timestamp: str = Field(..., description="_time column as received")
    sensor_id: str
    measurement_kind: MeasurementKind
    value: float


class HistoryResult(TreeMonBaseModel):
    """Latest applied historical fetch, as seen by the consumer.

    An empty result without ``error`` means "no data in range"; it is only
    distinguishable from a failure by the absence of ``error``.
    """

    sensor_id: str | None = None
    measurement_kind: MeasurementKind | None = None
    points: tuple[HistoricalPoint, ...] = ()
    error: str | None = None
    loading: bool = False

    @property
    def has_data(self) -> bool:
        return bool(self.points)

    @property
    def is_empty(self) -> bool:
        return not self.points and self.error is None and not self.loading
