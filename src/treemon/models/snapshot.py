"""Live snapshot model."""

from __future__ import annotations

from pydantic import Field

from treemon.models._base import TreeMonBaseModel
from treemon.models.measurement import MeasurementKind


class LiveSnapshot(TreeMonBaseModel):
    """Best-known current values across all measurement kinds plus provenance.

    Only :class:`treemon.ingestion.live.LiveSnapshotAggregator` builds
    populated snapshots. Values are sparse: a kind is present once any message
    carried it and is never removed.
    """

    values: dict[MeasurementKind, float] = Field(default_factory=dict)
    extra_fields: dict[str, float | str] = Field(
        default_factory=dict,
        description="Payload fields that are not measurement kinds (rssi, snr, ...)",
    )
    last_updated_timestamp: str | None = Field(default=None, description="ISO-8601 UTC instant")
    last_updated_sensor_id: str | None = None
    last_raw_sensor_name: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.last_updated_timestamp is None

    def get(self, kind: MeasurementKind) -> float | None:
        return self.values.get(kind)
