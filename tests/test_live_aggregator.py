from __future__ import annotations

import json
from typing import Any

import pytest

from treemon.ingestion.live import LiveSnapshotAggregator, resolve_sensor_id
from treemon.models.measurement import MeasurementKind
from treemon.models.snapshot import LiveSnapshot

TOPIC = "mapfeed/thws-trees/pulse-07/up"
_MISSING = object()


def _payload(**overrides: Any) -> bytes:
    body: dict[str, Any] = {
        "fields": {"resistance": 410.5},
        "name": "thws-trees-pulse-01",
        "tags": {"gateway": "gw-1"},
        "timestamp": 1_704_067_200,
    }
    body.update(overrides)
    return json.dumps({k: v for k, v in body.items() if v is not _MISSING}).encode()


def test_valid_message_builds_snapshot() -> None:
    aggregator = LiveSnapshotAggregator()

    snapshot = aggregator.apply_message(_payload(), TOPIC)

    assert snapshot is not None
    assert snapshot.values == {MeasurementKind.RESISTANCE: 410.5}
    assert snapshot.last_updated_timestamp == "2024-01-01T00:00:00.000Z"
    assert snapshot.last_updated_sensor_id == "thws-trees-pulse-01"
    assert snapshot.last_raw_sensor_name == "thws-trees-pulse-01"
    assert aggregator.snapshot is snapshot


@pytest.mark.parametrize(
    "raw",
    [
        _payload(fields=_MISSING),
        _payload(fields={}),
        _payload(timestamp=_MISSING),
        _payload(timestamp="1704067200"),
        _payload(timestamp=True),
        b"{not json",
        b"[1, 2, 3]",
        b"\xff\xfe",
    ],
)
def test_invalid_messages_leave_snapshot_unchanged(raw: bytes) -> None:
    aggregator = LiveSnapshotAggregator()
    before = aggregator.apply_message(_payload(), TOPIC)

    assert aggregator.apply_message(raw, TOPIC) is None
    assert aggregator.snapshot is before


def test_message_without_any_sensor_identifier_is_rejected() -> None:
    aggregator = LiveSnapshotAggregator()

    assert aggregator.apply_message(_payload(name=_MISSING), "mapfeed/thws-trees") is None
    assert aggregator.apply_message(_payload(name=""), "mapfeed/thws-trees/") is None
    assert aggregator.snapshot == LiveSnapshot()


def test_topic_segment_used_when_name_missing() -> None:
    aggregator = LiveSnapshotAggregator()

    snapshot = aggregator.apply_message(_payload(name=_MISSING), TOPIC)

    assert snapshot is not None
    assert snapshot.last_updated_sensor_id == "pulse-07"
    assert snapshot.last_raw_sensor_name is None


def test_resolve_sensor_id_prefers_name() -> None:
    assert resolve_sensor_id("named", TOPIC) == "named"
    assert resolve_sensor_id(None, TOPIC) == "pulse-07"
    assert resolve_sensor_id(None, "a/b") == "unknown_sensor"


def test_fields_accumulate_with_latest_value_per_field() -> None:
    aggregator = LiveSnapshotAggregator()

    aggregator.apply_message(_payload(fields={"resistance": 1.0, "battery": 3.6}, timestamp=100), TOPIC)
    aggregator.apply_message(_payload(fields={"soil_moisture": 40}, timestamp=300), TOPIC)
    # Out-of-order delivery: older send time, processed last.
    snapshot = aggregator.apply_message(_payload(fields={"resistance": 2.0}, timestamp=200), TOPIC)

    assert snapshot is not None
    assert snapshot.values == {
        MeasurementKind.RESISTANCE: 2.0,
        MeasurementKind.BATTERY: 3.6,
        MeasurementKind.SOIL_MOISTURE: 40.0,
    }
    assert snapshot.last_updated_timestamp == "1970-01-01T00:03:20.000Z"


def test_backing_field_names_map_to_kinds_and_extras_are_kept() -> None:
    aggregator = LiveSnapshotAggregator()

    snapshot = aggregator.apply_message(
        _payload(fields={"temperature": 11.5, "humidity_air": "55.5", "rssi": -97, "whatsapp": "hi"}),
        TOPIC,
    )

    assert snapshot is not None
    assert snapshot.values == {MeasurementKind.TEMP_WOOD: 11.5, MeasurementKind.HUMIDITY_AIR: 55.5}
    assert snapshot.extra_fields == {"rssi": -97, "whatsapp": "hi"}


def test_suppressed_fields_are_skipped() -> None:
    aggregator = LiveSnapshotAggregator(field_filters={"battery": False, "resistance": True})

    snapshot = aggregator.apply_message(_payload(fields={"battery": 3.3, "resistance": 5.0}), TOPIC)

    assert snapshot is not None
    assert snapshot.values == {MeasurementKind.RESISTANCE: 5.0}


def test_snapshots_are_replaced_not_mutated() -> None:
    aggregator = LiveSnapshotAggregator()
    first = aggregator.apply_message(_payload(fields={"battery": 3.3}), TOPIC)
    second = aggregator.apply_message(_payload(fields={"resistance": 5.0}), TOPIC)

    assert first is not None and second is not None
    assert first is not second
    assert first.values == {MeasurementKind.BATTERY: 3.3}


def test_non_numeric_kind_value_replaces_previous_number() -> None:
    aggregator = LiveSnapshotAggregator()
    aggregator.apply_message(_payload(fields={"battery": 3.6}), TOPIC)

    snapshot = aggregator.apply_message(_payload(fields={"battery": "n/a"}), TOPIC)
    assert snapshot is not None
    assert snapshot.get(MeasurementKind.BATTERY) is None
    assert snapshot.extra_fields == {"battery": "n/a"}

    snapshot = aggregator.apply_message(_payload(fields={"battery": 3.5}), TOPIC)
    assert snapshot is not None
    assert snapshot.get(MeasurementKind.BATTERY) == 3.5
    assert snapshot.extra_fields == {}
