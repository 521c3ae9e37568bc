"""InfluxDB annotated-CSV response parsing.

Input looks like::

    #datatype,string,long,dateTime:RFC3339,double
    #group,false,false,false,false
    ,result,table,_time,_value
    ,mean,0,2024-01-01T00:00:00Z,12.5

Malformed rows are skipped individually; a missing header or missing
``_time``/``_value`` columns yields an empty result rather than an error.
"""

from __future__ import annotations

import logging

from treemon.ingestion.normalize import parse_iso_timestamp, safe_float
from treemon.models.history import HistoricalPoint
from treemon.models.measurement import MeasurementKind

_logger = logging.getLogger(__name__)

COMMENT_PREFIX = "#"
TIME_COLUMN = "_time"
VALUE_COLUMN = "_value"


def parse_influx_csv(text: str, kind: MeasurementKind, sensor_id: str) -> list[HistoricalPoint]:
    lines = [line.rstrip("\r") for line in text.strip().split("\n")]

    header_index = next(
        (i for i, line in enumerate(lines) if not line.startswith(COMMENT_PREFIX)),
        None,
    )
    if header_index is None:
        return []

    headers = [column.strip() for column in lines[header_index].split(",")]
    if TIME_COLUMN not in headers or VALUE_COLUMN not in headers:
        _logger.debug("CSV missing %s or %s columns: %s", TIME_COLUMN, VALUE_COLUMN, headers)
        return []
    time_index = headers.index(TIME_COLUMN)
    value_index = headers.index(VALUE_COLUMN)
    min_columns = max(time_index, value_index) + 1

    points: list[HistoricalPoint] = []
    skipped = 0
    for line in lines[header_index + 1 :]:
        columns = line.split(",")
        if len(columns) < min_columns:
            skipped += 1
            continue
        raw_time = columns[time_index].strip()
        timestamp = parse_iso_timestamp(raw_time)
        value = safe_float(columns[value_index].strip())
        if timestamp is None or value is None:
            skipped += 1
            continue
        points.append(
            HistoricalPoint(
                timestamp=timestamp,
                original_timestamp=raw_time,
                sensor_id=sensor_id,
                measurement_kind=kind,
                value=value,
            )
        )

    if skipped:
        _logger.debug("Skipped %d malformed CSV row(s) for %s/%s", skipped, sensor_id, kind)
    return points
