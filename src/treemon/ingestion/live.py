"""Live snapshot ingestion.

Decodes raw MQTT messages into :class:`InboundPayload`s and folds their
fields into a single :class:`LiveSnapshot`. This is the only place allowed
to build a new snapshot.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from treemon._constants import UNKNOWN_SENSOR_ID
from treemon._redact import redact_for_log
from treemon.exceptions import TreeMonDecodeError
from treemon.ingestion.normalize import safe_float, seconds_to_iso
from treemon.models.measurement import DEFAULT_FIELD_MAP, MeasurementKind
from treemon.models.payload import InboundPayload
from treemon.models.snapshot import LiveSnapshot

_logger = logging.getLogger(__name__)


def decode_payload(raw: bytes | str | Mapping[str, Any]) -> InboundPayload:
    """Decode and validate one inbound message.

    Raises :class:`TreeMonDecodeError` for malformed JSON, a missing or empty
    ``fields`` object, or a missing/non-numeric ``timestamp``.
    """
    if isinstance(raw, Mapping):
        parsed: Any = dict(raw)
    else:
        try:
            text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
            parsed = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TreeMonDecodeError(f"Payload is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise TreeMonDecodeError("Payload is not a JSON object")
    try:
        return InboundPayload.model_validate(parsed)
    except ValidationError as exc:
        raise TreeMonDecodeError(f"Payload rejected: {exc.error_count()} validation error(s)") from exc


def resolve_sensor_id(name: str | None, topic: str) -> str:
    """Explicit payload name, else the third topic segment, else :data:`UNKNOWN_SENSOR_ID`."""
    if name:
        return name
    parts = topic.split("/")
    if len(parts) > 2 and parts[2]:
        return parts[2]
    return UNKNOWN_SENSOR_ID


class LiveSnapshotAggregator:
    """Fold accepted messages into one snapshot by whole-value replacement.

    Parameters
    ----------
    field_filters
        Per-field inclusion filter. A field mapped to ``False`` is skipped
        during merge; every other field is written.
    field_map
        Measurement kind to backing field name, used to map payload fields
        such as ``temperature`` onto :attr:`MeasurementKind.TEMP_WOOD`.
    """

    def __init__(
        self,
        *,
        field_filters: Mapping[str, bool] | None = None,
        field_map: dict[MeasurementKind, str] | None = None,
    ) -> None:
        self._field_filters: dict[str, bool] = dict(field_filters or {})
        self._field_map = dict(field_map) if field_map is not None else dict(DEFAULT_FIELD_MAP)
        self._snapshot = LiveSnapshot()

    @property
    def snapshot(self) -> LiveSnapshot:
        return self._snapshot

    def apply_message(self, raw: bytes | str | Mapping[str, Any], topic: str) -> LiveSnapshot | None:
        """Apply one inbound message.

        Returns the new snapshot, or ``None`` if the message was rejected and
        the prior snapshot retained.
        """
        try:
            payload = decode_payload(raw)
        except TreeMonDecodeError:
            _logger.debug("Dropping message topic=%s", topic, exc_info=True)
            return None

        sensor_id = resolve_sensor_id(payload.name, topic)
        if sensor_id == UNKNOWN_SENSOR_ID:
            _logger.debug("Dropping message topic=%s: no sensor identifier", topic)
            return None

        try:
            updated_at = seconds_to_iso(payload.timestamp)
        except (OverflowError, OSError, ValueError):
            _logger.debug("Dropping message topic=%s: timestamp out of range", topic)
            return None

        self._snapshot = self._merge(self._snapshot, payload, sensor_id, updated_at)
        _logger.debug(
            "Live snapshot updated sensor=%s fields=%s",
            sensor_id,
            redact_for_log(payload.fields),
        )
        return self._snapshot

    def _merge(
        self,
        previous: LiveSnapshot,
        payload: InboundPayload,
        sensor_id: str,
        updated_at: str,
    ) -> LiveSnapshot:
        values = dict(previous.values)
        extra_fields = dict(previous.extra_fields)

        for key, value in payload.fields.items():
            if self._field_filters.get(key) is False:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                continue
            kind = MeasurementKind.from_field(key, self._field_map)
            number = safe_float(value) if kind is not None else None
            # Each field keeps only its most recent value, in one place.
            if kind is not None and number is not None:
                values[kind] = number
                extra_fields.pop(key, None)
            else:
                if kind is not None:
                    values.pop(kind, None)
                extra_fields[key] = value

        return previous.model_copy(
            update={
                "values": values,
                "extra_fields": extra_fields,
                "last_updated_timestamp": updated_at,
                "last_updated_sensor_id": sensor_id,
                "last_raw_sensor_name": payload.name,
            }
        )
