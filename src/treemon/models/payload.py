"""Inbound MQTT payload model.

Sensor gateways publish JSON shaped like::

    {"fields": {"resistance": 412.0, "temperature": 11.5, "rssi": -97},
     "name": "thws-trees-pulse-01",
     "tags": {...},
     "timestamp": 1718000000}
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import Field, field_validator

from treemon.models._base import TreeMonBaseModel


class InboundPayload(TreeMonBaseModel):
    fields: dict[str, Any] = Field(..., description="Field name to numeric or string value")
    name: str | None = Field(default=None, description="Sensor name, used as InfluxDB _measurement")
    tags: dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(..., description="Unix seconds")

    @field_validator("fields")
    @classmethod
    def _non_empty_fields(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise ValueError("fields must be a non-empty object")
        return value

    @field_validator("name", mode="before")
    @classmethod
    def _blank_name_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _numeric_timestamp(cls, value: Any) -> Any:
        # Numeric strings and booleans are not timestamps.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("timestamp must be a number")
        if not math.isfinite(value):
            raise ValueError("timestamp must be finite")
        return value
