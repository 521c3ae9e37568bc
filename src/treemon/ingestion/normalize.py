"""Normalization helpers.

Centralizes defensive parsing of payload values and timestamps.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

# RFC 3339 fractions may carry nanoseconds; datetime keeps microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def seconds_to_iso(ts_seconds: float) -> str:
    """Convert unix seconds to an ISO-8601 UTC instant (``2024-01-01T00:00:00.000Z``)."""
    instant = datetime.fromtimestamp(ts_seconds, tz=UTC)
    return instant.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 / ISO-8601 string into an aware UTC datetime.

    Naive values are taken as UTC. Returns ``None`` when unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        text = _FRACTION_RE.sub(r"\1", text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
