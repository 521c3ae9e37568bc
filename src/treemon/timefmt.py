"""Calendar and relative-age text for timestamps."""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo

from treemon.ingestion.normalize import parse_iso_timestamp

INVALID_DATE = "Invalid Date"


def _localize(value: datetime | str, tz: tzinfo | None) -> datetime | None:
    parsed = parse_iso_timestamp(value)
    if parsed is None:
        return None
    return parsed.astimezone(tz)


def format_date_short(value: datetime | str, *, tz: tzinfo | None = None) -> str:
    """``DD.MM.YY`` in *tz* (local time when omitted)."""
    moment = _localize(value, tz)
    if moment is None:
        return INVALID_DATE
    return moment.strftime("%d.%m.%y")


def format_datetime(value: datetime | str, *, tz: tzinfo | None = None) -> str:
    """``DD.MM.YY HH:MM:SS`` in *tz* (local time when omitted)."""
    moment = _localize(value, tz)
    if moment is None:
        return INVALID_DATE
    return moment.strftime("%d.%m.%y %H:%M:%S")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def format_relative_time(
    value: datetime | str,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> str:
    """Relative age of *value*: ``just now``, ``N minutes ago``, ... ``on DD.MM.YY``.

    Ages of a week or more fall back to the calendar date.
    """
    past = parse_iso_timestamp(value)
    if past is None:
        return INVALID_DATE
    current = now if now is not None else datetime.now(UTC)
    if current.tzinfo is None:
        current = current.replace(tzinfo=UTC)

    seconds_ago = round((current - past).total_seconds())
    if seconds_ago < 60:
        return "just now"
    minutes_ago = seconds_ago // 60
    if minutes_ago < 60:
        return _plural(minutes_ago, "minute")
    hours_ago = minutes_ago // 60
    if hours_ago < 24:
        return _plural(hours_ago, "hour")
    days_ago = hours_ago // 24
    if days_ago < 7:
        return _plural(days_ago, "day")
    return f"on {format_date_short(past, tz=tz)}"
