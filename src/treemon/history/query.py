"""Flux query construction."""

from __future__ import annotations


def flux_string(value: str) -> str:
    """Quote *value* as a Flux string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_flux_query(*, bucket: str, measurement: str, field: str, lookback: str = "-30d") -> str:
    """Range query over *lookback* for one ``_measurement`` / ``_field`` pair."""
    return (
        f"from(bucket: {flux_string(bucket)})\n"
        f"  |> range(start: {lookback})\n"
        f'  |> filter(fn: (r) => r["_measurement"] == {flux_string(measurement)})\n'
        f'  |> filter(fn: (r) => r["_field"] == {flux_string(field)})\n'
        f'  |> yield(name: "mean")\n'
    )
