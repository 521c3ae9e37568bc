from __future__ import annotations

from typing import Any

import aiohttp
import pytest

from treemon.config import TreeMonConfig
from treemon.exceptions import TreeMonConfigError, TreeMonQueryError
from treemon.history.client import InfluxQueryClient
from treemon.history.query import build_flux_query
from treemon.models.measurement import DEFAULT_FIELD_MAP, MeasurementKind

CSV = "#datatype,string,dateTime:RFC3339,double\n,result,_time,_value\n,mean,2024-01-01T00:00:00Z,12.5\n"


class _FakeResponse:
    def __init__(self, status: int, text: str, reason: str = "OK") -> None:
        self.status = status
        self.reason = reason
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, response: _FakeResponse | Exception) -> None:
        self._response = response
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def _config(**overrides: Any) -> TreeMonConfig:
    return TreeMonConfig(
        influx_url="https://influx.example/api/v2/query",
        influx_token="secret-token",
        influx_org="lab",
        influx_bucket="trees",
        **overrides,
    )


@pytest.mark.asyncio
async def test_fetch_posts_flux_query_and_parses_csv() -> None:
    session = _FakeSession(_FakeResponse(200, CSV))
    client = InfluxQueryClient(_config(), session)  # type: ignore[arg-type]

    points = await client.fetch("pulse-01", MeasurementKind.TEMP_WOOD)

    assert [p.value for p in points] == [12.5]
    assert points[0].sensor_id == "pulse-01"
    call = session.calls[0]
    assert call["url"] == "https://influx.example/api/v2/query"
    assert call["params"] == {"org": "lab"}
    assert call["headers"] == {
        "Authorization": "Token secret-token",
        "Content-Type": "application/vnd.flux",
        "Accept": "application/csv",
    }
    assert 'from(bucket: "trees")' in call["data"]
    assert "range(start: -30d)" in call["data"]
    assert 'r["_measurement"] == "pulse-01"' in call["data"]
    # Wood temperature is stored under the generic "temperature" field.
    assert 'r["_field"] == "temperature"' in call["data"]


@pytest.mark.asyncio
async def test_empty_response_is_not_an_error() -> None:
    client = InfluxQueryClient(_config(), _FakeSession(_FakeResponse(200, "")))  # type: ignore[arg-type]

    assert await client.fetch("pulse-01", MeasurementKind.BATTERY) == []


@pytest.mark.asyncio
async def test_non_success_status_raises_with_status_and_body() -> None:
    session = _FakeSession(_FakeResponse(401, '{"code":"unauthorized"}', reason="Unauthorized"))
    client = InfluxQueryClient(_config(), session)  # type: ignore[arg-type]

    with pytest.raises(TreeMonQueryError) as excinfo:
        await client.fetch("pulse-01", MeasurementKind.BATTERY)

    assert excinfo.value.status_code == 401
    assert excinfo.value.body == '{"code":"unauthorized"}'
    assert str(excinfo.value) == 'InfluxDB query failed: 401 Unauthorized. {"code":"unauthorized"}'


@pytest.mark.asyncio
async def test_transport_failure_raises_query_error() -> None:
    session = _FakeSession(aiohttp.ClientConnectionError("connection reset"))
    client = InfluxQueryClient(_config(), session)  # type: ignore[arg-type]

    with pytest.raises(TreeMonQueryError) as excinfo:
        await client.fetch("pulse-01", MeasurementKind.BATTERY)

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_missing_sensor_fails_fast_without_io() -> None:
    session = _FakeSession(_FakeResponse(200, CSV))
    client = InfluxQueryClient(_config(), session)  # type: ignore[arg-type]

    with pytest.raises(TreeMonConfigError, match="No active sensor ID"):
        await client.fetch("", MeasurementKind.BATTERY)
    assert session.calls == []


@pytest.mark.asyncio
async def test_unmapped_kind_fails_fast_without_io() -> None:
    field_map = {k: v for k, v in DEFAULT_FIELD_MAP.items() if k != MeasurementKind.BATTERY}
    session = _FakeSession(_FakeResponse(200, CSV))
    client = InfluxQueryClient(_config(field_map=field_map), session)  # type: ignore[arg-type]

    with pytest.raises(TreeMonConfigError, match=r"No InfluxDB field mapping for Battery \(V\)"):
        await client.fetch("pulse-01", MeasurementKind.BATTERY)
    assert session.calls == []


def test_flux_query_escapes_string_literals() -> None:
    query = build_flux_query(bucket="b", measurement='evil"name\\', field="battery", lookback="-7d")

    assert 'r["_measurement"] == "evil\\"name\\\\"' in query
    assert "range(start: -7d)" in query
    assert query.rstrip().endswith('yield(name: "mean")')


class _UndecodableResponse(_FakeResponse):
    async def text(self) -> str:
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


@pytest.mark.asyncio
async def test_undecodable_body_becomes_query_error() -> None:
    client = InfluxQueryClient(_config(), _FakeSession(_UndecodableResponse(200, "")))  # type: ignore[arg-type]

    with pytest.raises(TreeMonQueryError, match="not valid UTF-8") as exc_info:
        await client.fetch("pulse-01", MeasurementKind.BATTERY)

    assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)
