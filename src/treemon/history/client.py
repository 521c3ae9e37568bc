"""HTTP client for historical range queries against InfluxDB v2."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import aiohttp

from treemon.config import TreeMonConfig
from treemon.exceptions import TreeMonConfigError, TreeMonQueryError
from treemon.history.parser import parse_influx_csv
from treemon.history.query import build_flux_query
from treemon.models.history import HistoricalPoint
from treemon.models.measurement import MeasurementKind

_logger = logging.getLogger(__name__)


class HistoricalQueryClient(Protocol):
    """Structural interface used by the refresh scheduler.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`InfluxQueryClient`) concrete.
    """

    async def fetch(self, sensor_id: str, kind: MeasurementKind) -> list[HistoricalPoint]: ...


class InfluxQueryClient:
    """Issues one Flux range query per :meth:`fetch` call. No retries."""

    def __init__(self, config: TreeMonConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def field_for(self, kind: MeasurementKind) -> str:
        """Backing ``_field`` name for *kind*; raises :class:`TreeMonConfigError` if unmapped."""
        field = self._config.field_map.get(kind)
        if not field:
            raise TreeMonConfigError(f"Configuration error: No InfluxDB field mapping for {kind.label}")
        return field

    def build_request(self, sensor_id: str, kind: MeasurementKind) -> tuple[str, dict[str, str], dict[str, str], str]:
        """Return ``(url, params, headers, body)`` for a query, validating preconditions first."""
        if not sensor_id:
            raise TreeMonConfigError("No active sensor ID to fetch data for.")
        field = self.field_for(kind)
        body = build_flux_query(
            bucket=self._config.influx_bucket,
            measurement=sensor_id,
            field=field,
            lookback=self._config.lookback,
        )
        headers = {
            "Authorization": f"Token {self._config.influx_token}",
            "Content-Type": "application/vnd.flux",
            "Accept": "application/csv",
        }
        return self._config.influx_url, {"org": self._config.influx_org}, headers, body

    async def fetch(self, sensor_id: str, kind: MeasurementKind) -> list[HistoricalPoint]:
        """Fetch the configured lookback window for *sensor_id* / *kind*.

        An empty list is a valid outcome ("no data"). Failures raise
        :class:`TreeMonConfigError` (before any I/O) or :class:`TreeMonQueryError`.
        """
        url, params, headers, body = self.build_request(sensor_id, kind)
        timeout = aiohttp.ClientTimeout(total=self._config.http_timeout)

        _logger.debug("POST %s sensor=%s kind=%s", url, sensor_id, kind)

        try:
            async with self._http.post(url, params=params, data=body, headers=headers, timeout=timeout) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    status = f"{resp.status} {resp.reason}" if resp.reason else str(resp.status)
                    raise TreeMonQueryError(
                        f"InfluxDB query failed: {status}. {text}",
                        status_code=resp.status,
                        body=text,
                    )
        except TreeMonQueryError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise TreeMonQueryError(f"InfluxDB query to {url} failed: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise TreeMonQueryError(f"InfluxDB response from {url} is not valid UTF-8: {exc}") from exc

        points = parse_influx_csv(text, kind, sensor_id)
        _logger.debug("Parsed %d point(s) sensor=%s kind=%s", len(points), sensor_id, kind)
        return points


def describe_request(client: InfluxQueryClient, sensor_id: str, kind: MeasurementKind) -> dict[str, Any]:
    """Redaction-friendly view of a request, for debug tooling."""
    url, params, headers, body = client.build_request(sensor_id, kind)
    return {"url": url, "params": params, "headers": headers, "body": body}
