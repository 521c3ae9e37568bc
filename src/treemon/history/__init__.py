"""Historical retrieval: Flux query construction, HTTP client, CSV parsing."""

from treemon.history.client import InfluxQueryClient
from treemon.history.parser import parse_influx_csv
from treemon.history.query import build_flux_query

__all__ = ["InfluxQueryClient", "build_flux_query", "parse_influx_csv"]
