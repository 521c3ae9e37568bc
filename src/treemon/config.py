"""Client configuration for treemon."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from treemon import _constants as c
from treemon.models.measurement import DEFAULT_FIELD_MAP, MeasurementKind


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TreeMonConfig:
    """Dashboard configuration.

    Parameters
    ----------
    broker_url : str
        MQTT broker URL (``mqtt://``, ``mqtts://``, ``ws://`` or ``wss://``).
    mqtt_username : str
        Broker username. Empty or placeholder values are not sent.
    mqtt_password : str
        Broker password. Empty or placeholder values are not sent.
    base_topic : str
        Wildcard topic pattern subscribed to after every (re)connect.
    subscribe_qos : int
        Requested subscription QoS. A lower granted QoS is reported as an error.
    connect_timeout : float
        Seconds to wait for CONNACK.
    reconnect_period : float
        Fixed delay in seconds between automatic reconnect attempts.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    influx_url : str
        InfluxDB v2 query endpoint (``.../api/v2/query``).
    influx_token : str
        InfluxDB API token, sent as ``Authorization: Token <token>``.
    influx_org : str
        InfluxDB organization, sent as the ``org`` query parameter.
    influx_bucket : str
        Bucket holding the sensor measurements.
    lookback : str
        Flux ``range(start: ...)`` duration for historical queries.
    http_timeout : float
        Total timeout in seconds for one historical query.
    refresh_period : float
        Seconds between automatic history refreshes.
    auto_refresh : bool
        Initial state of automatic history refresh.
    relative_time_interval : float
        Seconds between recomputations of the "last update" text.
    field_map : dict
        Measurement kind to InfluxDB ``_field`` name.
    """

    broker_url: str = c.MQTT_BROKER_URL
    mqtt_username: str = c.MQTT_USERNAME
    mqtt_password: str = c.MQTT_PASSWORD
    base_topic: str = c.MQTT_BASE_TOPIC
    subscribe_qos: int = 0
    connect_timeout: float = c.MQTT_CONNECT_TIMEOUT_S
    reconnect_period: float = c.MQTT_RECONNECT_PERIOD_S
    mqtt_keepalive: int = 60
    influx_url: str = c.INFLUXDB_URL
    influx_token: str = ""
    influx_org: str = c.INFLUXDB_ORG
    influx_bucket: str = c.INFLUXDB_BUCKET
    lookback: str = c.INFLUXDB_LOOKBACK
    http_timeout: float = 30.0
    refresh_period: float = c.HISTORY_REFRESH_PERIOD_S
    auto_refresh: bool = True
    relative_time_interval: float = c.RELATIVE_TIME_INTERVAL_S
    field_map: dict[MeasurementKind, str] = dataclasses.field(default_factory=lambda: dict(DEFAULT_FIELD_MAP))

    @classmethod
    def from_env(cls, **overrides: Any) -> TreeMonConfig:
        """Create configuration from ``TREEMON_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "TREEMON_BROKER_URL": "broker_url",
            "TREEMON_MQTT_USERNAME": "mqtt_username",
            "TREEMON_MQTT_PASSWORD": "mqtt_password",
            "TREEMON_BASE_TOPIC": "base_topic",
            "TREEMON_INFLUX_URL": "influx_url",
            "TREEMON_INFLUX_TOKEN": "influx_token",
            "TREEMON_INFLUX_ORG": "influx_org",
            "TREEMON_INFLUX_BUCKET": "influx_bucket",
            "TREEMON_LOOKBACK": "lookback",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        period_env = env.get("TREEMON_REFRESH_PERIOD")
        if period_env is not None and "refresh_period" not in overrides:
            config_kwargs["refresh_period"] = float(period_env)

        qos_env = env.get("TREEMON_SUBSCRIBE_QOS")
        if qos_env is not None and "subscribe_qos" not in overrides:
            config_kwargs["subscribe_qos"] = int(qos_env)

        if "auto_refresh" not in overrides:
            config_kwargs["auto_refresh"] = _env_bool(env.get("TREEMON_AUTO_REFRESH"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
