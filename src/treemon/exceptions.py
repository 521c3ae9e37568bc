"""Custom exception hierarchy for treemon."""

from __future__ import annotations


class TreeMonError(Exception):
    """Base exception for all treemon errors."""


class TreeMonConfigError(TreeMonError):
    """Invalid or missing configuration.

    Raised before any network I/O, e.g. when no sensor is active or a
    measurement kind has no backing InfluxDB field.
    """


class TreeMonTransportError(TreeMonError):
    """Streaming channel failure (connect, subscribe, runtime).

    Never raised to callers of :class:`treemon.connection.ConnectionManager`;
    it is carried as the ``reason`` of an ``error`` connection event.
    """

    def __init__(self, message: str, *, reason: str = "") -> None:
        self.reason = reason or message
        super().__init__(message)


class TreeMonSubscriptionError(TreeMonTransportError):
    """Broker denied the subscription or granted a lower QoS than requested."""


class TreeMonDecodeError(TreeMonError):
    """Malformed or incomplete inbound MQTT message."""


class TreeMonQueryError(TreeMonError):
    """Historical query failed (non-2xx status or HTTP transport failure)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)
