"""Transport lifecycle events and connectivity states."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from treemon.exceptions import TreeMonTransportError


class ConnectivityState(StrEnum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting..."
    CONNECTED = "Connected"
    ERROR = "Error"
    RECONNECTING = "Reconnecting..."


class ConnectionEventKind(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    # Reported while the session stays up; no state transition.
    SUBSCRIBE_ERROR = "subscribe_error"
    MESSAGE = "message"


_STATE_BY_KIND: dict[ConnectionEventKind, ConnectivityState] = {
    ConnectionEventKind.CONNECTING: ConnectivityState.CONNECTING,
    ConnectionEventKind.CONNECTED: ConnectivityState.CONNECTED,
    ConnectionEventKind.RECONNECTING: ConnectivityState.RECONNECTING,
    ConnectionEventKind.DISCONNECTED: ConnectivityState.DISCONNECTED,
    ConnectionEventKind.ERROR: ConnectivityState.ERROR,
}


@dataclass(frozen=True)
class ConnectionEvent:
    """One lifecycle event or inbound message from the streaming transport."""

    kind: ConnectionEventKind
    reason: str | None = None
    topic: str | None = None
    payload: bytes | None = None
    exception: TreeMonTransportError | None = None

    @property
    def state(self) -> ConnectivityState | None:
        """Connectivity state this event transitions to (``None`` for messages)."""
        return _STATE_BY_KIND.get(self.kind)

    @classmethod
    def message(cls, topic: str, payload: bytes) -> ConnectionEvent:
        return cls(kind=ConnectionEventKind.MESSAGE, topic=topic, payload=payload)

    @classmethod
    def error(cls, exc: TreeMonTransportError) -> ConnectionEvent:
        return cls(kind=ConnectionEventKind.ERROR, reason=str(exc), exception=exc)
