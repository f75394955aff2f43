"""Presentation helpers derived from a connection state."""
from __future__ import annotations

from typing import Any

from ferraco_whatsapp.state import (
    Authenticating,
    Connected,
    ConnectionState,
    Disconnected,
    Error,
    Idle,
    Initializing,
    QrAvailable,
)

ONLINE = "online"
OFFLINE = "offline"
CONNECTING = "connecting"
ERROR = "error"


def is_idle(state: ConnectionState) -> bool:
    return isinstance(state, Idle)


def is_initializing(state: ConnectionState) -> bool:
    return isinstance(state, Initializing)


def is_qr_available(state: ConnectionState) -> bool:
    return isinstance(state, QrAvailable)


def is_authenticating(state: ConnectionState) -> bool:
    return isinstance(state, Authenticating)


def is_connected(state: ConnectionState) -> bool:
    return isinstance(state, Connected)


def is_disconnected(state: ConnectionState) -> bool:
    return isinstance(state, Disconnected)


def is_error(state: ConnectionState) -> bool:
    return isinstance(state, Error)


def can_reconnect(state: ConnectionState) -> bool:
    """True when a reconnect action makes sense for this state."""
    if isinstance(state, Disconnected):
        return True
    if isinstance(state, Error):
        return bool(state.recoverable)
    return False


def connection_status_category(state: ConnectionState) -> str:
    """Collapse the seven states into online / offline / connecting / error."""
    if isinstance(state, Connected):
        return ONLINE
    if isinstance(state, (Idle, Disconnected)):
        return OFFLINE
    if isinstance(state, (Initializing, QrAvailable, Authenticating)):
        return CONNECTING
    if isinstance(state, Error):
        return ERROR
    raise TypeError(f"Unknown connection state: {state!r}")


def legacy_status(state: ConnectionState) -> str:
    """Status string in the bridge vocabulary, for screens still keyed on it."""
    if isinstance(state, Idle):
        return "DISCONNECTED"
    if isinstance(state, Initializing):
        return "INITIALIZING"
    if isinstance(state, QrAvailable):
        return "notConnected"
    if isinstance(state, Authenticating):
        return "qrReadSuccess"
    if isinstance(state, Connected):
        return "CONNECTED"
    if isinstance(state, Disconnected):
        if state.reason and ("mobile" in state.reason or "celular" in state.reason):
            return "desconnectedMobile"
        return "DISCONNECTED"
    if isinstance(state, Error):
        return "qrReadFail"
    raise TypeError(f"Unknown connection state: {state!r}")


def snapshot(state: ConnectionState) -> dict[str, Any]:
    """Flat dict view of a state for display and JSON output."""
    return {
        "type": state.type,
        "status": legacy_status(state),
        "category": connection_status_category(state),
        "qr_code": state.qr_code if isinstance(state, QrAvailable) else None,
        "attempt": state.attempt if isinstance(state, QrAvailable) else None,
        "account": state.account.to_dict() if isinstance(state, Connected) else None,
        "reason": state.reason if isinstance(state, Disconnected) else None,
        "error": state.error if isinstance(state, Error) else None,
        "can_reconnect": can_reconnect(state),
    }
