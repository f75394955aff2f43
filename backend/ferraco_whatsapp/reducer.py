"""WhatsApp connection state machine.

``transition`` is the only way a session state changes. It is pure and total:
an event that is not allowed from the current state leaves the state object
untouched and logs a warning instead of raising.
"""
from __future__ import annotations

import logging

from ferraco_whatsapp.state import (
    AccountConnected,
    Authenticating,
    Connected,
    ConnectionLost,
    ConnectionState,
    Disconnected,
    Error,
    Event,
    Failure,
    Idle,
    Initialize,
    Initializing,
    QrAvailable,
    QrReceived,
    QrScanned,
    Reset,
)

logger = logging.getLogger(__name__)

_INITIALIZE_FROM = (Idle, Disconnected, Error)
_QR_RECEIVED_FROM = (Initializing, QrAvailable, Disconnected)
_CONNECTED_FROM = (Authenticating, QrAvailable, Initializing)


def _rejected(state: ConnectionState, event: object) -> ConnectionState:
    event_type = getattr(event, "type", type(event).__name__)
    logger.warning("Invalid transition %s from state %s; ignored", event_type, state.type)
    return state


def transition(state: ConnectionState, event: Event) -> ConnectionState:
    """Apply ``event`` to ``state`` and return the next state."""
    logger.debug("Transition: %s -> %s", state.type, getattr(event, "type", event))

    if isinstance(event, Initialize):
        if isinstance(state, _INITIALIZE_FROM):
            return Initializing()
        return _rejected(state, event)

    if isinstance(event, QrReceived):
        # Refresh while already showing a QR is allowed: codes expire.
        if isinstance(state, _QR_RECEIVED_FROM):
            return QrAvailable(qr_code=event.qr_code, attempt=event.attempt)
        return _rejected(state, event)

    if isinstance(event, QrScanned):
        if isinstance(state, QrAvailable):
            return Authenticating()
        return _rejected(state, event)

    if isinstance(event, AccountConnected):
        # Initializing covers a remembered session that never needs a QR.
        if isinstance(state, _CONNECTED_FROM):
            return Connected(account=event.account)
        return _rejected(state, event)

    if isinstance(event, ConnectionLost):
        if isinstance(state, Disconnected):
            return _rejected(state, event)
        return Disconnected(reason=event.reason)

    if isinstance(event, Failure):
        recoverable = True if event.recoverable is None else bool(event.recoverable)
        return Error(error=event.error, recoverable=recoverable)

    if isinstance(event, Reset):
        if isinstance(state, Idle):
            return state
        return Idle()

    return _rejected(state, event)


# Raw status strings pushed by the bridge on ``whatsapp:status``.
_STATUS_EVENTS: dict[str, Event] = {
    "INITIALIZING": Initialize(),
    "DISCONNECTED": ConnectionLost(reason="Desconectado do servidor"),
    "notConnected": ConnectionLost(reason="Não conectado"),
    "qrReadSuccess": QrScanned(),
    "qrReadFail": Failure(error="Falha ao ler QR Code", recoverable=True),
    "autocloseCalled": ConnectionLost(reason="Sessão encerrada automaticamente"),
    "desconnectedMobile": ConnectionLost(reason="Desconectado do celular"),
    "browserClose": Failure(error="Navegador fechado", recoverable=True),
}


def map_status(raw_status: str, current_state: ConnectionState) -> Event | None:
    """Translate a bridge status string into an event, or None to ignore it.

    ``CONNECTED`` maps to None on purpose: the account identity only arrives
    with ``whatsapp:ready``, which produces the connected event itself.
    ``current_state`` is accepted for callers that dispatch by state; the
    mapping does not depend on it.
    """
    status = str(raw_status or "").strip()
    if status == "CONNECTED":
        return None
    event = _STATUS_EVENTS.get(status)
    if event is None:
        logger.warning("Unmapped bridge status %r (state %s)", raw_status, current_state.type)
    return event
