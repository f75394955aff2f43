"""WhatsApp connection session: one state value, one event channel."""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from inspect import isawaitable
from typing import Any

from ferraco_whatsapp.config import Settings, get_settings
from ferraco_whatsapp.reducer import map_status, transition
from ferraco_whatsapp.state import (
    INITIAL_STATE,
    Account,
    AccountConnected,
    ConnectionLost,
    ConnectionState,
    Event,
    Failure,
    Idle,
    Initialize,
    QrAvailable,
    QrReceived,
    Reset,
)
from ferraco_whatsapp.transport import RealtimeTransport, TransportCallbacks

logger = logging.getLogger(__name__)

DEFAULT_DISCONNECT_REASON = "Desconectado"
CHANNEL_LOST_ERROR = "Conexão com o servidor perdida"

StateChangeCallback = Callable[[ConnectionState, ConnectionState], Awaitable[None] | None]
Callback = Callable[..., Awaitable[None] | None]


@dataclass
class SessionCallbacks:
    """What a consumer of the session wants to hear about."""
    on_state_change: StateChangeCallback | None = None
    on_qr_code: Callback | None = None
    on_status_change: Callback | None = None
    on_ready: Callback | None = None
    on_disconnected: Callback | None = None
    on_error: Callback | None = None
    on_message: Callback | None = None
    on_message_status: Callback | None = None
    on_conversation_update: Callback | None = None
    on_typing: Callback | None = None
    on_presence: Callback | None = None
    on_reaction: Callback | None = None


async def _maybe_await(value) -> None:
    if isawaitable(value):
        await value


def _qr_payload(payload: Any) -> tuple[str, int | None]:
    """The backend sends either the data URI or ``{"qr": ..., "attempt": n}``."""
    if isinstance(payload, dict):
        qr = str(payload.get("qr") or payload.get("qrCode") or "")
        attempt = payload.get("attempt")
        if isinstance(attempt, int) and not isinstance(attempt, bool) and attempt >= 1:
            return qr, attempt
        return qr, None
    return str(payload or ""), None


def _text_payload(payload: Any, *keys: str) -> str:
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if value:
                return str(value)
        return ""
    return str(payload or "")


class WhatsAppSession:
    """Owns the connection state and the transport feeding it.

    ``mount`` starts a pairing cycle and opens the event channel; ``unmount``
    closes the channel and resets the state. Every change goes through
    ``dispatch`` and therefore through the state machine.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: RealtimeTransport | None = None,
        callbacks: SessionCallbacks | None = None,
    ) -> None:
        cfg = settings or get_settings()
        self._transport = transport or RealtimeTransport(
            cfg.ws_url,
            reconnect_attempts=cfg.ferraco_reconnect_attempts,
            reconnect_delay_s=cfg.ferraco_reconnect_delay_s,
            connect_timeout_s=cfg.ferraco_connect_timeout_s,
            headers=cfg.auth_headers,
        )
        self._callbacks = callbacks or SessionCallbacks()
        self._state: ConnectionState = INITIAL_STATE
        self._qr_attempt = 0
        self._mounted = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def transport(self) -> RealtimeTransport:
        return self._transport

    @property
    def mounted(self) -> bool:
        return self._mounted

    def update_callbacks(self, callbacks: SessionCallbacks) -> None:
        """Swap consumer callbacks without reconnecting."""
        self._callbacks = callbacks

    async def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._transport.set_callbacks(self._transport_callbacks())
        await self.dispatch(Initialize())
        await self._transport.start()

    async def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        await self._transport.close()
        await self.dispatch(Reset())

    async def __aenter__(self) -> "WhatsAppSession":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unmount()

    async def dispatch(self, event: Event) -> ConnectionState:
        previous = self._state
        current = transition(previous, event)
        if current is previous:
            return current
        self._state = current
        if isinstance(current, Idle):
            self._qr_attempt = 0
        logger.info("WhatsApp state: %s -> %s", previous.type, current.type)
        await self._emit("on_state_change", previous, current)
        return current

    async def reconnect(self) -> ConnectionState:
        """Start a fresh pairing cycle and ask the backend for its status."""
        logger.info("Restarting WhatsApp connection")
        await self.dispatch(Reset())
        await self.dispatch(Initialize())
        if self._mounted and not self._transport.running:
            # Retry budget was spent; status is requested once the channel is back.
            await self._transport.start()
        else:
            await self._transport.request_status()
        return self._state

    async def request_status(self) -> bool:
        return await self._transport.request_status()

    async def request_qr(self) -> bool:
        return await self._transport.request_qr()

    async def subscribe_to_conversation(self, conversation_id: str) -> bool:
        return await self._transport.subscribe_to_conversation(conversation_id)

    async def unsubscribe_from_conversation(self, conversation_id: str) -> bool:
        return await self._transport.unsubscribe_from_conversation(conversation_id)

    # ------------------------------------------------------------------
    # Inbound bridge events
    # ------------------------------------------------------------------

    async def handle_qr(self, payload: Any) -> None:
        qr_code, attempt = _qr_payload(payload)
        candidate = self._qr_attempt + 1
        if attempt is not None and attempt > candidate:
            candidate = attempt
        state = await self.dispatch(QrReceived(qr_code=qr_code, attempt=candidate))
        if isinstance(state, QrAvailable) and state.attempt == candidate:
            self._qr_attempt = candidate
        await self._emit("on_qr_code", qr_code)

    async def handle_channel_connected(self) -> None:
        await self._transport.request_status()

    async def handle_status(self, payload: Any) -> None:
        status = _text_payload(payload, "status")
        event = map_status(status, self._state)
        if event is not None:
            await self.dispatch(event)
        await self._emit("on_status_change", status)

    async def handle_ready(self, payload: Any = None) -> None:
        await self.dispatch(AccountConnected(account=Account.from_payload(payload)))
        await self._emit("on_ready")

    async def handle_disconnected(self, payload: Any = None) -> None:
        reason = _text_payload(payload, "reason") or DEFAULT_DISCONNECT_REASON
        await self.dispatch(ConnectionLost(reason=reason))
        await self._emit("on_disconnected", reason)

    async def handle_error(self, payload: Any) -> None:
        message = _text_payload(payload, "error", "message")
        await self.dispatch(Failure(error=message, recoverable=True))
        await self._emit("on_error", message)

    async def handle_channel_failed(self, reason: str) -> None:
        logger.error("Giving up on event channel: %s", reason)
        await self.dispatch(Failure(error=CHANNEL_LOST_ERROR, recoverable=True))

    def _transport_callbacks(self) -> TransportCallbacks:
        def forward(name: str) -> Callback:
            async def _forward(payload: Any) -> None:
                await self._emit(name, payload)
            return _forward

        return TransportCallbacks(
            on_qr=self.handle_qr,
            on_status=self.handle_status,
            on_ready=self.handle_ready,
            on_disconnected=self.handle_disconnected,
            on_error=self.handle_error,
            on_message=forward("on_message"),
            on_message_status=forward("on_message_status"),
            on_conversation_update=forward("on_conversation_update"),
            on_typing=forward("on_typing"),
            on_presence=forward("on_presence"),
            on_reaction=forward("on_reaction"),
            on_connected=self.handle_channel_connected,
            on_connection_failed=self.handle_channel_failed,
        )

    async def _emit(self, name: str, *args: Any) -> None:
        # Looked up per call; update_callbacks takes effect on the next event.
        callback = getattr(self._callbacks, name, None)
        if callback is None:
            return
        try:
            await _maybe_await(callback(*args))
        except Exception:
            logger.exception("Session callback %s failed", name)
