"""Real-time event channel between the admin client and the backend.

One ``RealtimeTransport`` owns one websocket connection for the lifetime of a
session. Frames are JSON envelopes ``{"event": name, "data": payload}``. Each
inbound event is routed to a single callback on the current
``TransportCallbacks``; the connection loop looks callbacks up at dispatch
time, so swapping the callback set never touches the connection.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from inspect import isawaitable
from typing import Any

import websockets

logger = logging.getLogger(__name__)

Callback = Callable[..., Awaitable[None] | None]

# Inbound event name -> (callback attribute, conversation scoped)
INBOUND_EVENTS: dict[str, tuple[str, bool]] = {
    "whatsapp:qr": ("on_qr", False),
    "whatsapp:status": ("on_status", False),
    "whatsapp:ready": ("on_ready", False),
    "whatsapp:disconnected": ("on_disconnected", False),
    "whatsapp:error": ("on_error", False),
    "message:new": ("on_message", True),
    "whatsapp:message": ("on_message", True),
    "message:status": ("on_message_status", True),
    "conversation:update": ("on_conversation_update", True),
    "whatsapp:typing": ("on_typing", True),
    "whatsapp:presence": ("on_presence", True),
    "whatsapp:reaction": ("on_reaction", True),
}

SUBSCRIBE_EVENT = "conversation:subscribe"
UNSUBSCRIBE_EVENT = "conversation:unsubscribe"
REQUEST_STATUS_EVENT = "whatsapp:request-status"
REQUEST_QR_EVENT = "whatsapp:request-qr"


@dataclass
class TransportCallbacks:
    """Consumer callbacks; any of them may be a coroutine function."""
    on_qr: Callback | None = None
    on_status: Callback | None = None
    on_ready: Callback | None = None
    on_disconnected: Callback | None = None
    on_error: Callback | None = None
    on_message: Callback | None = None
    on_message_status: Callback | None = None
    on_conversation_update: Callback | None = None
    on_typing: Callback | None = None
    on_presence: Callback | None = None
    on_reaction: Callback | None = None
    # Channel lifecycle, not bridge events.
    on_connected: Callback | None = None
    on_connection_lost: Callback | None = None
    on_connection_failed: Callback | None = None


async def _maybe_await(value) -> None:
    if isawaitable(value):
        await value


def conversation_id_of(payload: Any) -> str | None:
    """Conversation a scoped payload belongs to, or None when it is session wide."""
    if isinstance(payload, bool):
        return None
    if isinstance(payload, (str, int)):
        value = str(payload).strip()
        return value or None
    if isinstance(payload, dict):
        for key in ("conversationId", "conversation_id"):
            value = payload.get(key)
            if value not in (None, ""):
                return str(value)
    return None


def encode_frame(event: str, data: Any = None) -> str:
    return json.dumps({"event": event, "data": data}, ensure_ascii=False)


def decode_frame(raw: str | bytes) -> tuple[str, Any] | None:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(frame, dict):
        return None
    name = str(frame.get("event") or "").strip()
    if not name:
        return None
    return name, frame.get("data")


class RealtimeTransport:
    """Websocket client with bounded, fixed-delay reconnection."""

    def __init__(
        self,
        url: str,
        *,
        callbacks: TransportCallbacks | None = None,
        reconnect_attempts: int = 10,
        reconnect_delay_s: float = 1.0,
        connect_timeout_s: float = 20.0,
        headers: dict[str, str] | None = None,
        connect: Callable[..., Any] | None = None,
    ) -> None:
        self.url = url
        self._callbacks = callbacks or TransportCallbacks()
        self._reconnect_attempts = max(0, int(reconnect_attempts))
        self._reconnect_delay_s = max(0.0, float(reconnect_delay_s))
        self._connect_timeout_s = connect_timeout_s
        self._headers = dict(headers or {})
        self._connect = connect or websockets.connect

        self._task: asyncio.Task[None] | None = None
        self._websocket: Any = None
        self._connected = asyncio.Event()
        self._stop_requested = False
        self._subscriptions: set[str] = set()

    @property
    def callbacks(self) -> TransportCallbacks:
        return self._callbacks

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._subscriptions)

    def set_callbacks(self, callbacks: TransportCallbacks) -> None:
        """Replace the callback set; the live connection is left alone."""
        self._callbacks = callbacks

    async def start(self) -> None:
        if self.running:
            return
        self._stop_requested = False
        self._task = asyncio.create_task(self._run(), name="ferraco-whatsapp-transport")

    async def wait_connected(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def close(self) -> None:
        """Close the connection and detach callbacks. Safe to call twice."""
        self._stop_requested = True
        self._callbacks = TransportCallbacks()
        ws = self._websocket
        if ws is not None:
            with suppress(Exception):
                await ws.close()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._websocket = None
        self._connected.clear()
        self._subscriptions.clear()
        logger.info("Event channel closed")

    async def subscribe_to_conversation(self, conversation_id: str) -> bool:
        conv = str(conversation_id)
        if not await self.send(SUBSCRIBE_EVENT, {"conversationId": conv}):
            return False
        self._subscriptions.add(conv)
        return True

    async def unsubscribe_from_conversation(self, conversation_id: str) -> bool:
        conv = str(conversation_id)
        # Local delivery stops now, even if the server is unreachable.
        self._subscriptions.discard(conv)
        return await self.send(UNSUBSCRIBE_EVENT, {"conversationId": conv})

    async def request_status(self) -> bool:
        return await self.send(REQUEST_STATUS_EVENT)

    async def request_qr(self) -> bool:
        return await self.send(REQUEST_QR_EVENT)

    async def send(self, event: str, data: Any = None) -> bool:
        """Send one frame. Dropped (False) when no connection is open."""
        ws = self._websocket
        if ws is None:
            logger.debug("Not connected; dropping %s", event)
            return False
        try:
            await ws.send(encode_frame(event, data))
        except Exception:
            logger.debug("Send of %s failed", event, exc_info=True)
            return False
        return True

    async def _run(self) -> None:
        logger.info("Connecting to event channel at %s", self.url)
        failures = 0
        while not self._stop_requested:
            was_connected = False
            try:
                async with self._connect(
                    self.url,
                    additional_headers=self._headers or None,
                    open_timeout=self._connect_timeout_s,
                ) as ws:
                    self._websocket = ws
                    self._connected.set()
                    was_connected = True
                    failures = 0
                    logger.info("Connected to event channel")
                    await self._notify("on_connected")
                    await self._resubscribe(ws)
                    async for raw in ws:
                        await self._handle_frame(raw)
                reason = "connection closed by server"
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                reason = str(exc) or exc.__class__.__name__
                if isinstance(exc, (EOFError, ConnectionRefusedError)):
                    logger.info("Event channel unavailable (%s)", reason)
                elif isinstance(exc, OSError):
                    logger.info("Event channel socket error (%s)", reason)
                else:
                    logger.warning("Event channel error (%s)", reason)
            finally:
                self._websocket = None
                self._connected.clear()

            if self._stop_requested:
                break
            if was_connected:
                logger.warning("Event channel disconnected: %s", reason)
                await self._notify("on_connection_lost", reason)
            failures += 1
            if failures > self._reconnect_attempts:
                logger.error(
                    "Event channel reconnection failed after %d attempt(s): %s",
                    self._reconnect_attempts,
                    reason,
                )
                await self._notify("on_connection_failed", reason)
                return
            logger.info(
                "Reconnecting in %.1fs (attempt %d/%d)",
                self._reconnect_delay_s,
                failures,
                self._reconnect_attempts,
            )
            await asyncio.sleep(self._reconnect_delay_s)

    async def _resubscribe(self, ws) -> None:
        for conv in sorted(self._subscriptions):
            try:
                await ws.send(encode_frame(SUBSCRIBE_EVENT, {"conversationId": conv}))
            except Exception:
                logger.debug("Resubscribe to %s failed", conv, exc_info=True)

    async def _handle_frame(self, raw: str | bytes) -> None:
        decoded = decode_frame(raw)
        if decoded is None:
            logger.debug("Skipping malformed frame: %r", raw[:200])
            return
        name, payload = decoded
        route = INBOUND_EVENTS.get(name)
        if route is None:
            logger.debug("Ignoring event %s", name)
            return
        attr, scoped = route
        if scoped:
            conv = conversation_id_of(payload)
            if conv is not None and conv not in self._subscriptions:
                return
        await self._notify(attr, payload)

    async def _notify(self, attr: str, *args: Any) -> None:
        callback = getattr(self._callbacks, attr, None)
        if callback is None:
            return
        try:
            await _maybe_await(callback(*args))
        except Exception:
            logger.exception("Callback %s failed", attr)
