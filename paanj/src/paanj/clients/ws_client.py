"""
Streaming channel: one resilient websocket connection plus event fan-out.

The client opens ``<ws_url>/ws?token=<access token>``, decodes every
inbound JSON frame and dispatches resource events to the listener
registry.  When the connection drops unexpectedly it reconnects with a
fixed interval or exponential backoff (optionally jittered) until the
attempt budget is spent.  ``disconnect()`` stops all of that.

Only one connection attempt is active at a time.  Rotating the access
token while connected closes the socket and opens a new one with the
new token; there is no in-band re-authentication.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import websockets

from ..backoff import ReconnectBackoff
from ..errors import NotAuthenticatedError, NotConnectedError
from ..listeners import Listener, ListenerRegistry, Unsubscribe
from ..models import ConnectionState, Subscription, event_key

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class WebSocketClient:
    """Websocket client with automatic reconnection and event listeners."""

    def __init__(
        self,
        ws_url: str,
        *,
        auto_reconnect: bool = True,
        reconnect_interval: int = 5000,
        max_reconnect_attempts: int = 10,
        backoff_base: float = 0,
        backoff_max: float = 30000,
        jitter: bool = True,
        connector: Optional[Connector] = None,
        backoff: Optional[ReconnectBackoff] = None,
    ) -> None:
        """Construct the streaming client.

        Args:
            ws_url: Base websocket URL, e.g. ``wss://ws.example.com``.
            auto_reconnect: Reconnect after an unexpected close.
            reconnect_interval: Fixed reconnect delay in ms when
                ``backoff_base`` is 0.
            max_reconnect_attempts: Consecutive attempts before giving up.
            backoff_base: First exponential delay in ms; 0 disables backoff.
            backoff_max: Upper bound for the exponential delay in ms.
            jitter: Scale each delay by a random factor in ``[0.8, 1.2]``.
            connector: Coroutine opening a connection for a URL.  Defaults
                to :func:`websockets.connect`.
            backoff: Pre-built delay policy, overriding the backoff options.
        """
        self.ws_url = ws_url.rstrip("/")
        self.auto_reconnect = auto_reconnect
        self.max_reconnect_attempts = max_reconnect_attempts
        self._backoff = backoff or ReconnectBackoff(
            reconnect_interval=reconnect_interval,
            backoff_base=backoff_base,
            backoff_max=backoff_max,
            jitter=jitter,
        )
        self._connector: Connector = connector or websockets.connect
        self._listeners = ListenerRegistry()
        self._access_token: Optional[str] = None
        self._auto_reconnect = auto_reconnect
        self._state = ConnectionState.IDLE
        self._ws: Any = None
        self._attempt: Optional[asyncio.Future] = None
        self._reader: Optional[asyncio.Future] = None
        self._reconnect_task: Optional[asyncio.Future] = None
        self._rotation_task: Optional[asyncio.Future] = None
        self._reconnect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def listeners(self) -> ListenerRegistry:
        return self._listeners

    def is_connected(self) -> bool:
        return self._state is ConnectionState.OPEN

    def build_url(self) -> str:
        token = self._access_token or ""
        return f"{self.ws_url}/ws?token={quote(token, safe='')}"

    def set_access_token(self, token: Optional[str]) -> None:
        """Store ``token``; if connected, reconnect in the background so the server sees it.

        The caller never waits for the new handshake.
        """
        self._access_token = token
        if self._state is not ConnectionState.OPEN:
            return
        logger.info("Access token changed; re-establishing websocket connection")
        self._state = ConnectionState.CLOSING
        ws, self._ws = self._ws, None
        self._cancel_rotation()
        self._rotation_task = asyncio.ensure_future(self._rotate(ws))

    async def _rotate(self, ws: Any) -> None:
        await self._close_socket(ws)
        if self._state is not ConnectionState.CLOSING:
            # disconnect() won the race while the old socket was closing
            return
        try:
            await self._start_attempt()
        except Exception as exc:
            logger.error("Reconnection with refreshed token failed: %s", exc)

    def _cancel_rotation(self) -> None:
        task, self._rotation_task = self._rotation_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def connect(self) -> None:
        """Open the connection and return once it is established.

        Raises:
            NotAuthenticatedError: if no access token has been set.
            Exception: the transport error if the connection fails before
                opening.  Errors after opening go to ``error`` listeners.
        """
        if not self._access_token:
            raise NotAuthenticatedError("Access token required for connection. Authenticate first.")
        self._auto_reconnect = self.auto_reconnect
        self._cancel_reconnect()
        if self._state is not ConnectionState.OPEN:
            self._reconnect_attempts = 0
        await self._start_attempt()

    async def _start_attempt(self) -> None:
        if self._state is ConnectionState.OPEN:
            return
        if self._attempt is None or self._attempt.done():
            self._attempt = asyncio.ensure_future(self._open())
        await asyncio.shield(self._attempt)

    async def _open(self) -> None:
        self._state = ConnectionState.CONNECTING
        try:
            ws = await self._connector(self.build_url())
        except Exception as exc:
            logger.warning("Paanj Client WebSocket connection failed: %s", exc)
            self._listeners.emit("error", exc)
            self._handle_close()
            raise
        if self._state is not ConnectionState.CONNECTING:
            # disconnect() was called while the handshake was in progress
            await self._close_socket(ws)
            return
        self._ws = ws
        self._state = ConnectionState.OPEN
        self._reconnect_attempts = 0
        logger.info("Paanj Client WebSocket connected")
        self._reader = asyncio.ensure_future(self._read_loop(ws))

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for message in ws:
                self._handle_message(message)
        except Exception as exc:
            logger.warning("Paanj Client WebSocket error: %s", exc)
            self._listeners.emit("error", exc)
        finally:
            if self._ws is ws:
                self._ws = None
                self._handle_close()

    def _handle_close(self) -> None:
        if self._state is ConnectionState.CLOSED_TERMINAL:
            return
        self._state = ConnectionState.CLOSED_RETRYABLE
        logger.info("Paanj Client WebSocket disconnected")
        if not self._auto_reconnect:
            return
        if self._reconnect_attempts < self.max_reconnect_attempts:
            self._schedule_reconnect()
            return
        self._state = ConnectionState.CLOSED_TERMINAL
        logger.warning(
            "Giving up on reconnection after %d attempts", self._reconnect_attempts
        )
        self._listeners.emit("reconnect_failed", self._reconnect_attempts)

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        self._reconnect_attempts += 1
        delay_ms = self._backoff.delay_ms(self._reconnect_attempts)
        logger.info(
            "Reconnecting in %dms (attempt %d/%d)",
            delay_ms,
            self._reconnect_attempts,
            self.max_reconnect_attempts,
        )
        self._listeners.emit("reconnecting", self._reconnect_attempts)
        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay_ms / 1000.0))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if self._state is not ConnectionState.CLOSED_RETRYABLE:
            return
        try:
            await self._start_attempt()
        except Exception as exc:
            logger.error("Reconnection failed: %s", exc)

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()

    @staticmethod
    async def _close_socket(ws: Any) -> None:
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as exc:
            logger.debug("Error while closing websocket: %s", exc)

    def _handle_message(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.error("Failed to parse WebSocket message: %s", exc)
            return
        if not isinstance(message, dict):
            return
        msg_type = message.get("type")
        if msg_type == "event":
            name = message.get("event")
            if not name:
                return
            data = message.get("data")
            self._listeners.emit(
                event_key(message.get("resource", ""), message.get("resourceId", ""), name), data
            )
            self._listeners.emit(name, data)
        elif msg_type == "subscribed":
            logger.info(
                "Subscribed to %s:%s events: %s",
                message.get("resource"),
                message.get("id") or "global",
                message.get("events"),
            )
        elif msg_type == "pong":
            pass

    async def send(self, data: Any) -> None:
        """Serialise ``data`` as JSON and send it immediately.

        Raises:
            NotConnectedError: if the connection is not open.  Nothing is
                queued for later delivery.
        """
        if self._state is not ConnectionState.OPEN or self._ws is None:
            raise NotConnectedError("WebSocket not connected")
        await self._ws.send(json.dumps(data))

    async def subscribe(self, subscription: Subscription) -> None:
        await self.send(subscription)

    def on(self, event: str, handler: Listener) -> Unsubscribe:
        return self._listeners.on(event, handler)

    def emit(self, event: str, data: Any) -> None:
        self._listeners.emit(event, data)

    async def disconnect(self) -> None:
        """Close the connection and stop reconnecting.  Safe to call twice."""
        self._auto_reconnect = False
        self._cancel_reconnect()
        self._cancel_rotation()
        already_closed = self._state is ConnectionState.CLOSED_TERMINAL
        self._state = ConnectionState.CLOSED_TERMINAL
        ws, self._ws = self._ws, None
        await self._close_socket(ws)
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if not already_closed:
            logger.info("Paanj Client WebSocket disconnected by client")
