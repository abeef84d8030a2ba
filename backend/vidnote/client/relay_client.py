"""
Async client for the /ws comment relay.

RelayClient owns one outbound socket at a time. On open it joins the room for
its video, then dispatches inbound envelopes to the registered callbacks until
the socket drops. An unexpected drop schedules a reconnect after a fixed
interval, up to ``reconnect_attempts`` consecutive tries; a successful open
resets the counter. ``disconnect()`` cancels any pending reconnect and stops
the policy until ``connect()`` is called again.

Callbacks may be plain functions or coroutine functions.
"""

import asyncio
import contextlib
import inspect
import json
import logging
from enum import IntEnum
from typing import Any, Awaitable, Callable
from urllib.parse import urlsplit, urlunsplit

from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException

from vidnote.config import settings
from vidnote.core import events
from vidnote.schemas.envelope import JoinEnvelope, NewCommentEnvelope, TypingEnvelope

logger = logging.getLogger(__name__)

CONNECT_ERROR = "Failed to connect to real-time collaboration service"

# Errors the transport can raise while connecting, reading or writing.
TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)

Callback = Callable[..., Any]
Connector = Callable[[str], Awaitable[Any]]


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


def build_ws_url(base_url: str, path: str = "/ws") -> str:
    """Turn a page origin (``https://host``) into the relay endpoint (``wss://host/ws``)."""
    parts = urlsplit(base_url)
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    return urlunsplit((scheme, parts.netloc, path, "", ""))


async def _invoke(callback: Callback | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as exc:
        logger.error("Relay callback %r failed: %s", callback, exc, exc_info=True)


class RelayClient:
    def __init__(
        self,
        url: str | None = None,
        *,
        video_id: int | str | None = None,
        user_id: int | str | None = None,
        on_new_comment: Callback | None = None,
        on_typing_indicator: Callback | None = None,
        on_open: Callback | None = None,
        on_close: Callback | None = None,
        on_message: Callback | None = None,
        on_error: Callback | None = None,
        reconnect_interval: float | None = None,
        reconnect_attempts: int | None = None,
        auto_reconnect: bool | None = None,
        should_connect: bool = True,
        connector: Connector | None = None,
    ) -> None:
        self.url = url or settings.RELAY_URL
        self.video_id = video_id
        self.user_id = user_id

        self.on_new_comment = on_new_comment
        self.on_typing_indicator = on_typing_indicator
        self.on_open = on_open
        self.on_close = on_close
        self.on_message = on_message
        self.on_error = on_error

        self.reconnect_interval = settings.RECONNECT_INTERVAL if reconnect_interval is None else reconnect_interval
        self.reconnect_attempts = settings.RECONNECT_ATTEMPTS if reconnect_attempts is None else reconnect_attempts
        self.auto_reconnect = settings.AUTO_RECONNECT if auto_reconnect is None else auto_reconnect
        self.should_connect = should_connect

        self._connector: Connector = connector or connect
        self._socket: Any = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._stopped = False
        # Bumped by connect()/disconnect(); an _open() started under an older
        # generation discards whatever socket it gets.
        self._generation = 0

        self.ready_state = ReadyState.CLOSED
        self.reconnect_count = 0
        self.error: str | None = None
        self.last_message: dict[str, Any] | None = None

    @property
    def connected(self) -> bool:
        return self.ready_state == ReadyState.OPEN

    async def __aenter__(self) -> "RelayClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket, tearing down any existing one first."""
        self._generation += 1
        self._cancel_reconnect()
        await self._teardown()
        if not self.should_connect:
            return
        self._stopped = False
        await self._open()

    async def disconnect(self) -> None:
        """Close the socket and suppress automatic reconnection."""
        self._stopped = True
        self._generation += 1
        self._cancel_reconnect()
        await self._teardown()

    async def _open(self) -> None:
        generation = self._generation
        logger.info("Connecting to relay %s", self.url)
        self.ready_state = ReadyState.CONNECTING
        try:
            socket = await self._connector(self.url)
        except TRANSPORT_ERRORS as exc:
            if generation != self._generation:
                logger.debug("Ignoring failed connect superseded by connect()/disconnect(): %s", exc)
                return
            await self._transport_error(exc)
            await self._handle_close()
            return

        if generation != self._generation or self._stopped:
            logger.info("Relay connect superseded while in flight, closing new socket")
            try:
                await socket.close()
            except TRANSPORT_ERRORS as exc:
                logger.debug("Error while closing relay socket: %s", exc)
            return

        self._socket = socket
        self.ready_state = ReadyState.OPEN
        self.reconnect_count = 0
        self.error = None
        logger.info("Relay connection established")

        if self.video_id is not None and self.user_id is not None:
            await self.send_message(JoinEnvelope(video_id=self.video_id, user_id=self.user_id).to_wire())
        await _invoke(self.on_open)
        self._reader_task = asyncio.create_task(self._read_loop(socket))

    async def _read_loop(self, socket: Any) -> None:
        try:
            async for raw in socket:
                await self._dispatch(raw)
        except TRANSPORT_ERRORS as exc:
            await self._transport_error(exc)

        # A socket replaced or closed by connect()/disconnect() is not a drop.
        if socket is self._socket:
            self._socket = None
            self._reader_task = None
            await self._handle_close()

    async def _handle_close(self) -> None:
        logger.info("Relay connection closed")
        self.ready_state = ReadyState.CLOSED
        await _invoke(self.on_close)

        if self._stopped or not self.auto_reconnect:
            return
        if self.reconnect_attempts != -1 and self.reconnect_count >= self.reconnect_attempts:
            logger.warning("Giving up on relay after %d reconnect attempt(s)", self.reconnect_count)
            return

        limit = "unlimited" if self.reconnect_attempts == -1 else self.reconnect_attempts
        logger.info("Attempting to reconnect (%d/%s) in %.1fs", self.reconnect_count + 1, limit, self.reconnect_interval)
        self._reconnect_task = asyncio.create_task(self._reconnect_later())

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self.reconnect_interval)
        self.reconnect_count += 1
        try:
            # Stays registered while connecting so disconnect() can cancel it.
            await self._open()
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _teardown(self) -> None:
        socket, self._socket = self._socket, None
        reader, self._reader_task = self._reader_task, None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        if socket is not None:
            self.ready_state = ReadyState.CLOSING
            try:
                await socket.close()
            except TRANSPORT_ERRORS as exc:
                logger.debug("Error while closing relay socket: %s", exc)
            self.ready_state = ReadyState.CLOSED
            logger.info("Closed relay connection")
            await _invoke(self.on_close)
        else:
            self.ready_state = ReadyState.CLOSED

    async def _transport_error(self, exc: BaseException) -> None:
        logger.error("Relay connection error: %s", exc)
        self.error = CONNECT_ERROR
        await _invoke(self.on_error, exc)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_raw_message(self, text: str) -> bool:
        """Write one frame if the socket is open. Returns False if it could not be written."""
        if self._socket is None or self.ready_state != ReadyState.OPEN:
            return False
        try:
            await self._socket.send(text)
        except TRANSPORT_ERRORS as exc:
            logger.warning("Failed to send relay message: %s", exc)
            return False
        return True

    async def send_message(self, envelope: dict[str, Any]) -> bool:
        return await self.send_raw_message(json.dumps(envelope))

    async def send_new_comment(self, comment: dict[str, Any]) -> bool:
        if self.video_id is None:
            return False
        return await self.send_message(NewCommentEnvelope(video_id=self.video_id, comment=comment).to_wire())

    async def send_typing_indicator(self, is_typing: bool) -> bool:
        if self.video_id is None or self.user_id is None:
            return False
        envelope = TypingEnvelope(video_id=self.video_id, user_id=self.user_id, is_typing=is_typing)
        return await self.send_message(envelope.to_wire())

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Error parsing relay message: %s", exc)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object relay message: %r", data)
            return

        self.last_message = data
        await _invoke(self.on_message, data)

        event_type = data.get("type")
        if event_type == events.JOINED:
            logger.info("Successfully joined video room %s", data.get("videoId"))
        elif event_type == events.NEW_COMMENT:
            if data.get("comment") is not None:
                await _invoke(self.on_new_comment, data["comment"])
        elif event_type == events.TYPING:
            if data.get("userId") is not None:
                await _invoke(self.on_typing_indicator, data["userId"], bool(data.get("isTyping")))
        else:
            logger.info("Received unknown message type: %r", event_type)
