# WebSocket Transport - One Physical Connection
# Thin wrapper over a websockets client connection

"""
Transport Module

Responsibilities:
- Open one WebSocket connection with signed handshake headers
- Send frames and protocol pings
- Read frames in a background task and report them to the owner
- Report remote closes and transport failures to the owner

A transport is single use: once closed it never reopens. Closes
initiated by the owner are not reported back through on_close.
Server pings are answered by the websockets library.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional, Union

import websockets
from websockets.protocol import State

from ..errors import ConnectionFailedError, HandshakeError, NotConnectedError, TransportError
from ..utils.logger import setup_logger

ABNORMAL_CLOSURE = 1006

FrameHandler = Callable[[Union[str, bytes]], Awaitable[None]]
CloseHandler = Callable[[int, str], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]


class WebSocketTransport:
    """
    Owns exactly one websockets client connection
    """

    def __init__(
        self,
        on_frame: FrameHandler,
        on_close: CloseHandler,
        on_error: ErrorHandler,
        open_timeout: float = 10.0,
        close_timeout: float = 10.0,
    ):
        self.on_frame = on_frame
        self.on_close = on_close
        self.on_error = on_error
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout

        self.connection: Optional[websockets.ClientConnection] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._closed = False
        self.logger = setup_logger("WebSocketTransport", "INFO")

    async def open(self, url: str, headers: Dict[str, str]):
        """
        Open the connection

        Raises:
            HandshakeError: server rejected the upgrade (HTTP status)
            ConnectionFailedError: network failure or timeout
        """
        if self.connection is not None or self._closed:
            raise ConnectionFailedError("Transport has already been used")

        try:
            self.connection = await websockets.connect(
                url,
                additional_headers=headers,
                ping_interval=None,  # heartbeat is driven by HeartbeatManager
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
            )
        except websockets.exceptions.InvalidStatus as e:
            status = e.response.status_code
            self._closed = True
            raise HandshakeError(f"WebSocket handshake rejected: HTTP {status}", status_code=status) from e
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            self._closed = True
            raise ConnectionFailedError(f"WebSocket error: {e}") from e

    def start_reading(self):
        """Start delivering inbound frames to on_frame"""
        if self._reader_task is None and self.connection is not None:
            self._reader_task = asyncio.create_task(self._receive_loop())

    def is_open(self) -> bool:
        return (
            self.connection is not None
            and not self._closed
            and self.connection.state is State.OPEN
        )

    async def send(self, frame: str):
        if not self.is_open():
            raise NotConnectedError()
        try:
            await self.connection.send(frame)
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Send failed: {e}") from e

    async def ping(self):
        if not self.is_open():
            raise NotConnectedError()
        try:
            # the pong waiter is not awaited; liveness is the server's concern
            await self.connection.ping()
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportError(f"Ping failed: {e}") from e

    async def close(self, code: int = 1000, reason: str = ""):
        """Close the connection; closing twice is a no-op"""
        if self._closed:
            return
        self._closed = True

        reader = self._reader_task
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await asyncio.wait_for(reader, timeout=5.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass

        if self.connection is not None:
            try:
                await asyncio.wait_for(self.connection.close(code, reason), timeout=self.close_timeout)
            except asyncio.TimeoutError:
                self.logger.warning("Connection close timeout - forcing")
            except (OSError, websockets.exceptions.WebSocketException) as e:
                self.logger.warning(f"Error closing connection: {e}")

    async def _abort(self):
        if self.connection.state is State.CLOSED:
            return
        try:
            await asyncio.wait_for(self.connection.close(1011, "Receive failure"), timeout=self.close_timeout)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            self.logger.warning(f"Error aborting connection: {e}")

    async def _deliver(self, message: Union[str, bytes]):
        """Hand one frame to the owner; a failing handler must not stop the reader"""
        try:
            await self.on_frame(message)
        except Exception as e:
            self.logger.error(f"Frame handler error: {e}", exc_info=True)
            await self.on_error(TransportError(f"Frame handler error: {e}"))

    async def _receive_loop(self):
        try:
            async for message in self.connection:
                await self._deliver(message)
        except asyncio.CancelledError:
            self.logger.debug("Receive loop cancelled")
            raise
        except websockets.exceptions.ConnectionClosedError as e:
            if not self._closed:
                self.logger.warning(f"Connection closed abnormally: {e}")
                await self.on_error(TransportError(f"Connection closed abnormally: {e}"))
        except (OSError, websockets.exceptions.WebSocketException) as e:
            if not self._closed:
                self.logger.error(f"Receive loop error: {e}")
                await self.on_error(TransportError(f"Receive loop error: {e}"))
                await self._abort()

        if self._closed:
            return
        self._closed = True
        code = self.connection.close_code or ABNORMAL_CLOSURE
        reason = self.connection.close_reason or ""
        await self.on_close(code, reason)
