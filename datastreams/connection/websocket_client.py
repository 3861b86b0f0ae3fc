# WebSocket Client - Streaming Session Manager
# Authenticated Data Streams WebSocket session with reconnect and resubscribe

"""
WebSocket Client Module

Responsibilities:
- Sign every connection attempt (HMAC handshake headers)
- Connection state management
- Heartbeat while connected
- Auto-reconnect with bounded exponential backoff
- Replay subscriptions after every successful (re)connect
- Parse inbound frames and dispatch them to event callbacks

State machine:
    DISCONNECTED --connect()--> CONNECTING --open--> CONNECTED
    CONNECTING --open failed--> DISCONNECTED (explicit connect)
    CONNECTED --disconnect()--> DISCONNECTED (subscriptions cleared)
    CONNECTED --lost, attempts left--> RECONNECTING --delay--> CONNECTING
    CONNECTED --lost, attempts exhausted--> DISCONNECTED

on_disconnect fires once when a live session is lost and once more for
every failed reconnect attempt, so with max_reconnect_attempts=N it
fires N+1 times before the manager gives up.

Every transport is tagged with a session id. disconnect() bumps the id,
so events still in flight from an old transport are ignored. Callbacks
are always invoked outside the transition lock, so disconnect() may be
called from any of them.
"""

import asyncio
import functools
import inspect
import json
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Union

from ..auth.signer import RequestSigner
from ..errors import (
    ConnectInProgressError,
    ConnectionFailedError,
    MalformedMessageError,
    NotConnectedError,
    WebSocketError,
)
from ..processors.message_parser import MessageParser, MessageType, StreamMessage
from ..utils.helpers import mask_secret
from ..utils.logger import setup_logger
from .heartbeat_manager import HeartbeatManager
from .subscription_manager import SubscriptionManager
from .transport import WebSocketTransport

DEFAULT_WS_URL = "wss://ws.testnet-dataengine.chain.link/api/v1/ws"
NORMAL_CLOSURE = 1000


class ConnectionState(Enum):
    """WebSocket connection states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before reconnect attempt `attempt` (1-based): base * 2^(attempt-1)"""
    return base_delay * (2 ** (attempt - 1))


def _as_feed_list(feed_ids: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(feed_ids, str):
        return [feed_ids]
    return list(feed_ids)


class DataStreamsWebSocket:
    """
    Streaming session manager for the Data Streams WebSocket API

    Features:
    - Signed handshake on every attempt (fresh timestamp each time)
    - Auto-reconnect with exponential backoff, capped attempts
    - Subscription replay after reconnect
    - Heartbeat mechanism
    - Event callbacks (one handler per event, re-registration replaces)
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        url: str = DEFAULT_WS_URL,
        reconnect_delay: float = 1.0,
        max_reconnect_attempts: int = 5,
        heartbeat_interval: float = 30.0,
        open_timeout: float = 10.0,
        close_timeout: float = 10.0,
        transport_factory: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize WebSocket client

        Args:
            api_key: Data Streams API key
            api_secret: Data Streams API secret (used for HMAC only)
            url: WebSocket URL
            reconnect_delay: Base reconnect delay in seconds
            max_reconnect_attempts: Reconnect attempts after a lost session
            heartbeat_interval: Ping interval in seconds
            open_timeout: Handshake timeout in seconds
            close_timeout: Closing handshake timeout in seconds
            transport_factory: Builds a transport from on_frame/on_close/on_error
                keyword callbacks (defaults to WebSocketTransport)
        """
        self.signer = RequestSigner.from_keys(api_key, api_secret)
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.heartbeat_interval = heartbeat_interval

        if transport_factory is None:
            transport_factory = functools.partial(
                WebSocketTransport,
                open_timeout=open_timeout,
                close_timeout=close_timeout,
            )
        self._transport_factory = transport_factory

        # Connection state
        self.state = ConnectionState.DISCONNECTED
        self._transport = None
        self._session_id = 0
        self._reconnect_attempts = 0
        self._reconnect_task: Optional[asyncio.Task] = None
        self._transition_lock = asyncio.Lock()

        self._subscriptions = SubscriptionManager()
        self._parser = MessageParser()
        self._heartbeat = HeartbeatManager(self._send_ping, interval=heartbeat_interval)

        # Event callbacks
        self.on_connect_callback: Optional[Callable] = None
        self.on_disconnect_callback: Optional[Callable] = None
        self.on_message_callback: Optional[Callable] = None
        self.on_error_callback: Optional[Callable] = None

        self._stats = {
            'connections': 0,
            'reconnect_attempts': 0,
            'messages_received': 0,
            'reports_dispatched': 0,
            'parse_errors': 0,
            'errors': 0,
        }

        self.logger = setup_logger("DataStreamsWebSocket", "INFO")
        self.logger.debug(f"Client created for key {mask_secret(api_key)}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def connect(self, feed_ids: Optional[Union[str, Iterable[str]]] = None):
        """
        Open the streaming session

        Args:
            feed_ids: Feeds for the connection URL. When omitted, the feeds
                of the previous explicit connect are reused.

        Raises:
            ConnectInProgressError: another attempt is pending
            HandshakeError: server rejected the signed upgrade
            ConnectionFailedError: network failure or timeout
        """
        if self.state == ConnectionState.CONNECTED:
            self.logger.warning("Already connected")
            return
        if self.state == ConnectionState.CONNECTING:
            raise ConnectInProgressError()

        if feed_ids is not None:
            self._subscriptions.set_baseline(_as_feed_list(feed_ids))

        # an explicit connect supersedes a scheduled reconnect
        await self._cancel_reconnect()

        try:
            await self._open_session()
        except ConnectionFailedError as e:
            self.state = ConnectionState.DISCONNECTED
            self.logger.error(f"Connection failed: {e}")
            await self._emit_error(e)
            raise
        except BaseException:
            # cancelled mid-handshake; drop the attempt so connect() can be retried
            if self.state == ConnectionState.CONNECTING:
                self._session_id += 1
                self.state = ConnectionState.DISCONNECTED
                self.logger.warning("Connection attempt cancelled")
            raise

    async def disconnect(self):
        """
        Close the session and forget all subscriptions

        Cancels any pending reconnect. Safe to call from any callback.
        """
        self.logger.info("Disconnecting...")
        was_active = self.state != ConnectionState.DISCONNECTED
        self._session_id += 1

        await self._cancel_reconnect()

        async with self._transition_lock:
            await self._heartbeat.stop()
            transport, self._transport = self._transport, None
            if transport is not None:
                await transport.close(NORMAL_CLOSURE, "Client disconnect")
            self._subscriptions.clear()
            self.state = ConnectionState.DISCONNECTED

        self.logger.info("✅ Disconnected")
        if was_active:
            await self._fire(self.on_disconnect_callback)

    async def subscribe(self, feed_ids: Union[str, Iterable[str]]):
        """
        Subscribe to feeds on the open session

        Raises:
            NotConnectedError: session is not connected
        """
        feed_ids = _as_feed_list(feed_ids)
        await self._send_subscription("subscribe", feed_ids)
        self._subscriptions.add(feed_ids)

    async def unsubscribe(self, feed_ids: Union[str, Iterable[str]]):
        """
        Unsubscribe from feeds on the open session

        Raises:
            NotConnectedError: session is not connected
        """
        feed_ids = _as_feed_list(feed_ids)
        await self._send_subscription("unsubscribe", feed_ids)
        self._subscriptions.remove(feed_ids)

    def is_connected(self) -> bool:
        return (
            self._transport is not None
            and self.state == ConnectionState.CONNECTED
            and self._transport.is_open()
        )

    def get_state(self) -> ConnectionState:
        return self.state

    @property
    def subscribed_feeds(self) -> List[str]:
        return self._subscriptions.snapshot()

    @property
    def connected_feed_ids(self) -> List[str]:
        return self._subscriptions.baseline

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def get_stats(self) -> dict:
        stats = dict(self._stats)
        stats['state'] = self.state.value
        stats['subscribed_feeds'] = len(self._subscriptions.snapshot())
        stats['parser'] = self._parser.get_stats()
        stats['pings_sent'] = self._heartbeat.pings_sent
        return stats

    # Event callback setters
    def on_connect(self, callback: Callable):
        """Set on_connect callback"""
        self.on_connect_callback = callback

    def on_disconnect(self, callback: Callable):
        """Set on_disconnect callback"""
        self.on_disconnect_callback = callback

    def on_message(self, callback: Callable):
        """Set on_message callback (receives StreamMessage reports)"""
        self.on_message_callback = callback

    def on_error(self, callback: Callable):
        """Set on_error callback (receives Exception instances)"""
        self.on_error_callback = callback

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _open_session(self) -> bool:
        """
        Open a new transport for the current baseline

        Returns:
            True if the session is now connected, False if disconnect()
            superseded the attempt while the handshake was in flight
        """
        self.state = ConnectionState.CONNECTING
        self._session_id += 1
        session_id = self._session_id

        url, signed_path = self._subscriptions.connection_url(self.url)
        signed = self.signer.sign_websocket(signed_path)
        transport = self._transport_factory(
            on_frame=functools.partial(self._handle_frame, session_id),
            on_close=functools.partial(self._handle_close, session_id),
            on_error=functools.partial(self._handle_transport_error, session_id),
        )

        self.logger.info(f"Connecting to {url}...")
        try:
            await transport.open(url, signed.headers())
        except ConnectionFailedError:
            if session_id != self._session_id:
                return False
            raise

        if session_id != self._session_id:
            self.logger.info("Connection attempt superseded by disconnect")
            await transport.close(NORMAL_CLOSURE, "Client disconnect")
            return False

        self._transport = transport
        self.state = ConnectionState.CONNECTED
        self._reconnect_attempts = 0
        self._stats['connections'] += 1
        self._heartbeat.start()
        transport.start_reading()
        self.logger.info("✅ Connected successfully")

        await self._fire(self.on_connect_callback)

        if self._is_current(session_id) and self._subscriptions.has_subscriptions():
            feeds = self._subscriptions.snapshot()
            try:
                await self.subscribe(feeds)
                self.logger.info(f"Resubscribed to {len(feeds)} feeds")
            except WebSocketError as e:
                self.logger.error(f"Resubscription failed: {e}")
                await self._emit_error(e)

        return True

    async def _handle_session_lost(self, session_id: int):
        """Transport closed or reconnect attempt failed"""
        async with self._transition_lock:
            if session_id != self._session_id:
                return
            await self._heartbeat.stop()
            self._transport = None

            if self._reconnect_attempts < self.max_reconnect_attempts:
                self._reconnect_attempts += 1
                delay = backoff_delay(self.reconnect_delay, self._reconnect_attempts)
                self.state = ConnectionState.RECONNECTING
                self._reconnect_task = asyncio.create_task(
                    self._reconnect(delay, self._reconnect_attempts)
                )
            else:
                self.state = ConnectionState.DISCONNECTED
                self.logger.error(
                    f"Giving up after {self._reconnect_attempts} reconnect attempts"
                )

        await self._fire(self.on_disconnect_callback)

    async def _reconnect(self, delay: float, attempt: int):
        self.logger.info(
            f"Reconnecting in {delay}s (attempt {attempt}/{self.max_reconnect_attempts})..."
        )
        await asyncio.sleep(delay)

        self._stats['reconnect_attempts'] += 1
        try:
            await self._open_session()
        except ConnectionFailedError as e:
            failed_session = self._session_id
            self.state = ConnectionState.RECONNECTING
            self.logger.error(f"Reconnection failed: {e}")
            await self._emit_error(e)
            await self._handle_session_lost(failed_session)

    async def _cancel_reconnect(self):
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _is_current(self, session_id: int) -> bool:
        return session_id == self._session_id and self.state == ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    async def _handle_frame(self, session_id: int, raw: Union[str, bytes]):
        if session_id != self._session_id:
            return
        self._stats['messages_received'] += 1

        try:
            message = self._parser.parse(raw)
        except MalformedMessageError as e:
            self._stats['parse_errors'] += 1
            await self._emit_error(e)
            return

        await self._dispatch(message)

    async def _dispatch(self, message: StreamMessage):
        if message.message_type == MessageType.REPORT:
            if message.report is None:
                self.logger.debug("Dropping report frame without payload")
                return
            self._stats['reports_dispatched'] += 1
            await self._fire(self.on_message_callback, message)
        elif message.message_type == MessageType.ERROR:
            await self._emit_error(WebSocketError(message.error or "Unknown error"))
        elif message.message_type == MessageType.HEARTBEAT:
            self.logger.debug("Received heartbeat")
        else:
            self.logger.warning(f"Unknown message type: {message.raw}")

    async def _handle_close(self, session_id: int, code: int, reason: str):
        if session_id != self._session_id:
            return
        self.logger.warning(f"WebSocket closed: {code} - {reason}")
        await self._handle_session_lost(session_id)

    async def _handle_transport_error(self, session_id: int, error: Exception):
        if session_id != self._session_id:
            return
        await self._emit_error(error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send_subscription(self, request_type: str, feed_ids: List[str]):
        if not self.is_connected():
            raise NotConnectedError()
        request = self._subscriptions.build_request(request_type, feed_ids)
        await self._transport.send(json.dumps(request))
        self.logger.info(f"Sent {request_type} for {len(feed_ids)} feeds")

    async def _send_ping(self):
        transport = self._transport
        if transport is not None and transport.is_open():
            await transport.ping()

    async def _emit_error(self, error: Exception):
        self._stats['errors'] += 1
        await self._fire(self.on_error_callback, error)

    async def _fire(self, callback: Optional[Callable], *args):
        """Invoke a consumer callback (sync or async); errors are logged"""
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Callback error: {e}")
