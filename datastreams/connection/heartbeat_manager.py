# Heartbeat Manager - Keep Connection Alive
# Outbound protocol pings on a fixed interval while connected

"""
Heartbeat Manager Module

Responsibilities:
- Send a ping every `interval` seconds regardless of other traffic
- Stop cleanly before the transport is closed

Pongs are handled by the websockets library and never surface here.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from ..errors import DataStreamsError
from ..utils.logger import setup_logger


class HeartbeatManager:
    """
    Manages WebSocket heartbeat (ping)
    """

    def __init__(self, send_ping: Callable[[], Awaitable[None]], interval: float = 30.0):
        """
        Args:
            send_ping: Coroutine function sending one ping
            interval: Seconds between pings
        """
        self.send_ping = send_ping
        self.interval = interval
        self.logger = setup_logger("HeartbeatManager", "INFO")
        self._task: Optional[asyncio.Task] = None
        self._pings_sent = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start heartbeat loop (no-op when already running)"""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self):
        """Stop heartbeat loop and wait for it to finish"""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        if task is asyncio.current_task():
            return
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass

    async def _heartbeat_loop(self):
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.send_ping()
                    self._pings_sent += 1
                    self.logger.debug("Sent ping")
                except DataStreamsError as e:
                    # transport close handling tears the session down
                    self.logger.warning(f"Ping failed: {e}")
        except asyncio.CancelledError:
            self.logger.debug("Heartbeat loop cancelled")
            raise

    @property
    def pings_sent(self) -> int:
        return self._pings_sent
