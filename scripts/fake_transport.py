# Fake Transport - In-Memory WebSocket Stand-In
# Used by the session manager tests through transport_factory

"""
In-memory transport with the WebSocketTransport interface.

Server-side helpers (server_send, server_close) push events into the
session manager the same way the real receive loop does.
"""

import asyncio
import json
from typing import List, Optional

from datastreams.errors import NotConnectedError, TransportError


class FakeTransport:
    def __init__(self, on_frame, on_close, on_error, fail_with: Optional[Exception] = None,
                 gate: Optional[asyncio.Event] = None):
        self.on_frame = on_frame
        self.on_close = on_close
        self.on_error = on_error
        self.fail_with = fail_with
        self.gate = gate

        self.url = None
        self.headers = None
        self.sent: List[dict] = []
        self.pings = 0
        self.reading = False
        self.closed_with = None
        self._open = False

    async def open(self, url, headers):
        self.url = url
        self.headers = headers
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        self._open = True

    def start_reading(self):
        self.reading = True

    def is_open(self) -> bool:
        return self._open

    async def send(self, frame: str):
        if not self._open:
            raise NotConnectedError()
        self.sent.append(json.loads(frame))

    async def ping(self):
        if not self._open:
            raise NotConnectedError()
        self.pings += 1

    async def close(self, code: int = 1000, reason: str = ""):
        if self.closed_with is not None:
            return
        self._open = False
        self.closed_with = (code, reason)

    # server side

    async def server_send(self, payload):
        frame = payload if isinstance(payload, (str, bytes)) else json.dumps(payload)
        await self.on_frame(frame)

    async def server_close(self, code: int = 1006, reason: str = ""):
        self._open = False
        if code != 1000:
            await self.on_error(TransportError(f"Connection closed abnormally: {code}"))
        await self.on_close(code, reason)


class FakeTransportFactory:
    """
    Builds FakeTransports following a plan

    Each plan entry applies to one connection attempt, in order:
    None opens successfully, an Exception fails the open, an
    asyncio.Event holds the open until set. Attempts past the end of
    the plan succeed.
    """

    def __init__(self, plan=None):
        self.plan = list(plan or [])
        self.transports: List[FakeTransport] = []

    def __call__(self, on_frame, on_close, on_error):
        step = self.plan.pop(0) if self.plan else None
        transport = FakeTransport(
            on_frame,
            on_close,
            on_error,
            fail_with=step if isinstance(step, Exception) else None,
            gate=step if isinstance(step, asyncio.Event) else None,
        )
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)
