#!/usr/bin/env python3
# Test WebSocket Transport against a local server
# Usage: python scripts/test_transport.py

"""
Transport Test Script

Runs a websockets server on localhost that verifies the signed
handshake headers, then exercises:
1. End-to-end session: signed connect, report delivery, subscribe frame
2. Handshake rejection mapped to HandshakeError
3. Server close reported with code and reason
4. Connection refused mapped to ConnectionFailedError
"""

import asyncio
import json
import sys
from http import HTTPStatus
from pathlib import Path

import pytest
from websockets.asyncio.server import serve

sys.path.insert(0, str(Path(__file__).parent.parent))

from fake_transport import wait_until
from datastreams.auth.signer import compute_signature
from datastreams.connection.transport import WebSocketTransport
from datastreams.connection.websocket_client import DataStreamsWebSocket
from datastreams.errors import ConnectionFailedError, HandshakeError, TransportError
from datastreams.utils.logger import setup_logger

logger = setup_logger("TestTransport", "INFO")

API_KEY = "local-key"
API_SECRET = "local-secret"

REPORT_FRAME = json.dumps({
    "type": "report",
    "report": {"feedID": "ETH-USD", "price": "3000.5", "bid": "3000.4", "ask": "3000.6"},
})


def signature_valid(request) -> bool:
    headers = request.headers
    timestamp = headers.get("X-Authorization-Timestamp")
    if headers.get("Authorization") != API_KEY or not timestamp:
        return False
    expected = compute_signature(API_SECRET, "GET", request.path, "", API_KEY, int(timestamp))
    return headers.get("X-Authorization-Signature-SHA256") == expected


def check_signature(connection, request):
    if not signature_valid(request):
        return connection.respond(HTTPStatus.FORBIDDEN, "Signature verification failed\n")
    return None


def port_of(server) -> int:
    return next(iter(server.sockets)).getsockname()[1]


def test_end_to_end_session():
    async def scenario():
        received = []
        paths = []

        async def handler(websocket):
            paths.append(websocket.request.path)
            await websocket.send(REPORT_FRAME)
            async for message in websocket:
                received.append(json.loads(message))

        async with serve(handler, "127.0.0.1", 0, process_request=check_signature) as server:
            url = f"ws://127.0.0.1:{port_of(server)}/api/v1/ws"
            client = DataStreamsWebSocket(API_KEY, API_SECRET, url=url)
            messages = []
            client.on_message(messages.append)

            await client.connect(["ETH-USD", "BTC-USD"])
            assert client.is_connected()

            await wait_until(lambda: len(messages) == 1)
            assert messages[0].report.feed_id == "ETH-USD"

            await client.subscribe(["LINK-USD"])
            await wait_until(lambda: len(received) == 1)
            assert received[0] == {"type": "subscribe", "feedIds": ["LINK-USD"]}
            assert paths == ["/api/v1/ws?feedIDs=ETH-USD%2CBTC-USD"]

            await client.disconnect()
            assert not client.is_connected()
            logger.info("✅ Signed session accepted by server")

    asyncio.run(scenario())


def test_handshake_rejection():
    async def scenario():
        async def handler(websocket):
            await websocket.wait_closed()

        async with serve(handler, "127.0.0.1", 0, process_request=check_signature) as server:
            url = f"ws://127.0.0.1:{port_of(server)}/api/v1/ws"
            client = DataStreamsWebSocket(API_KEY, "wrong-secret", url=url)
            errors = []
            client.on_error(errors.append)

            with pytest.raises(HandshakeError) as excinfo:
                await client.connect(["ETH-USD"])
            assert excinfo.value.status_code == 403
            assert len(errors) == 1
            assert not client.is_connected()

    asyncio.run(scenario())


def test_server_close_is_reported():
    async def scenario():
        async def handler(websocket):
            await websocket.close(4000, "maintenance")

        async with serve(handler, "127.0.0.1", 0) as server:
            url = f"ws://127.0.0.1:{port_of(server)}/api/v1/ws"
            events = []

            async def on_frame(raw):
                events.append(("frame", raw))

            async def on_close(code, reason):
                events.append(("close", code, reason))

            async def on_error(error):
                events.append(("error", error))

            transport = WebSocketTransport(on_frame, on_close, on_error)
            await transport.open(url, {})
            transport.start_reading()

            await wait_until(lambda: any(e[0] == "close" for e in events))
            assert events[-1] == ("close", 4000, "maintenance")
            assert isinstance(events[0][1], TransportError)
            assert not transport.is_open()

            # closing an already closed transport is a no-op
            await transport.close()
            await transport.close()

    asyncio.run(scenario())


def test_frame_handler_failure_keeps_reader_alive():
    async def scenario():
        async def handler(websocket):
            await websocket.send("first")
            await websocket.send("second")
            await websocket.wait_closed()

        async with serve(handler, "127.0.0.1", 0) as server:
            url = f"ws://127.0.0.1:{port_of(server)}/api/v1/ws"
            frames = []
            errors = []

            async def on_frame(raw):
                if raw == "first":
                    raise RuntimeError("handler blew up")
                frames.append(raw)

            async def on_close(code, reason):
                pass

            async def on_error(error):
                errors.append(error)

            transport = WebSocketTransport(on_frame, on_close, on_error)
            await transport.open(url, {})
            transport.start_reading()

            await wait_until(lambda: frames == ["second"])
            assert len(errors) == 1
            assert isinstance(errors[0], TransportError)
            assert transport.is_open()

            await transport.close()

    asyncio.run(scenario())


def test_connection_refused():
    async def scenario():
        async def noop(*args):
            pass

        transport = WebSocketTransport(noop, noop, noop, open_timeout=2)
        with pytest.raises(ConnectionFailedError):
            await transport.open("ws://127.0.0.1:1/api/v1/ws", {})
        assert not transport.is_open()

    asyncio.run(scenario())


def main():
    test_end_to_end_session()
    test_handshake_rejection()
    test_server_close_is_reported()
    test_frame_handler_failure_keeps_reader_alive()
    test_connection_refused()
    logger.info("✅ All transport tests passed")


if __name__ == "__main__":
    main()
