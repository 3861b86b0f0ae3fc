#!/usr/bin/env python3
# Test Processors Layer
# Usage: python scripts/test_processors.py

"""
Processors Layer Test Script

Tests:
1. MessageParser - Parse WebSocket frames
2. SubscriptionManager - Bookkeeping, request frames, stream URL

Uses mock data (no API key required)
"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from datastreams.connection.subscription_manager import SubscriptionManager, build_stream_url
from datastreams.errors import MalformedMessageError
from datastreams.processors.message_parser import MessageParser, MessageType, Report
from datastreams.utils.logger import setup_logger

logger = setup_logger("TestProcessors", "INFO")

MOCK_REPORT = {
    "feedID": "ETH-USD",
    "validFromTimestamp": 1709453520,
    "observationsTimestamp": 1709453521,
    "nativeFee": "1000",
    "linkFee": "2000",
    "expiresAt": 1709539920,
    "price": "3000.5",
    "bid": "3000.4",
    "ask": "3000.6",
    "benchmarkPrice": "3000.5",
}

MOCK_REPORT_MESSAGE = json.dumps({"type": "report", "report": MOCK_REPORT, "timestamp": 1709453521000})
INVALID_JSON = "{ this is not valid json"


def test_parse_report():
    parser = MessageParser()
    parsed = parser.parse(MOCK_REPORT_MESSAGE)

    assert parsed.message_type == MessageType.REPORT
    assert parsed.timestamp == 1709453521000
    report = parsed.report
    assert report.feed_id == "ETH-USD"
    assert report.observations_timestamp == 1709453521
    assert report.native_fee == "1000"
    assert report.link_fee == "2000"
    assert report.benchmark_price == "3000.5"
    assert report.liquidity_price is None
    logger.info(f"✅ Parsed report {report.feed_id} price={report.price}")


def test_parse_binary_frame():
    parsed = MessageParser().parse(MOCK_REPORT_MESSAGE.encode("utf-8"))
    assert parsed.report.feed_id == "ETH-USD"


def test_parse_other_types():
    parser = MessageParser()
    assert parser.parse('{"type": "heartbeat"}').message_type == MessageType.HEARTBEAT

    error = parser.parse('{"type": "error", "error": "bad feed"}')
    assert error.message_type == MessageType.ERROR
    assert error.error == "bad feed"

    assert parser.parse('{"type": "mystery"}').message_type == MessageType.UNKNOWN
    assert parser.parse('{"type": "report"}').report is None


@pytest.mark.parametrize("frame", [
    INVALID_JSON,
    "[1, 2, 3]",
    '{"report": {}}',
    '{"type": "report", "report": "not-an-object"}',
    '{"type": "report", "report": {"price": "1"}}',
    "[" * 100000,
    b"\xff\xfe",
], ids=["bad-json", "array", "no-type", "report-not-object", "report-no-feed", "deep-nesting", "bad-utf8"])
def test_malformed_frames(frame):
    parser = MessageParser()
    with pytest.raises(MalformedMessageError):
        parser.parse(frame)
    assert parser.get_stats()["errors"] == 1


def test_report_from_dict_keeps_raw():
    report = Report.from_dict(MOCK_REPORT)
    assert report.raw == MOCK_REPORT
    assert report == Report.from_dict(dict(MOCK_REPORT))


def test_subscription_bookkeeping():
    manager = SubscriptionManager()
    manager.set_baseline(["ETH-USD", "ETH-USD", "BTC-USD"])
    assert manager.baseline == ["ETH-USD", "BTC-USD"]

    manager.add(["A", "B"])
    manager.add(["B", "C"])
    manager.remove(["A", "missing"])
    assert manager.snapshot() == ["B", "C"]
    assert manager.has_subscriptions()

    manager.clear()
    assert not manager.has_subscriptions()
    assert manager.baseline == ["ETH-USD", "BTC-USD"]

    assert manager.build_request("unsubscribe", ("X",)) == {"type": "unsubscribe", "feedIds": ["X"]}
    with pytest.raises(ValueError):
        manager.build_request("resubscribe", ["X"])


def test_build_stream_url():
    url, path = build_stream_url("wss://ws.example.test/api/v1/ws", ["ETH-USD", "BTC-USD"])
    assert url == "wss://ws.example.test/api/v1/ws?feedIDs=ETH-USD%2CBTC-USD"
    assert path == "/api/v1/ws?feedIDs=ETH-USD%2CBTC-USD"

    url, path = build_stream_url("wss://ws.example.test/api/v1/ws", [])
    assert url == "wss://ws.example.test/api/v1/ws"
    assert path == "/api/v1/ws"

    # existing feedIDs parameter is replaced, other parameters kept
    url, path = build_stream_url("wss://ws.example.test/ws?feedIDs=OLD&v=2", ["NEW"])
    assert path == "/ws?v=2&feedIDs=NEW"

    url, path = build_stream_url("wss://ws.example.test", ["X"])
    assert path == "/?feedIDs=X"


def main():
    test_parse_report()
    test_parse_binary_frame()
    test_parse_other_types()
    for frame in [INVALID_JSON, "[1, 2, 3]", '{"report": {}}']:
        test_malformed_frames(frame)
    test_report_from_dict_keeps_raw()
    test_subscription_bookkeeping()
    test_build_stream_url()
    logger.info("✅ All processor tests passed")


if __name__ == "__main__":
    main()
