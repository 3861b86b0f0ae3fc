# Message Parser - JSON Parsing
# Parser for Data Streams WebSocket frames and REST report payloads

"""
Message Parser Module

Responsibilities:
- Parse JSON frames from the WebSocket
- Convert report payloads to dataclasses
- Reject malformed frames with MalformedMessageError

Inbound frame format:
{
    "type": "report" | "error" | "heartbeat",
    "report": {
        "feedID": "ETH-USD",
        "validFromTimestamp": 1709453520,
        "observationsTimestamp": 1709453520,
        "nativeFee": "0",
        "linkFee": "0",
        "expiresAt": 1709539920,
        "price": "3000.5",
        "bid": "3000.4",
        "ask": "3000.6"
    },
    "error": "message",
    "timestamp": 1709453520000
}
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from ..errors import MalformedMessageError
from ..utils.logger import setup_logger


class MessageType(Enum):
    """Inbound stream message types"""
    REPORT = "report"
    ERROR = "error"
    HEARTBEAT = "heartbeat"
    UNKNOWN = "unknown"


@dataclass
class Report:
    """Quote snapshot for a single feed"""
    feed_id: str
    valid_from_timestamp: Optional[int] = None
    observations_timestamp: Optional[int] = None
    native_fee: Optional[str] = None
    link_fee: Optional[str] = None
    expires_at: Optional[int] = None
    price: Optional[str] = None
    bid: Optional[str] = None
    ask: Optional[str] = None
    benchmark_price: Optional[str] = None
    liquidity_price: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        """
        Build a Report from the wire representation

        Raises:
            MalformedMessageError: payload is not an object or lacks feedID
        """
        if not isinstance(data, dict):
            raise MalformedMessageError(f"Report payload must be an object, got {type(data).__name__}")
        feed_id = data.get("feedID")
        if not feed_id:
            raise MalformedMessageError("Report payload is missing feedID")

        return cls(
            feed_id=str(feed_id),
            valid_from_timestamp=data.get("validFromTimestamp"),
            observations_timestamp=data.get("observationsTimestamp"),
            native_fee=data.get("nativeFee"),
            link_fee=data.get("linkFee"),
            expires_at=data.get("expiresAt"),
            price=data.get("price"),
            bid=data.get("bid"),
            ask=data.get("ask"),
            benchmark_price=data.get("benchmarkPrice"),
            liquidity_price=data.get("liquidityPrice"),
            raw=data,
        )


@dataclass
class StreamMessage:
    """Parsed inbound frame"""
    message_type: MessageType
    report: Optional[Report] = None
    error: Optional[str] = None
    timestamp: Optional[int] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def type(self) -> MessageType:
        return self.message_type


class MessageParser:
    """
    Parser for WebSocket frames

    Handles:
    - JSON decoding (text or binary frames)
    - Message type detection
    - Report payload conversion
    """

    def __init__(self):
        self.logger = setup_logger("MessageParser", "INFO")
        self._parse_count = 0
        self._error_count = 0

    def parse(self, raw_message: Union[str, bytes]) -> StreamMessage:
        """
        Parse raw frame into a StreamMessage

        Args:
            raw_message: Raw frame from the WebSocket

        Returns:
            StreamMessage. A report frame without a payload yields
            report=None; the session manager drops those.

        Raises:
            MalformedMessageError: frame is not a JSON object with a type
        """
        self._parse_count += 1
        try:
            if isinstance(raw_message, (bytes, bytearray)):
                raw_message = raw_message.decode("utf-8")
            data = json.loads(raw_message)
        # ValueError covers decode errors; RecursionError comes from deeply nested frames
        except (ValueError, RecursionError) as e:
            self._error_count += 1
            self.logger.error(f"JSON decode error: {e}")
            self.logger.debug(f"Raw message: {str(raw_message)[:100]}...")
            raise MalformedMessageError(f"Failed to parse message: {e}", raw=str(raw_message)) from e

        if not isinstance(data, dict) or "type" not in data:
            self._error_count += 1
            self.logger.error("Frame is not an object with a 'type' field")
            raise MalformedMessageError("Message is missing the 'type' field", raw=str(raw_message))

        message_type = self._determine_message_type(data.get("type"))

        report = None
        if message_type == MessageType.REPORT and data.get("report") is not None:
            try:
                report = Report.from_dict(data["report"])
            except MalformedMessageError:
                self._error_count += 1
                raise

        error = data.get("error")
        parsed = StreamMessage(
            message_type=message_type,
            report=report,
            error=str(error) if error is not None else None,
            timestamp=data.get("timestamp"),
            raw=data,
        )

        self.logger.debug(f"Parsed message #{self._parse_count}: {message_type.value}")
        return parsed

    def _determine_message_type(self, value: Any) -> MessageType:
        try:
            return MessageType(value)
        except (ValueError, TypeError):
            return MessageType.UNKNOWN

    def get_stats(self) -> dict:
        """Get parser statistics"""
        return {
            'total_parsed': self._parse_count,
            'errors': self._error_count,
            'success_rate': (
                (self._parse_count - self._error_count) / self._parse_count * 100
                if self._parse_count > 0 else 0
            )
        }
