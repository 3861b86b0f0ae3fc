# Errors - Exception Hierarchy
# Shared by the REST client and the streaming session manager

"""
Errors Module

All SDK errors derive from DataStreamsError so callers can catch
one type at the integration boundary.
"""

from typing import Optional


class DataStreamsError(Exception):
    """Base class for every SDK error"""


class InvalidCredentialsError(DataStreamsError):
    def __init__(self, message: str = "Invalid API credentials"):
        super().__init__(message)


class SignatureMismatchError(DataStreamsError):
    def __init__(self, message: str = "Signature verification failed"):
        super().__init__(message)


class TimestampOutOfSyncError(DataStreamsError):
    def __init__(self, message: str = "Timestamp is out of sync with server"):
        super().__init__(message)


class InvalidResponseError(DataStreamsError):
    def __init__(self, message: str = "Invalid response from server"):
        super().__init__(message)


class ConnectionFailedError(DataStreamsError):
    """Connection could not be established (network, timeout, handshake)"""

    def __init__(self, message: str = "Failed to establish connection"):
        super().__init__(message)


class HandshakeError(ConnectionFailedError):
    """
    WebSocket upgrade rejected by the server

    Typically bad credentials or a rejected signature. status_code holds
    the HTTP status of the rejected upgrade when one was received.
    """

    def __init__(self, message: str = "WebSocket handshake rejected", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class WebSocketError(DataStreamsError):
    """Error raised by, or reported from, a streaming session"""


class NotConnectedError(WebSocketError):
    def __init__(self, message: str = "WebSocket is not connected"):
        super().__init__(message)


class MalformedMessageError(WebSocketError):
    """Inbound frame is not valid JSON or lacks required fields"""

    def __init__(self, message: str = "Failed to parse message", raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class TransportError(WebSocketError):
    """Underlying connection failed while the session was live"""


class ConnectInProgressError(WebSocketError):
    def __init__(self, message: str = "A connection attempt is already in progress"):
        super().__init__(message)


class ConfigurationError(DataStreamsError):
    """Missing or invalid configuration detected at startup"""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message)
        self.missing = list(missing or [])
