# Request Signer - HMAC Authentication
# Produces the per-request auth headers for REST calls and WebSocket handshakes

"""
Request Signer Module

Signing scheme:
    body_hash = SHA256(body) as hex
    canonical = "{method} {path} {body_hash} {api_key} {timestamp_millis}"
    signature = HMAC-SHA256(api_secret, canonical) as hex

`path` is the request path plus query string, without scheme or host.
The timestamp is captured once per call and shared by the canonical
string and the emitted header, otherwise the server rejects the request.
"""

import hashlib
import hmac
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..utils.helpers import now_millis, mask_secret

AUTHORIZATION_HEADER = "Authorization"
TIMESTAMP_HEADER = "X-Authorization-Timestamp"
SIGNATURE_HEADER = "X-Authorization-Signature-SHA256"


@dataclass(frozen=True)
class Credentials:
    """API key pair. The secret is excluded from repr."""
    api_key: str
    api_secret: str = field(repr=False)

    def __repr__(self) -> str:
        return f"Credentials(api_key='{mask_secret(self.api_key)}')"


@dataclass(frozen=True)
class SignedRequest:
    """Auth material for exactly one request; never reuse"""
    authorization_id: str
    timestamp_millis: int
    signature_hex: str

    def headers(self) -> Dict[str, str]:
        return {
            AUTHORIZATION_HEADER: self.authorization_id,
            TIMESTAMP_HEADER: str(self.timestamp_millis),
            SIGNATURE_HEADER: self.signature_hex,
        }


def hash_body(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def compute_signature(api_secret: str, method: str, path: str, body: str,
                      api_key: str, timestamp_millis: int) -> str:
    canonical = f"{method} {path} {hash_body(body)} {api_key} {timestamp_millis}"
    return hmac.new(
        api_secret.encode("utf-8"),
        canonical.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


class RequestSigner:
    """
    Signs requests with a fixed credential pair

    Stateless apart from the credentials; safe to share between the REST
    client and the WebSocket session manager.
    """

    def __init__(self, credentials: Credentials):
        self.credentials = credentials

    @classmethod
    def from_keys(cls, api_key: str, api_secret: str) -> "RequestSigner":
        return cls(Credentials(api_key=api_key, api_secret=api_secret))

    def sign(self, method: str, path: str, body: str = "",
             timestamp_millis: Optional[int] = None) -> SignedRequest:
        """
        Sign a single request

        Args:
            method: HTTP verb
            path: Request path plus query string
            body: Raw serialized body, empty for bodiless requests
            timestamp_millis: Fixed timestamp; captured now when omitted

        Returns:
            SignedRequest for this request only
        """
        timestamp = now_millis() if timestamp_millis is None else timestamp_millis
        signature = compute_signature(
            self.credentials.api_secret,
            method,
            path,
            body,
            self.credentials.api_key,
            timestamp,
        )
        return SignedRequest(
            authorization_id=self.credentials.api_key,
            timestamp_millis=timestamp,
            signature_hex=signature,
        )

    def sign_websocket(self, path: str, timestamp_millis: Optional[int] = None) -> SignedRequest:
        """Sign a WebSocket upgrade: always GET with an empty body"""
        return self.sign("GET", path, "", timestamp_millis)

    def auth_headers(self, method: str, path: str, body: str = "") -> Dict[str, str]:
        return self.sign(method, path, body).headers()
