# Data Streams REST Client - Signed Report Requests
# Request/response access to the latest and bulk report endpoints

"""
REST Client Module

Responsibilities:
- Sign every request (HMAC over method, path + query, body hash)
- Fetch latest report for one feed, or reports for many feeds
- Map HTTP failures to the SDK error hierarchy

Endpoints:
- GET /api/v1/reports/latest?feedID=<id>
- GET /api/v1/reports/bulk?feedIDs=<id>,<id>

Response format:
{
  "reports": [
    {"feedID": "...", "validFromTimestamp": 1709453520, "price": "3000.5", ...}
  ]
}
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp
from yarl import URL

from ..auth.signer import RequestSigner
from ..errors import (
    ConnectionFailedError,
    InvalidCredentialsError,
    InvalidResponseError,
    SignatureMismatchError,
)
from ..processors.message_parser import Report
from ..utils.logger import setup_logger

DEFAULT_REST_URL = "https://api.testnet-dataengine.chain.link"
LATEST_REPORT_PATH = "/api/v1/reports/latest"
BULK_REPORTS_PATH = "/api/v1/reports/bulk"


class DataStreamsClient:
    """
    Signed REST client for report endpoints

    The aiohttp session is created on first use; call close() or use
    the client as an async context manager to release it.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = DEFAULT_REST_URL,
        timeout: float = 30.0,
    ):
        """
        Args:
            api_key: Data Streams API key
            api_secret: Data Streams API secret
            base_url: REST base URL (scheme and host)
            timeout: Total request timeout in seconds
        """
        self.signer = RequestSigner.from_keys(api_key, api_secret)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logger = setup_logger("DataStreamsClient", "INFO")
        self._session: Optional[aiohttp.ClientSession] = None
        self._stats = {
            "requests": 0,
            "errors": 0,
        }

    async def __aenter__(self) -> "DataStreamsClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def test_connection(self) -> bool:
        """
        Check credentials against the latest-report endpoint

        Returns:
            True on HTTP 200, False when the credentials are rejected
        """
        try:
            status, _ = await self._request("GET", LATEST_REPORT_PATH)
            return status == 200
        except InvalidCredentialsError as e:
            self.logger.error(f"Test connection error: {e}")
            return False

    async def get_latest_report(self, feed_id: str) -> Report:
        """
        Fetch the latest report for a feed

        Raises:
            InvalidResponseError: no report returned for the feed
        """
        _, data = await self._request("GET", LATEST_REPORT_PATH, params={"feedID": feed_id})
        reports = data.get("reports") if isinstance(data, dict) else None
        if not reports:
            raise InvalidResponseError(f"No report found for feed ID: {feed_id}")
        return Report.from_dict(reports[0])

    async def get_bulk_reports(self, feed_ids: List[str]) -> List[Report]:
        """Fetch reports for several feeds in one request"""
        _, data = await self._request("GET", BULK_REPORTS_PATH, params={"feedIDs": ",".join(feed_ids)})
        reports = data.get("reports") if isinstance(data, dict) else None
        if reports is None:
            raise InvalidResponseError("Invalid bulk reports response")
        return [Report.from_dict(report) for report in reports]

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ):
        """
        Send a signed request

        Returns:
            (status, decoded JSON body)
        """
        path_with_query = f"{path}?{urlencode(params)}" if params else path
        payload = json.dumps(body) if body is not None else ""
        headers = self.signer.auth_headers(method, path_with_query, payload)

        session = self._get_session()
        url = URL(f"{self.base_url}{path_with_query}", encoded=True)
        self._stats["requests"] += 1

        try:
            async with session.request(method, url, data=payload or None, headers=headers) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._stats["errors"] += 1
            raise ConnectionFailedError(f"Network error: {e}") from e

        data = self._decode(text)
        if status >= 400:
            self._stats["errors"] += 1
            self._raise_for_status(status, data)

        if data is None:
            raise InvalidResponseError(f"Response body is not JSON (HTTP {status})")
        return status, data

    def _decode(self, text: str) -> Optional[Any]:
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            self.logger.warning(f"Non-JSON response body: {text[:100]}")
            return None

    def _raise_for_status(self, status: int, data: Optional[Any]):
        message = data.get("message") if isinstance(data, dict) else None
        self.logger.warning(f"HTTP {status}: {message or 'no message'}")
        if status == 401:
            raise InvalidCredentialsError(message or "Invalid API credentials")
        if status == 403:
            raise SignatureMismatchError(message or "Signature verification failed")
        raise InvalidResponseError(message or f"HTTP error: {status}")

    def get_stats(self) -> dict:
        return dict(self._stats)
