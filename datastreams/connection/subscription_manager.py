# Subscription Manager - Feed Subscriptions
# Subscription bookkeeping for the streaming session manager

"""
Subscription Manager Module

Responsibilities:
- Track the set of subscribed feed ids (survives reconnects)
- Track the connection baseline (feed ids of the last explicit connect)
- Build subscribe/unsubscribe request frames
- Build the stream URL and the path that gets signed

Sending is the session manager's job; this class never touches the socket.
"""

from typing import Dict, Iterable, List, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

FEED_IDS_PARAM = "feedIDs"


def build_stream_url(base_url: str, feed_ids: Iterable[str]) -> Tuple[str, str]:
    """
    Add the feedIDs query parameter to the base URL

    Args:
        base_url: WebSocket endpoint, e.g. wss://host/api/v1/ws
        feed_ids: Feed ids for the connection (may be empty)

    Returns:
        (url, signed_path): the full URL and its path plus query string
    """
    parts = urlsplit(base_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    feed_ids = list(feed_ids)
    if feed_ids:
        query = [(k, v) for k, v in query if k != FEED_IDS_PARAM]
        query.append((FEED_IDS_PARAM, ",".join(feed_ids)))

    encoded = urlencode(query)
    url = urlunsplit((parts.scheme, parts.netloc, parts.path, encoded, parts.fragment))
    path = parts.path or "/"
    signed_path = f"{path}?{encoded}" if encoded else path
    return url, signed_path


class SubscriptionManager:
    """
    Manages feed subscriptions across reconnects

    The subscription set is changed only by subscribe/unsubscribe and
    cleared only by an explicit disconnect. The baseline changes only on
    an explicit connect call.
    """

    def __init__(self):
        # dict keeps insertion order, giving deterministic frames
        self._subscribed: Dict[str, None] = {}
        self._baseline: List[str] = []

    @property
    def baseline(self) -> List[str]:
        return list(self._baseline)

    def set_baseline(self, feed_ids: Iterable[str]):
        self._baseline = list(dict.fromkeys(feed_ids))

    def snapshot(self) -> List[str]:
        return list(self._subscribed)

    def has_subscriptions(self) -> bool:
        return bool(self._subscribed)

    def add(self, feed_ids: Iterable[str]):
        for feed_id in feed_ids:
            self._subscribed[feed_id] = None

    def remove(self, feed_ids: Iterable[str]):
        for feed_id in feed_ids:
            self._subscribed.pop(feed_id, None)

    def clear(self):
        self._subscribed.clear()

    def build_request(self, request_type: str, feed_ids: Iterable[str]) -> dict:
        if request_type not in ("subscribe", "unsubscribe"):
            raise ValueError(f"Unknown subscription request type: {request_type}")
        return {"type": request_type, "feedIds": list(feed_ids)}

    def connection_url(self, base_url: str) -> Tuple[str, str]:
        """Stream URL and signed path for the current baseline"""
        return build_stream_url(base_url, self._baseline)
