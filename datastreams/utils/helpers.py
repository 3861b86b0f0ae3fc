# Helpers - Utility Functions
# Small utilities shared by the clients and the demo program

"""
Helpers Module

Provides utility functions for:
- Timestamp capture and formatting
- Masking credentials for logs
"""

import time
from datetime import datetime, timezone


def now_millis() -> int:
    """Current Unix time in milliseconds"""
    return int(time.time() * 1000)


def format_timestamp(timestamp: int, unit: str = "s") -> str:
    """
    Convert Unix timestamp to readable string

    Args:
        timestamp: Unix timestamp
        unit: "s" for seconds (report timestamps), "ms" for milliseconds

    Returns:
        Formatted datetime string (YYYY-MM-DD HH:MM:SS UTC)
    """
    seconds = timestamp / 1000 if unit == "ms" else timestamp
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.strftime('%Y-%m-%d %H:%M:%S UTC')


def mask_secret(value: str, visible: int = 4) -> str:
    """
    Mask a credential for logging

    Keeps the first and last `visible` characters of long values,
    replaces short values entirely.
    """
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return f"{value[:visible]}...{value[-visible:]}"
