"""Text formatting helpers for terminal output."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

__all__ = ["format_banner", "format_timestamp", "truncate_key"]


def format_banner(title: str, width: int = 100, style: str = "═") -> str:
    """Create a formatted banner with title and separator line.

    Examples:
        >>> print(format_banner("Phase 1", width=10, style="─"))
        Phase 1
        ──────────
    """
    return f"{title}\n{style * width}"


def format_timestamp(ts: Optional[float]) -> str:
    if not ts:
        return "-"
    return f"{datetime.fromtimestamp(ts):%Y-%m-%d %H:%M:%S}"


def truncate_key(key: Optional[str], max_length: int = 24) -> str:
    """
    Shorten a key for table output, keeping its start.

    Examples:
        >>> truncate_key("user:0000000042", 10)
        'user:00...'
        >>> truncate_key("")
        "''"
    """
    if not key:
        return "''"
    if len(key) <= max_length:
        return key
    return key[:max_length - 3] + "..."
