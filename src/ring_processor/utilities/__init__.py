"""Diagnostics and formatting helpers."""

from .display import format_banner, format_timestamp, truncate_key
from .ring_tools import count_range, keys_near_token

__all__ = [
    "format_banner",
    "format_timestamp",
    "truncate_key",
    "count_range",
    "keys_near_token",
]
