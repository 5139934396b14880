"""Token range persistence, ring math and shard discovery."""

from .types import RangeStatus, TokenRange, RangeProgress, RANDOM_KEY_MAX
from .token_math import token_bounds, split_token_ring, format_token_ranges_summary
from .database import init_range_tables, discover_range_tables, shard_table_names
from .range_store import RangeStore

__all__ = [
    "RangeStatus",
    "TokenRange",
    "RangeProgress",
    "RANDOM_KEY_MAX",
    "token_bounds",
    "split_token_ring",
    "format_token_ranges_summary",
    "init_range_tables",
    "discover_range_tables",
    "shard_table_names",
    "RangeStore",
]
