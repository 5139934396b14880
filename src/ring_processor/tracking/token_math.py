"""Token ring bounds and uniform range partitioning."""

from __future__ import annotations

from typing import List, Tuple

from ring_processor.errors import ConfigurationError

__all__ = [
    "MURMUR3_MIN_TOKEN",
    "MURMUR3_MAX_TOKEN",
    "RANDOM_MIN_TOKEN",
    "RANDOM_MAX_TOKEN",
    "token_bounds",
    "split_token_ring",
    "format_token_ranges_summary",
]

MURMUR3_MIN_TOKEN = -(2 ** 63) + 1
MURMUR3_MAX_TOKEN = 2 ** 63 - 1
RANDOM_MIN_TOKEN = 0
RANDOM_MAX_TOKEN = 2 ** 127

_PARTITIONER_BOUNDS = {
    "murmur3": (MURMUR3_MIN_TOKEN, MURMUR3_MAX_TOKEN),
    "org.apache.cassandra.dht.murmur3partitioner": (MURMUR3_MIN_TOKEN, MURMUR3_MAX_TOKEN),
    "random": (RANDOM_MIN_TOKEN, RANDOM_MAX_TOKEN),
    "org.apache.cassandra.dht.randompartitioner": (RANDOM_MIN_TOKEN, RANDOM_MAX_TOKEN),
}


def token_bounds(partitioner: str) -> Tuple[int, int]:
    """
    Return the (min_token, max_token) of a partitioner's ring.

    Accepts the short names ("murmur3", "random") as well as the fully
    qualified partitioner class names reported by the cluster.

    Raises:
        ConfigurationError: If the partitioner is not recognised
    """
    try:
        return _PARTITIONER_BOUNDS[partitioner.strip().lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown partitioner type: {partitioner}") from None


def split_token_ring(min_token: int, max_token: int, num_ranges: int) -> List[Tuple[int, int]]:
    """
    Divide [min_token, max_token] into contiguous ranges of equal width.

    Each range is ``interval = (max_token - min_token) // num_ranges`` tokens
    wide; the final range absorbs the remainder and closes at ``max_token``.
    Python integers are unbounded, so the RandomPartitioner ring (2**127
    tokens) is split exactly.

    Args:
        min_token: First token of the ring
        max_token: Last token of the ring
        num_ranges: Number of ranges to create

    Returns:
        List of (start_token, end_token) pairs in ring order

    Example:
        >>> split_token_ring(-100, 100, 4)
        [(-100, -50), (-50, 0), (0, 50), (50, 100)]
        >>> split_token_ring(0, 10, 3)
        [(0, 3), (3, 6), (6, 10)]
    """
    if num_ranges < 1:
        raise ConfigurationError(f"num_ranges must be >= 1, got {num_ranges}")
    if max_token <= min_token:
        raise ConfigurationError(f"max_token ({max_token}) must exceed min_token ({min_token})")

    interval = (max_token - min_token) // num_ranges
    if interval == 0:
        raise ConfigurationError(
            f"Cannot split {max_token - min_token} tokens into {num_ranges} ranges"
        )

    bounds = []
    for i in range(num_ranges):
        start = min_token + i * interval
        end = max_token if i == num_ranges - 1 else start + interval
        bounds.append((start, end))
    return bounds


def format_token_ranges_summary(bounds: List[Tuple[int, int]]) -> str:
    """
    Format range boundaries for display.

    Example:
        >>> print(format_token_ranges_summary([(-100, 0), (0, 100)]))
        Created 2 token ranges:
          1: -100 → 0
          2: 0 → 100
    """
    lines = [f"Created {len(bounds)} token ranges:"]
    for i, (start, end) in enumerate(bounds, start=1):
        lines.append(f"  {i}: {start} → {end}")
    return "\n".join(lines)
