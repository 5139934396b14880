"""Diagnostics against the data store, for operators checking range boundaries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

from tqdm import tqdm

from ring_processor.errors import ConfigurationError

if TYPE_CHECKING:
    from ring_processor.pipeline.client import RingStoreClient

logger = logging.getLogger(__name__)

__all__ = ["count_range", "keys_near_token"]


def count_range(
        client: "RingStoreClient",
        start_key: str,
        end_key: str,
        batch_size: int = 1000,
        show_progress: bool = False,
) -> int:
    """
    Count the keys from `start_key` to `end_key`, both included.

    Each batch after the first starts with the previous batch's last key, so
    that repeat is not counted twice.

    Args:
        client: Data store to read from
        start_key: First key ('' = start of the ring)
        end_key: Last key ('' = end of the ring)
        batch_size: Keys fetched per call
        show_progress: Show a running tqdm counter

    Raises:
        ConfigurationError: If both keys are blank or batch_size < 2
    """
    if not start_key and not end_key:
        raise ConfigurationError("Start key and end key are both blank")
    if batch_size < 2:
        raise ConfigurationError(f"batch_size must be >= 2, got {batch_size}")

    logger.info("Counting range from %r to %r", start_key, end_key)

    total = 0
    last_key = start_key
    previous_last = None
    with tqdm(desc="Counting keys", unit="key", disable=not show_progress) as pbar:
        while True:
            items = client.get_keys_between(last_key, end_key, batch_size, [])
            if not items:
                break

            found = len(items)
            if previous_last is not None and items[0][0] == previous_last:
                found -= 1
            total += found
            pbar.update(found)

            fetched_last = items[-1][0]
            if len(items) < batch_size or fetched_last == end_key or fetched_last == previous_last:
                break
            previous_last = last_key = fetched_last

    logger.info("Found %d keys", total)
    return total


def keys_near_token(client: "RingStoreClient", token: int, count: int = 1) -> List[str]:
    """Return up to `count` keys at or after `token` (at least one is requested)."""
    return list(client.get_nearest_key_to_token(int(token), max(int(count), 1)))
