"""Data store capabilities consumed by the range manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .processor import Item

__all__ = ["RangeKeyLister", "KeyColumnFetcher", "RingStoreClient", "EMPTY_KEY_PREFIX"]

# Boundary keys starting with this prefix mark a range the store knows is empty
EMPTY_KEY_PREFIX = "empty:"


class RangeKeyLister(ABC):
    """Resolves token positions to the keys stored nearest to them."""

    @abstractmethod
    def get_nearest_key_to_token(self, token: int, count: int = 1) -> List[str]:
        """
        Return up to `count` keys in ring order, starting with the first key at or
        after `token` and wrapping past the end of the ring.

        Raises:
            TransientFetchError: On timeout or unavailability
        """


class KeyColumnFetcher(ABC):
    """Fetches key batches with their column data."""

    @abstractmethod
    def get_keys_between(
            self,
            start_key: str,
            end_key: str,
            limit: int,
            requested_columns: Optional[List[str]] = None,
    ) -> List[Item]:
        """
        Return up to `limit` (key, columns) pairs in ring order.

        The start key is included when it exists. An empty start key means the
        start of the ring, an empty end key the end of the ring.

        Raises:
            TransientFetchError: On timeout or unavailability
        """


class RingStoreClient(RangeKeyLister, KeyColumnFetcher):
    """Both capabilities plus connection management."""

    def reconnect(self) -> None:
        """Drop and re-open the connection. Called between retries."""
