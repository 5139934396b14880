# tests/conftest.py
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from ring_processor.config import StoreConfig
from ring_processor.pipeline.client import RingStoreClient
from ring_processor.tracking import RangeStore


class FakeRingClient(RingStoreClient):
    """
    In-memory ring: keys sorted by (token, key).

    get_keys_between includes both the start and the end key, like a
    Cassandra key range slice. Exceptions queued with fail_next() are raised by
    the next fetch calls (reconnect never fails).
    """

    def __init__(self, entries: Sequence[Tuple[str, int]]):
        self._ring: List[Tuple[int, str]] = sorted((token, key) for key, token in entries)
        self._keys = [key for _, key in self._ring]
        self._failures: List[Exception] = []
        self.reconnects = 0
        self.fetch_calls: List[Tuple[str, str, int]] = []

    @property
    def keys(self) -> List[str]:
        return list(self._keys)

    def fail_next(self, exc: Exception, times: int = 1) -> None:
        self._failures.extend([exc] * times)

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.pop(0)

    def reconnect(self) -> None:
        self.reconnects += 1

    def get_nearest_key_to_token(self, token: int, count: int = 1) -> List[str]:
        self._maybe_fail()
        after = [key for tok, key in self._ring if tok >= token]
        before = [key for tok, key in self._ring if tok < token]
        return (after + before)[:count]

    def get_keys_between(
            self,
            start_key: str,
            end_key: str,
            limit: int,
            requested_columns: Optional[List[str]] = None,
    ) -> List[Tuple[str, Dict]]:
        self._maybe_fail()
        self.fetch_calls.append((start_key, end_key, limit))
        start = self._keys.index(start_key) if start_key else 0
        end = self._keys.index(end_key) if end_key else len(self._keys) - 1
        selected = self._keys[start:end + 1][:limit]
        if requested_columns == []:
            return [(key, {}) for key in selected]
        return [(key, {"value": key.upper()}) for key in selected]


def make_ring(num_keys: int = 40, min_token: int = -100, step: int = 5, offset: int = 2):
    """Keys key:000, key:001, ... at tokens min_token + offset + i * step."""
    return [(f"key:{i:03d}", min_token + offset + i * step) for i in range(num_keys)]


@pytest.fixture()
def ring_client() -> FakeRingClient:
    # 40 keys at tokens -98, -93, ..., 97: ten keys in each quarter of [-100, 100]
    return FakeRingClient(make_ring())


@pytest.fixture()
def fake_client_cls():
    return FakeRingClient


@pytest.fixture()
def ring_entries():
    return make_ring()


@pytest.fixture()
def store(tmp_path) -> RangeStore:
    return RangeStore(StoreConfig(db_path=tmp_path / "ranges.db", retry_backoff_s=0.01))


@pytest.fixture()
def sharded_store(tmp_path) -> RangeStore:
    store = RangeStore(StoreConfig(db_path=tmp_path / "ranges.db", table_name="token_ranges_*",
                                   retry_backoff_s=0.01))
    store.init_schema(num_shards=3)
    return store
