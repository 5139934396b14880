"""Shared types for token range tracking."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

__all__ = ["RangeStatus", "TokenRange", "RangeProgress", "RANDOM_KEY_MAX"]

# random_key values are drawn from [1, RANDOM_KEY_MAX]
RANDOM_KEY_MAX = 10_000


class RangeStatus(str, Enum):
    """Lifecycle state of a token range."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TokenRange:
    """A contiguous slice of the token ring processed as one unit of work."""

    id: int
    """Stable identifier assigned when the ranges are built (unique across shards)"""

    start_token: int
    """First token of the range (inclusive)"""

    end_token: int
    """End token of the range (exclusive, except the last range which closes at the ring maximum)"""

    first_key: str = ""
    """Data store key at the start token, '' for the start of the ring"""

    last_key: str = ""
    """Data store key at the end token, '' for the end of the ring"""

    status: RangeStatus = RangeStatus.PENDING
    hostname: Optional[str] = None
    """Worker identity owning the claim, only set while processing"""

    total_items: int = 0
    processed_items: int = 0
    error_count: int = 0
    processing_time: float = 0.0
    error: Optional[str] = None
    range_data: Optional[str] = None
    """Processor-defined checkpoint blob (JSON text)"""

    requeue_count: int = 0
    random_key: int = 0
    claimed_at: Optional[float] = None
    created_at: Optional[float] = None
    updated_at: Optional[float] = None
    table: Optional[str] = None
    """Physical table holding this row"""

    # Legacy flag view of the status column
    @property
    def processing(self) -> bool:
        return self.status is RangeStatus.PROCESSING

    @property
    def processed(self) -> bool:
        return self.status is RangeStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status is RangeStatus.FAILED

    @property
    def is_claimable(self) -> bool:
        return self.status is RangeStatus.PENDING


@dataclass
class RangeProgress:
    """Range counts per status, summed over every shard table."""

    total: int
    pending: int
    processing: int
    completed: int
    failed: int
    requeued: int = 0  # Ranges requeued at least once
    active_workers: int = 0  # Distinct identities holding a claim

    @property
    def remaining(self) -> int:
        return self.pending + self.processing

    @property
    def percent_complete(self) -> float:
        if self.total == 0:
            return 0.0
        return 100.0 * (self.completed + self.failed) / self.total
