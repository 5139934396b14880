"""CRUD and bulk operations for token ranges, across one or many shard tables."""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from ring_processor.config import StoreConfig
from ring_processor.errors import ConfigurationError, RangeNotFoundError
from .database import RANGE_COLUMNS, discover_range_tables, init_range_tables
from .types import RangeProgress, RangeStatus, TokenRange

logger = logging.getLogger(__name__)

__all__ = ["RangeStore"]

T = TypeVar("T")

_SELECT_COLUMNS = ", ".join(RANGE_COLUMNS)

# Columns cleared when a range goes back to the unclaimed pool
_RESET_ASSIGNMENTS = """
    first_key = '',
    last_key = '',
    status = 'pending',
    hostname = NULL,
    claimed_at = NULL,
    processing_time = 0,
    total_items = 0,
    processed_items = 0,
    error_count = 0,
    error = NULL
"""


def _row_to_range(row: sqlite3.Row, table: str) -> TokenRange:
    return TokenRange(
        id=row["id"],
        start_token=int(row["start_token"]),
        end_token=int(row["end_token"]),
        first_key=row["first_key"],
        last_key=row["last_key"],
        status=RangeStatus(row["status"]),
        hostname=row["hostname"],
        total_items=row["total_items"],
        processed_items=row["processed_items"],
        error_count=row["error_count"],
        processing_time=row["processing_time"],
        error=row["error"],
        range_data=row["range_data"],
        requeue_count=row["requeue_count"],
        random_key=row["random_key"],
        claimed_at=row["claimed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        table=table,
    )


class RangeStore:
    """
    Persistence for TokenRange rows.

    All coordination between workers goes through this class: a claim is a
    single conditional UPDATE inside an immediate transaction, so at most one
    worker can move a given row from 'pending' to 'processing'.

    In shard mode every read fans out over all shard tables and results are
    merged before any limit is applied.
    """

    def __init__(self, config: StoreConfig, create: bool = True):
        """
        Initialize the range store.

        Args:
            config: Store configuration
            create: Create the table when it is missing (single-table mode only;
                shard tables are created explicitly with init_schema())
        """
        self.config = config
        self.db_path = Path(config.db_path)
        self._tables: Optional[List[str]] = None

        if create and not config.is_sharded:
            init_range_tables(self.db_path, config.table_name)

    # =========================================================================
    # Connections and retries
    # =========================================================================

    @contextmanager
    def _connect(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.config.timeout_s,
            isolation_level="IMMEDIATE" if immediate else "DEFERRED",
        )
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _with_retry(self, operation: Callable[[], T], description: str) -> T:
        """Run a database operation, retrying while the database is locked."""
        max_retries = self.config.max_retries
        for attempt in range(1, max_retries + 1):
            try:
                return operation()
            except sqlite3.OperationalError as e:
                if "locked" in str(e) and attempt < max_retries:
                    logger.info("%s failed (database locked). Retrying...", description)
                    time.sleep(attempt * self.config.retry_backoff_s)
                    continue
                raise
        raise RuntimeError(f"{description} failed after {max_retries} attempts")

    # =========================================================================
    # Schema and shards
    # =========================================================================

    def init_schema(self, num_shards: int = 1) -> List[str]:
        """Create the range table(s) and refresh the shard list."""
        init_range_tables(self.db_path, self.config.table_name, num_shards)
        return self.refresh_tables()

    def refresh_tables(self) -> List[str]:
        self._tables = discover_range_tables(self.db_path, self.config.table_name)
        return list(self._tables)

    @property
    def tables(self) -> List[str]:
        if not self._tables:
            self.refresh_tables()
        return list(self._tables)

    def _require_tables(self) -> List[str]:
        tables = self.tables
        if not tables:
            raise ConfigurationError(
                f"No range tables found for '{self.config.table_name}' in {self.db_path}"
            )
        return tables

    def _select_all(
            self,
            where: str = "",
            params: Sequence = (),
            limit: Optional[int] = None,
    ) -> List[TokenRange]:
        """Run one SELECT against every table and merge the results by id.

        The limit is applied per table and again after merging, so the result
        holds the lowest `limit` ids across all shards.
        """
        def run() -> List[TokenRange]:
            ranges = []
            with self._connect() as conn:
                for table in self._require_tables():
                    sql = f"SELECT {_SELECT_COLUMNS} FROM {table}"
                    if where:
                        sql += f" WHERE {where}"
                    sql += " ORDER BY id"
                    args = tuple(params)
                    if limit is not None:
                        sql += " LIMIT ?"
                        args += (limit,)
                    for row in conn.execute(sql, args):
                        ranges.append(_row_to_range(row, table))
            ranges.sort(key=lambda r: r.id)
            return ranges if limit is None else ranges[:limit]

        return self._with_retry(run, "Range query")

    def _update_all(self, assignments: str, where: str = "", params: Sequence = ()) -> int:
        """Run one UPDATE against every table, returning the total affected rows."""
        def run() -> int:
            affected = 0
            with self._connect(immediate=True) as conn:
                for table in self._require_tables():
                    sql = f"UPDATE {table} SET {assignments}"
                    if where:
                        sql += f" WHERE {where}"
                    affected += conn.execute(sql, params).rowcount
            return affected

        return self._with_retry(run, "Range update")

    # =========================================================================
    # Range construction
    # =========================================================================

    def replace_ranges(self, ranges: Iterable[TokenRange]) -> int:
        """
        Delete every existing range and insert a new set.

        Ranges are distributed round-robin over the shard tables. The whole
        rebuild happens in one transaction.

        Args:
            ranges: New ranges (ids must be unique)

        Returns:
            Number of ranges inserted
        """
        tables = self._require_tables()
        ranges = list(ranges)

        def run() -> int:
            now = time.time()
            with self._connect(immediate=True) as conn:
                for table in tables:
                    conn.execute(f"DELETE FROM {table}")
                for i, token_range in enumerate(ranges):
                    table = tables[i % len(tables)]
                    conn.execute(
                        f"""
                        INSERT INTO {table}
                        (id, start_token, end_token, status, random_key, created_at, updated_at)
                        VALUES (?, ?, ?, 'pending', ?, ?, ?)
                        """,
                        (
                            token_range.id,
                            str(token_range.start_token),
                            str(token_range.end_token),
                            token_range.random_key,
                            now,
                            now,
                        )
                    )
                    token_range.table = table
            return len(ranges)

        return self._with_retry(run, "Range rebuild")

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_range(self, range_id: int) -> Optional[TokenRange]:
        found = self._select_all("id = ?", (range_id,))
        return found[0] if found else None

    def list_ranges(self) -> List[TokenRange]:
        """All ranges in ring order."""
        ranges = self._select_all()
        ranges.sort(key=lambda r: r.start_token)
        return ranges

    def find_claimed_range(self, hostname: str) -> Optional[TokenRange]:
        """Return a range this identity already holds, if any (resume after a crash)."""
        found = self._select_all("status = 'processing' AND hostname = ?", (hostname,))
        return found[0] if found else None

    # =========================================================================
    # Claim
    # =========================================================================

    def claim_in_window(
            self,
            table: str,
            hostname: str,
            window_start: int,
            window_end: int,
    ) -> Optional[TokenRange]:
        """
        Atomically claim one pending range whose random_key is in [window_start, window_end).

        The UPDATE touches at most one row and runs inside an immediate
        transaction, so concurrent callers can never claim the same row. The
        claimed row is read back in the same transaction.

        Args:
            table: Physical table to claim from
            hostname: Worker identity to record as owner
            window_start: Lowest random_key to consider (inclusive)
            window_end: Highest random_key to consider (exclusive)

        Returns:
            The claimed range, or None if the window holds no pending range
        """
        def run() -> Optional[TokenRange]:
            now = time.time()
            with self._connect(immediate=True) as conn:
                cursor = conn.execute(
                    f"""
                    UPDATE {table}
                    SET status = 'processing',
                        hostname = ?,
                        claimed_at = ?,
                        updated_at = ?
                    WHERE id = (
                        SELECT id
                        FROM {table}
                        WHERE status = 'pending'
                          AND random_key >= ?
                          AND random_key < ?
                        ORDER BY random_key
                        LIMIT 1
                    )
                    """,
                    (hostname, now, now, window_start, window_end)
                )
                if cursor.rowcount != 1:
                    return None

                row = conn.execute(
                    f"""
                    SELECT {_SELECT_COLUMNS}
                    FROM {table}
                    WHERE status = 'processing'
                      AND hostname = ?
                      AND claimed_at = ?
                    LIMIT 1
                    """,
                    (hostname, now)
                ).fetchone()
                return _row_to_range(row, table) if row else None

        return self._with_retry(run, "Claim")

    # =========================================================================
    # Owner-guarded writes
    # =========================================================================

    def _update_owned(
            self,
            token_range: TokenRange,
            owner: Optional[str],
            assignments: str,
            params: Sequence,
    ) -> bool:
        """Update a range only while `owner` still holds the claim (any state when owner is None)."""
        table = token_range.table or self._locate(token_range.id)
        sql = f"UPDATE {table} SET {assignments}, updated_at = ? WHERE id = ?"
        args = (*params, time.time(), token_range.id)
        if owner is not None:
            sql += " AND status = 'processing' AND hostname = ?"
            args += (owner,)

        def run() -> bool:
            with self._connect(immediate=True) as conn:
                return conn.execute(sql, args).rowcount == 1

        return self._with_retry(run, f"Update range {token_range.id}")

    def save_boundary_keys(self, token_range: TokenRange, owner: Optional[str]) -> bool:
        return self._update_owned(
            token_range, owner,
            "first_key = ?, last_key = ?",
            (token_range.first_key, token_range.last_key),
        )

    def complete_range(self, token_range: TokenRange, owner: str) -> bool:
        """Persist final counters and mark the range completed."""
        return self._update_owned(
            token_range, owner,
            """
            status = 'completed',
            hostname = NULL,
            total_items = ?,
            processed_items = ?,
            error_count = ?,
            processing_time = ?,
            error = NULL,
            range_data = ?
            """,
            (
                token_range.total_items,
                token_range.processed_items,
                token_range.error_count,
                token_range.processing_time,
                token_range.range_data,
            ),
        )

    def fail_range(self, token_range: TokenRange, owner: str) -> bool:
        """Mark the range failed, keeping its counters and error message."""
        return self._update_owned(
            token_range, owner,
            """
            status = 'failed',
            hostname = NULL,
            total_items = ?,
            processed_items = ?,
            error_count = ?,
            processing_time = ?,
            error = ?,
            requeue_count = ?
            """,
            (
                token_range.total_items,
                token_range.processed_items,
                token_range.error_count,
                token_range.processing_time,
                token_range.error,
                token_range.requeue_count,
            ),
        )

    def requeue_range(self, token_range: TokenRange, owner: str) -> bool:
        """Return the range to the pending pool with its new random_key and requeue_count."""
        return self._update_owned(
            token_range, owner,
            _RESET_ASSIGNMENTS + ", random_key = ?, requeue_count = ?",
            (token_range.random_key, token_range.requeue_count),
        )

    # =========================================================================
    # Administrative resets
    # =========================================================================

    def _locate(self, range_id: int) -> str:
        token_range = self.get_range(range_id)
        if token_range is None:
            raise RangeNotFoundError(f"Range does not exist: {range_id}")
        return token_range.table

    def reset_range(self, range_id: int) -> None:
        """
        Put one range back to pending with cleared keys, counters and owner.

        Raises:
            RangeNotFoundError: If no table holds the id
        """
        table = self._locate(range_id)

        def run() -> None:
            with self._connect(immediate=True) as conn:
                conn.execute(
                    f"UPDATE {table} SET {_RESET_ASSIGNMENTS}, updated_at = ? WHERE id = ?",
                    (time.time(), range_id)
                )

        self._with_retry(run, f"Reset range {range_id}")

    def reset_all_ranges(self) -> int:
        return self._update_all(_RESET_ASSIGNMENTS + ", updated_at = ?", "", (time.time(),))

    def reset_failed_ranges(self) -> int:
        """Reopen failed ranges with cleared keys, counters and error (requeue_count is kept)."""
        return self._update_all(
            _RESET_ASSIGNMENTS + ", updated_at = ?",
            "status = 'failed'",
            (time.time(),),
        )

    def reset_processing_ranges(self) -> int:
        return self._update_all(
            "status = 'pending', hostname = NULL, claimed_at = NULL, updated_at = ?",
            "status = 'processing'",
            (time.time(),),
        )

    # =========================================================================
    # Listings and progress
    # =========================================================================

    def count_ranges(self, where: str = "", params: Sequence = ()) -> int:
        def run() -> int:
            total = 0
            with self._connect() as conn:
                for table in self._require_tables():
                    sql = f"SELECT COUNT(*) FROM {table}"
                    if where:
                        sql += f" WHERE {where}"
                    total += conn.execute(sql, params).fetchone()[0]
            return total

        return self._with_retry(run, "Range count")

    def list_failed_ranges(self, limit: Optional[int] = None) -> Tuple[int, List[TokenRange]]:
        """Return (total failed, up to `limit` failed ranges ordered by id)."""
        total = self.count_ranges("status = 'failed'")
        return total, self._select_all("status = 'failed'", limit=limit)

    def list_requeued_ranges(self, since: float) -> List[TokenRange]:
        """Ranges requeued at least once and updated after the `since` timestamp."""
        return self._select_all("requeue_count > 0 AND updated_at > ?", (since,))

    def list_processing_ranges(self) -> List[TokenRange]:
        return self._select_all("status = 'processing'")

    def list_ranges_with_data(self) -> List[TokenRange]:
        return self._select_all("range_data IS NOT NULL AND range_data != ''")

    def get_progress(self) -> RangeProgress:
        def run() -> RangeProgress:
            counts = {status.value: 0 for status in RangeStatus}
            requeued = 0
            hosts = set()
            with self._connect() as conn:
                for table in self._require_tables():
                    for row in conn.execute(
                            f"SELECT status, COUNT(*) FROM {table} GROUP BY status"):
                        counts[row[0]] = counts.get(row[0], 0) + row[1]
                    requeued += conn.execute(
                        f"SELECT COUNT(*) FROM {table} WHERE requeue_count > 0"
                    ).fetchone()[0]
                    for row in conn.execute(
                            f"SELECT DISTINCT hostname FROM {table} WHERE status = 'processing'"):
                        hosts.add(row[0])
            return RangeProgress(
                total=sum(counts.values()),
                pending=counts[RangeStatus.PENDING.value],
                processing=counts[RangeStatus.PROCESSING.value],
                completed=counts[RangeStatus.COMPLETED.value],
                failed=counts[RangeStatus.FAILED.value],
                requeued=requeued,
                active_workers=len(hosts),
            )

        return self._with_retry(run, "Progress query")
