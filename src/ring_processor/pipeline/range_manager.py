"""Claims token ranges and drives each one through the batch processing loop."""

from __future__ import annotations

import json
import logging
import math
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from tqdm import tqdm

from ring_processor.config import ManagerConfig, TunerConfig
from ring_processor.errors import BatchError, ItemError, ProcessingHalted, RangeNotHeldError, is_transient
from ring_processor.tracking import (
    RANDOM_KEY_MAX,
    RangeProgress,
    RangeStatus,
    RangeStore,
    TokenRange,
    format_token_ranges_summary,
    split_token_ring,
    token_bounds,
)
from .checkpoint import ScriptProgress
from .client import EMPTY_KEY_PREFIX, RingStoreClient
from .processor import Item, ItemProcessor, ProcessorContext
from .profiler import (
    PHASE_CLAIM,
    PHASE_CONNECT,
    PHASE_GET_KEYS,
    PHASE_PROCESS_BATCH,
    PHASE_RANGE_SAVE,
    PHASE_REFRESH_KEYS,
    PHASE_REQUEUE,
)
from .stats import StatsReporter
from .tuner import BatchSizeTuner

logger = logging.getLogger(__name__)

__all__ = ["RangeManager", "RangeOutcome", "RunSummary"]

T = TypeVar("T")


class RangeOutcome(str, Enum):
    COMPLETED = "completed"
    REQUEUED = "requeued"
    FAILED = "failed"


@dataclass
class RunSummary:
    """Counts of range outcomes for one process_all() run."""

    claimed: int = 0
    completed: int = 0
    requeued: int = 0
    failed: int = 0

    def record(self, outcome: RangeOutcome) -> None:
        self.claimed += 1
        if outcome is RangeOutcome.COMPLETED:
            self.completed += 1
        elif outcome is RangeOutcome.REQUEUED:
            self.requeued += 1
        else:
            self.failed += 1


class RangeManager:
    """
    One worker's view of the shared range table.

    The manager claims ranges from the store, resolves their boundary keys
    against the data store, fetches keys in batches sized by the tuner and
    hands them to the processor. Every write it makes to a claimed range is
    guarded by its own identity, so an operator reset issued while it is
    working cannot be overwritten.
    """

    def __init__(
            self,
            store: RangeStore,
            client: RingStoreClient,
            processor: ItemProcessor,
            config: Optional[ManagerConfig] = None,
            tuner_config: Optional[TunerConfig] = None,
            stats: Optional[StatsReporter] = None,
            rng: Optional[random.Random] = None,
            sleep: Callable[[float], None] = time.sleep,
            clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the manager.

        Args:
            store: Shared range table(s)
            client: Data store the ranges are read from
            processor: Unit of work applied to every key
            config: Worker configuration (identity, retries, reporting)
            tuner_config: Batch size tuning bounds
            stats: Running totals, created from the config when omitted
            rng: Random source for random_key assignment
            sleep: Backoff sleep, injectable for tests
            clock: Wall clock used for processing times
        """
        self.config = config or ManagerConfig()
        self.store = store
        self.client = client
        self.processor = processor
        self.identity = self.config.worker_identity
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock
        self._claim_offset = 0

        min_token, max_token = token_bounds(self.config.partitioner)
        if self.config.min_token is not None:
            min_token = self.config.min_token
        if self.config.max_token is not None:
            max_token = self.config.max_token
        self.min_token = min_token
        self.max_token = max_token

        self.stats = stats or StatsReporter(
            instance_name=self.config.instance_name,
            report_interval_s=self.config.report_interval_s,
            stats_dir=self.config.stats_dir,
        )
        self.checkpoint = (
            ScriptProgress(self.config.checkpoint_path) if self.config.checkpoint_path else None
        )
        self.profiler = self.stats.profiler

        self.processor.setup(ProcessorContext(
            worker_identity=self.identity,
            instance_name=self.config.instance_name,
            dry_run=self.config.dry_run,
            source=client,
        ))
        self.tuner = BatchSizeTuner(tuner_config)
        self.tuner.set_batch_size_bounds(self.processor.batch_size_bounds())

    # =========================================================================
    # Range construction and administration
    # =========================================================================

    def build_ranges(self, num_ranges: int, show_progress: bool = True) -> List[TokenRange]:
        """
        Delete every range and rebuild the table as `num_ranges` equal slices of the ring.

        Raises:
            ConfigurationError: If the ring cannot be split into `num_ranges`
        """
        bounds = split_token_ring(self.min_token, self.max_token, num_ranges)
        logger.debug("%s", format_token_ranges_summary(bounds))
        ranges = []
        for range_id, (start, end) in enumerate(
                tqdm(bounds, desc="Building ranges", unit="range", disable=not show_progress),
                start=1):
            ranges.append(TokenRange(
                id=range_id,
                start_token=start,
                end_token=end,
                random_key=self._new_random_key(),
            ))

        self.store.replace_ranges(ranges)
        logger.info("Built %d ranges over [%d, %d]", len(ranges), self.min_token, self.max_token)
        return ranges

    def reset_ranges(self) -> int:
        count = self.store.reset_all_ranges()
        logger.info("Reset %d ranges", count)
        return count

    def reset_range(self, range_id: int) -> None:
        self.store.reset_range(range_id)
        logger.info("Reset range %d", range_id)

    def reset_failed_ranges(self) -> int:
        count = self.store.reset_failed_ranges()
        logger.info("Reset %d failed ranges", count)
        return count

    def reset_processing_ranges(self) -> int:
        count = self.store.reset_processing_ranges()
        logger.info("Reset %d processing ranges", count)
        return count

    def list_failed_ranges(self, limit: int = 100) -> Tuple[int, List[TokenRange]]:
        return self.store.list_failed_ranges(limit)

    def list_requeued_ranges(self, minutes: float = 30) -> List[TokenRange]:
        """Ranges requeued at least once and touched in the last `minutes`."""
        return self.store.list_requeued_ranges(self._clock() - minutes * 60)

    def list_processing_ranges(self) -> List[TokenRange]:
        return self.store.list_processing_ranges()

    def get_progress(self) -> RangeProgress:
        return self.store.get_progress()

    def get_range_data(self) -> List[TokenRange]:
        return self.store.list_ranges_with_data()

    # =========================================================================
    # Claim
    # =========================================================================

    def claim_next_free_range(self) -> Optional[TokenRange]:
        """
        Claim a pending range, or resume one this worker already holds.

        Windows of `claim_window` random_key values are tried in turn, starting
        at the window of the last successful claim and wrapping around.

        Returns:
            The claimed range, or None when no pending range is left
        """
        with self.profiler.timed(PHASE_CLAIM):
            return self._claim()

    def _claim(self) -> Optional[TokenRange]:
        resumed = self.store.find_claimed_range(self.identity)
        if resumed is not None:
            logger.info("Resuming range %d already claimed by %s", resumed.id, self.identity)
            return resumed

        window = self.config.claim_window
        num_windows = math.ceil((RANDOM_KEY_MAX + 1) / window)
        max_windows = min(self.config.claim_max_windows or num_windows, num_windows)
        first_window = self._claim_offset // window
        tables = self.store.tables

        for step in range(max_windows):
            window_start = ((first_window + step) % num_windows) * window
            for table in tables:
                claimed = self.store.claim_in_window(
                    table, self.identity, window_start, window_start + window
                )
                if claimed is not None:
                    self._claim_offset = window_start
                    logger.info(
                        "Claimed range %d [%d, %d) from %s",
                        claimed.id, claimed.start_token, claimed.end_token, table
                    )
                    return claimed

        self._claim_offset = 0
        return None

    # =========================================================================
    # Data store access
    # =========================================================================

    def _reconnect(self) -> None:
        tries = 0
        while True:
            try:
                with self.profiler.timed(PHASE_CONNECT):
                    self.client.reconnect()
                return
            except Exception as e:
                tries += 1
                if not is_transient(e) or tries >= self.config.connect_retries:
                    raise
                logger.info("Reconnect failed (%s). Retrying...", e)
                self._sleep(tries * self.config.connect_backoff_s)

    def _with_fetch_retry(self, operation: Callable[[], T], description: str) -> T:
        """Run a data store call, retrying transient failures with a reconnect in between."""
        tries = 0
        while True:
            try:
                return operation()
            except Exception as e:
                tries += 1
                if not is_transient(e) or tries >= self.config.fetch_retries:
                    raise
                logger.info("%s failed (%s). Retrying...", description, e)
                self._sleep(tries * self.config.fetch_backoff_s)
                self._reconnect()

    def _nearest_key(self, token: int) -> Optional[str]:
        keys = self._with_fetch_retry(
            lambda: self.client.get_nearest_key_to_token(token, 1), "Get tokens"
        )
        return keys[0] if keys else None

    def _get_keys(self, start_key: str, end_key: str, limit: int) -> List[Item]:
        columns = self.processor.required_columns()
        with self.profiler.timed(PHASE_GET_KEYS):
            return self._with_fetch_retry(
                lambda: self.client.get_keys_between(start_key, end_key, limit, columns), "Get keys"
            )

    # =========================================================================
    # Boundary keys
    # =========================================================================

    def refresh_keys_for_range(self, token_range: TokenRange, owner: Optional[str] = None) -> bool:
        """
        Resolve the range's first and last keys from its token boundaries.

        A boundary that resolves to the ring's very first (or last) key is
        stored as '' so that fetching starts (or ends) at the ring edge.

        Args:
            token_range: Range to refresh (updated in place)
            owner: Identity the write is guarded by (None for an unguarded write)

        Returns:
            True if both boundaries resolved

        Raises:
            RangeNotHeldError: If `owner` no longer holds the range when the keys are saved
        """
        with self.profiler.timed(PHASE_REFRESH_KEYS):
            self._reconnect()

            ring_first = self._nearest_key(self.min_token)
            ring_last = self._nearest_key(self.max_token)
            first = self._nearest_key(token_range.start_token)
            last = self._nearest_key(token_range.end_token)

        if first is None or last is None:
            return False

        token_range.first_key = "" if first == ring_first else first
        token_range.last_key = "" if last == ring_last else last
        with self.profiler.timed(PHASE_RANGE_SAVE):
            saved = self.store.save_boundary_keys(token_range, owner)
        if not saved:
            raise RangeNotHeldError(token_range.id, owner)
        return True

    def refresh_keys_for_all_ranges(self, show_progress: bool = True) -> int:
        """Refresh the boundary keys of every range. Returns how many resolved."""
        refreshed = 0
        ranges = self.store.list_ranges()
        for token_range in tqdm(ranges, desc="Refreshing keys", unit="range",
                                disable=not show_progress):
            if self.refresh_keys_for_range(token_range):
                refreshed += 1
            else:
                logger.error("Error getting the keys for range %d", token_range.id)
        return refreshed

    @staticmethod
    def _is_degenerate(token_range: TokenRange) -> bool:
        return (
            token_range.first_key == token_range.last_key
            or token_range.last_key.startswith(EMPTY_KEY_PREFIX)
        )

    # =========================================================================
    # Processing
    # =========================================================================

    def process_all(self) -> RunSummary:
        """
        Claim and process ranges until none are left.

        Raises:
            ProcessingHalted: When a processor that stops on errors reports one
        """
        summary = RunSummary()
        self.stats.reset_counters()

        while True:
            token_range = self.claim_next_free_range()
            if token_range is None:
                logger.info("Ran out of ranges to process")
                break
            summary.record(self.process_claimed_range(token_range))

        logger.info(
            "Run finished: %d claimed, %d completed, %d requeued, %d failed",
            summary.claimed, summary.completed, summary.requeued, summary.failed
        )
        return summary

    def process_claimed_range(self, token_range: TokenRange) -> RangeOutcome:
        """Refresh a claimed range's boundary keys, then process it or requeue it."""
        try:
            resolved = self.refresh_keys_for_range(token_range, self.identity)
        except RangeNotHeldError as e:
            logger.warning("Giving up range %d: %s", token_range.id, e)
            return RangeOutcome.REQUEUED
        except Exception as e:
            if not is_transient(e):
                logger.exception("Fatal error refreshing keys for range %d", token_range.id)
                return self._fail_range(token_range, _error_message(e))
            logger.error("Timed out refreshing keys for range %d: %s", token_range.id, e)
            resolved = False

        if not resolved:
            logger.error("Error getting the keys for range %d", token_range.id)
            return self._requeue_range(token_range)
        if self._is_degenerate(token_range):
            logger.info(
                "Range %d is empty (first key %r, last key %r)",
                token_range.id, token_range.first_key, token_range.last_key
            )
            return self._requeue_range(token_range)

        return self.process_range(token_range)

    def process_range(self, token_range: TokenRange) -> RangeOutcome:
        """
        Run the batch loop over a claimed range whose boundary keys are set.

        Keys are fetched from the range's first key up to its last key; the
        last key itself belongs to the next range and is never processed.
        Any processor error ends the loop and requeues the range.

        Raises:
            ProcessingHalted: When a processor that stops on errors reports one
        """
        logger.info(
            "Processing range %d: first key %r, last key %r",
            token_range.id, token_range.first_key, token_range.last_key
        )
        self.tuner.reset()

        start_time = self._clock()
        end_key = token_range.last_key
        last_key = token_range.first_key
        previous_last: Optional[str] = None
        total = processed = errors = 0
        halted = False

        try:
            self.processor.start_range(token_range)
            while True:
                batch_size = self.tuner.next_batch()
                items = self._get_keys(last_key, end_key, batch_size)
                if not items:
                    logger.info("Found no more items in range %d", token_range.id)
                    break

                fetched_last = items[-1][0]
                batch = list(items)
                if previous_last is not None and batch and batch[0][0] == previous_last:
                    batch = batch[1:]
                if end_key and batch and batch[-1][0] == end_key:
                    batch.pop()

                with self.profiler.timed(PHASE_PROCESS_BATCH):
                    round_total, round_processed, round_errors, halted = self._dispatch(batch)
                total += round_total
                processed += round_processed
                errors += round_errors
                self.stats.add(round_total, round_processed, round_errors)

                finished = (
                    len(items) < batch_size
                    or (end_key and fetched_last == end_key)
                    or fetched_last == previous_last
                )
                previous_last = last_key = fetched_last

                if self.checkpoint is not None and self.processor.should_checkpoint():
                    self.checkpoint.save(token_range.first_key, last_key)

                self.stats.report(
                    token_range, total, processed, errors, start_time, last_key,
                    force=bool(finished or errors)
                )
                if errors or finished:
                    break
        except Exception as e:
            self._record_totals(token_range, total, processed, errors, start_time)
            if is_transient(e):
                logger.error("Timed out processing range %d: %s", token_range.id, e)
                return self._requeue_range(token_range)
            logger.exception("Fatal error processing range %d", token_range.id)
            return self._fail_range(token_range, _error_message(e))

        self._record_totals(token_range, total, processed, errors, start_time)

        if errors:
            logger.error("Range %d had %d errors", token_range.id, errors)
            outcome = self._requeue_range(token_range)
            if halted:
                raise ProcessingHalted(
                    f"Processing stopped after errors in range {token_range.id}"
                )
            return outcome

        return self._complete_range(token_range)

    def _record_totals(self, token_range: TokenRange, total: int, processed: int,
                       errors: int, start_time: float) -> None:
        token_range.total_items = total
        token_range.processed_items = processed
        token_range.error_count = errors
        token_range.processing_time = self._clock() - start_time

    def _dispatch(self, batch: Sequence[Item]) -> Tuple[int, int, int, bool]:
        """Hand one round's items to the processor. Returns (total, processed, errors, halt)."""
        if not batch:
            return 0, 0, 0, False

        if self.processor.supports_batch():
            try:
                return len(batch), self.processor.process_batch(batch), 0, False
            except BatchError as e:
                logger.error("Error processing batch: %d errors: %s", e.count, e)
                return len(batch), 0, e.count, self.processor.stop_on_errors()

        total = processed = errors = 0
        for key, data in batch:
            total += 1
            try:
                if self.processor.process_item(key, data):
                    processed += 1
            except ItemError as e:
                errors += 1
                logger.error("Error processing item %s: %s", e.key, e)
                if self.processor.stop_on_errors():
                    return total, processed, errors, True
        return total, processed, errors, False

    # =========================================================================
    # Range transitions
    # =========================================================================

    def _new_random_key(self) -> int:
        return self._rng.randint(1, RANDOM_KEY_MAX)

    def _release(self, token_range: TokenRange, written: bool, action: str) -> None:
        if written:
            token_range.hostname = None
        else:
            logger.warning(
                "Range %d is no longer held by %s; %s not saved",
                token_range.id, self.identity, action
            )

    def _complete_range(self, token_range: TokenRange) -> RangeOutcome:
        try:
            data = self.processor.range_data()
            token_range.range_data = json.dumps(data) if data is not None else None
        except Exception as e:
            logger.exception("Could not collect the data of range %d", token_range.id)
            token_range.range_data = None
            return self._fail_range(token_range, _error_message(e))

        token_range.status = RangeStatus.COMPLETED
        token_range.error = None
        with self.profiler.timed(PHASE_RANGE_SAVE):
            written = self.store.complete_range(token_range, self.identity)
        self._release(token_range, written, "completion")
        logger.info(
            "Completed range %d: %d processed of %d items in %.1fs",
            token_range.id, token_range.processed_items, token_range.total_items,
            token_range.processing_time
        )
        return RangeOutcome.COMPLETED

    def _fail_range(self, token_range: TokenRange, message: str) -> RangeOutcome:
        token_range.status = RangeStatus.FAILED
        token_range.error = message
        with self.profiler.timed(PHASE_RANGE_SAVE):
            written = self.store.fail_range(token_range, self.identity)
        self._release(token_range, written, "failure")
        logger.error("Range %d failed: %s", token_range.id, message)
        return RangeOutcome.FAILED

    def _requeue_range(self, token_range: TokenRange) -> RangeOutcome:
        """Send the range back to the pending pool, or fail it once it has used up its requeues."""
        max_requeues = self.config.max_requeues
        if token_range.requeue_count + 1 > max_requeues:
            return self._fail_range(token_range, f"Requeue limit exceeded ({max_requeues})")

        token_range.requeue_count += 1
        token_range.random_key = self._new_random_key()
        token_range.first_key = ""
        token_range.last_key = ""
        token_range.total_items = 0
        token_range.processed_items = 0
        token_range.error_count = 0
        token_range.processing_time = 0.0
        token_range.status = RangeStatus.PENDING
        with self.profiler.timed(PHASE_REQUEUE):
            written = self.store.requeue_range(token_range, self.identity)
        self._release(token_range, written, "requeue")
        logger.info(
            "Re-queueing range %d to process later (requeue %d of %d)",
            token_range.id, token_range.requeue_count, max_requeues
        )
        return RangeOutcome.REQUEUED


def _error_message(exc: BaseException) -> str:
    code = getattr(exc, "code", None)
    if code is not None:
        return f"Code {code}: {exc}"
    return f"{type(exc).__name__}: {exc}"
