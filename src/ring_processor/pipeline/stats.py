"""Running totals and per-round range snapshots for a single worker."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from ring_processor.tracking import TokenRange
from .profiler import PhaseProfiler

logger = logging.getLogger(__name__)

__all__ = ["RangeSnapshot", "StatsReporter", "format_duration"]


def format_duration(seconds: float) -> str:
    """
    Format seconds as a compact duration.

    Example:
        >>> format_duration(3725)
        '1h 2m 5s'
        >>> format_duration(42.7)
        '42s'
    """
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    if days or hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


@dataclass
class RangeSnapshot:
    """State of the current range and the worker's running totals after a round."""

    hostname: Optional[str]
    range_id: int
    start_token: str
    end_token: str
    range_first_key: str
    range_last_key: str
    timestamp: float
    range_start_time: float
    range_total: int
    range_processed: int
    range_errors: int
    range_skipped: int
    current_rate: float
    total_items: int
    total_processed: int
    total_errors: int
    total_skipped: int
    total_duration: float
    average_rate: float
    last_key: str


class StatsReporter:
    """
    Owns the worker's running counters.

    The manager adds to the counters after every round and calls report(),
    which keeps the latest RangeSnapshot, logs a summary every
    `report_interval_s` seconds (or when forced), and writes the snapshot to
    ``stats.json`` in `stats_dir` for external dashboards.

    Phase timings collected by `profiler` are logged with the summary and
    written to the stats file under "phases".
    """

    def __init__(
            self,
            instance_name: str = "",
            report_interval_s: float = 15.0,
            stats_dir: Optional[Union[str, Path]] = None,
            clock: Callable[[], float] = time.time,
            profiler: Optional[PhaseProfiler] = None,
    ):
        self.instance_name = instance_name
        self.report_interval_s = report_interval_s
        self.stats_dir = Path(stats_dir) if stats_dir else None
        self._clock = clock
        self.profiler = profiler or PhaseProfiler()
        self.snapshot: Optional[RangeSnapshot] = None
        self.reset_counters()

    def reset_counters(self) -> None:
        self.start_time = self._clock()
        self.total_items = 0
        self.processed_items = 0
        self.errors = 0
        self._last_report_time = 0.0
        self._last_range_id: Optional[int] = None
        self._last_range_total = 0
        self.profiler.reset()

    def add(self, total: int = 0, processed: int = 0, errors: int = 0) -> None:
        self.total_items += total
        self.processed_items += processed
        self.errors += errors

    @property
    def skipped(self) -> int:
        return self.total_items - (self.processed_items + self.errors)

    def report(
            self,
            token_range: TokenRange,
            range_total: int,
            range_processed: int,
            range_errors: int,
            range_start_time: float,
            last_key: str,
            force: bool = False,
    ) -> RangeSnapshot:
        """
        Record a snapshot after a round.

        Args:
            token_range: Range being processed
            range_total: Items seen in this range so far
            range_processed: Items processed in this range so far
            range_errors: Errors in this range so far
            range_start_time: When processing of the range started
            last_key: Last key fetched
            force: Log the summary regardless of the report interval

        Returns:
            The new snapshot
        """
        now = self._clock()

        if token_range.id != self._last_range_id:
            self._last_range_id = token_range.id
            self._last_range_total = 0
            self._last_report_time = range_start_time
        if self._last_report_time == 0:
            self._last_report_time = range_start_time

        round_duration = now - self._last_report_time
        round_total = range_total - self._last_range_total
        current_rate = round(round_total / round_duration) if round_duration > 0 else 0

        total_duration = now - self.start_time
        average_rate = round(self.total_items / total_duration) if total_duration > 0 else 0

        self.snapshot = RangeSnapshot(
            hostname=token_range.hostname,
            range_id=token_range.id,
            start_token=str(token_range.start_token),
            end_token=str(token_range.end_token),
            range_first_key=token_range.first_key,
            range_last_key=token_range.last_key,
            timestamp=now,
            range_start_time=range_start_time,
            range_total=range_total,
            range_processed=range_processed,
            range_errors=range_errors,
            range_skipped=range_total - (range_processed + range_errors),
            current_rate=current_rate,
            total_items=self.total_items,
            total_processed=self.processed_items,
            total_errors=self.errors,
            total_skipped=self.skipped,
            total_duration=total_duration,
            average_rate=average_rate,
            last_key=last_key,
        )

        if force or round_duration >= self.report_interval_s:
            self._log_report(self.snapshot)
            self._last_report_time = now
            self._last_range_total = range_total

        if self.stats_dir is not None:
            self._write_stats(self.snapshot)

        return self.snapshot

    def _log_report(self, snap: RangeSnapshot) -> None:
        logger.info(
            "CURRENT RANGE: Run time %s, Processed %d of %d items, %d errors",
            format_duration(snap.timestamp - snap.range_start_time),
            snap.range_processed, snap.range_total, snap.range_errors
        )
        logger.info(
            "OVERALL: Run time %s, Processed %d of %d items, %d errors",
            format_duration(snap.total_duration),
            snap.total_processed, snap.total_items, snap.total_errors
        )
        logger.info(
            "Current rate: %d items/second, Average rate: %d items/second",
            snap.current_rate, snap.average_rate
        )
        logger.info("Last key: %s", snap.last_key)
        for line in self.profiler.format_report():
            logger.info("Phase %s", line)

    def _write_stats(self, snap: RangeSnapshot) -> None:
        self.stats_dir.mkdir(parents=True, exist_ok=True)
        name = f"stats-{self.instance_name}.json" if self.instance_name else "stats.json"
        path = self.stats_dir / name
        tmp_path = path.with_suffix(".tmp")
        payload = asdict(snap)
        payload["phases"] = self.profiler.as_dict()
        tmp_path.write_text(json.dumps(payload), encoding="utf-8")
        tmp_path.replace(path)
