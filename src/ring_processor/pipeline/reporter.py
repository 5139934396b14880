"""Terminal rendering of admin listings and run summaries."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ring_processor.tracking import RangeProgress, TokenRange
from ring_processor.utilities.display import format_banner, format_timestamp, truncate_key
from .range_manager import RunSummary
from .stats import format_duration

__all__ = [
    "print_failed_ranges",
    "print_requeued_ranges",
    "print_processing_ranges",
    "print_range_data",
    "print_progress",
    "print_run_summary",
]


def _range_line(token_range: TokenRange) -> str:
    return (
        f"{token_range.id:>6}  "
        f"{truncate_key(token_range.first_key):<24}  "
        f"{truncate_key(token_range.last_key):<24}  "
        f"{token_range.requeue_count:>3}"
    )


_HEADER = f"{'ID':>6}  {'First key':<24}  {'Last key':<24}  {'RQ':>3}"


def print_failed_ranges(total: int, ranges: List[TokenRange]) -> None:
    """Print failed ranges with their error messages."""
    print(format_banner(f"Failed Ranges ({len(ranges)} of {total})"))
    if not ranges:
        print("No failed ranges")
        return
    print(f"{_HEADER}  Error")
    for token_range in ranges:
        print(f"{_range_line(token_range)}  {token_range.error or ''}")


def print_requeued_ranges(ranges: List[TokenRange], minutes: float) -> None:
    print(format_banner(f"Ranges Requeued In The Last {minutes:g} Minutes"))
    if not ranges:
        print("No requeued ranges")
        return
    print(f"{_HEADER}  {'Status':<10}  Updated")
    for token_range in ranges:
        print(
            f"{_range_line(token_range)}  {token_range.status.value:<10}  "
            f"{format_timestamp(token_range.updated_at)}"
        )


def print_processing_ranges(ranges: List[TokenRange], now: Optional[float] = None) -> None:
    """Print claimed ranges with their owner and how long ago they were claimed."""
    now = now if now is not None else datetime.now().timestamp()
    print(format_banner("Ranges In Progress"))
    if not ranges:
        print("No ranges in progress")
        return
    print(f"{_HEADER}  {'Claimed for':<12}  Owner")
    for token_range in ranges:
        held = format_duration(now - token_range.claimed_at) if token_range.claimed_at else "-"
        print(f"{_range_line(token_range)}  {held:<12}  {token_range.hostname}")


def print_range_data(ranges: List[TokenRange]) -> None:
    print(format_banner("Range Data"))
    for token_range in ranges:
        print(f"{token_range.id:>6}  {token_range.range_data}")


def print_progress(progress: RangeProgress) -> None:
    print(format_banner("Range Progress"))
    print(f"Total ranges:         {progress.total:,}")
    print(f"Pending:              {progress.pending:,}")
    print(f"Processing:           {progress.processing:,}")
    print(f"Completed:            {progress.completed:,}")
    print(f"Failed:               {progress.failed:,}")
    print(f"Requeued:             {progress.requeued:,}")
    print(f"Active workers:       {progress.active_workers}")
    print(f"Complete:             {progress.percent_complete:.1f}%")


def print_run_summary(summary: RunSummary, start_time: datetime, end_time: datetime) -> None:
    total_runtime = end_time - start_time
    print()
    print(format_banner("Final Summary"))
    print(f"Ranges claimed:       {summary.claimed}")
    print(f"Ranges completed:     {summary.completed}")
    print(f"Ranges requeued:      {summary.requeued}")
    print(f"Ranges failed:        {summary.failed}")
    print()
    print(f"End Time: {end_time:%Y-%m-%d %H:%M:%S}")
    print(f"Total Runtime: {format_duration(total_runtime.total_seconds())}")
