# tests/pipeline/test_reporter.py
from __future__ import annotations

from datetime import datetime, timedelta

from ring_processor.pipeline.range_manager import RunSummary
from ring_processor.pipeline.reporter import (
    print_failed_ranges,
    print_processing_ranges,
    print_progress,
    print_range_data,
    print_requeued_ranges,
    print_run_summary,
)
from ring_processor.tracking import RangeProgress, RangeStatus, TokenRange


def _range(range_id, **fields):
    return TokenRange(id=range_id, start_token=0, end_token=10, **fields)


def test_failed_listing_shows_totals_and_errors(capsys):
    print_failed_ranges(7, [_range(3, first_key="a", last_key="b", error="Requeue limit exceeded (5)")])
    out = capsys.readouterr().out

    assert "Failed Ranges (1 of 7)" in out
    assert "Requeue limit exceeded (5)" in out


def test_empty_listings(capsys):
    print_failed_ranges(0, [])
    print_requeued_ranges([], 30)
    print_processing_ranges([])
    out = capsys.readouterr().out

    assert "No failed ranges" in out
    assert "Ranges Requeued In The Last 30 Minutes" in out
    assert "No ranges in progress" in out


def test_processing_listing_shows_owner_and_claim_age(capsys):
    print_processing_ranges(
        [_range(4, hostname="host|inst2", claimed_at=1000.0, status=RangeStatus.PROCESSING)],
        now=1125.0,
    )
    out = capsys.readouterr().out

    assert "host|inst2" in out
    assert "2m 5s" in out


def test_requeued_listing_shows_status(capsys):
    print_requeued_ranges([_range(2, requeue_count=3, updated_at=0)], 5)
    out = capsys.readouterr().out
    assert "pending" in out


def test_range_data_listing(capsys):
    print_range_data([_range(9, range_data='{"rows": 3}')])
    assert '{"rows": 3}' in capsys.readouterr().out


def test_progress_and_summary(capsys):
    print_progress(RangeProgress(total=4, pending=1, processing=1, completed=1, failed=1,
                                 requeued=2, active_workers=1))
    start = datetime(2025, 1, 1, 12, 0, 0)
    print_run_summary(RunSummary(claimed=5, completed=3, requeued=1, failed=1),
                      start, start + timedelta(minutes=2))
    out = capsys.readouterr().out

    assert "Complete:             50.0%" in out
    assert "Ranges claimed:       5" in out
    assert "Total Runtime: 2m 0s" in out
