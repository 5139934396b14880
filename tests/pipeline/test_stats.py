# tests/pipeline/test_stats.py
from __future__ import annotations

import json
import logging

from ring_processor.pipeline.stats import StatsReporter, format_duration
from ring_processor.tracking import TokenRange


def _range(range_id=1):
    return TokenRange(id=range_id, start_token=0, end_token=50, first_key="a", last_key="m",
                      hostname="w1")


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_format_duration():
    assert format_duration(0) == "0s"
    assert format_duration(61) == "1m 1s"
    assert format_duration(90061) == "1d 1h 1m 1s"


def test_counters_and_skipped():
    stats = StatsReporter()
    stats.add(total=10, processed=7, errors=1)
    stats.add(total=5, processed=5)

    assert (stats.total_items, stats.processed_items, stats.errors) == (15, 12, 1)
    assert stats.skipped == 2


def test_report_logs_on_interval_or_force(caplog):
    clock = FakeClock()
    stats = StatsReporter(report_interval_s=15.0, clock=clock)
    start = clock.now

    with caplog.at_level(logging.INFO, logger="ring_processor.pipeline.stats"):
        clock.now += 5
        stats.add(total=50, processed=50)
        stats.report(_range(), 50, 50, 0, start, "k050")
        assert "CURRENT RANGE" not in caplog.text

        clock.now += 15
        stats.add(total=100, processed=100)
        snap = stats.report(_range(), 150, 150, 0, start, "k150")

    assert "CURRENT RANGE: Run time 20s, Processed 150 of 150 items, 0 errors" in caplog.text
    assert "Last key: k150" in caplog.text
    assert snap.current_rate == round(150 / 20)
    assert snap.range_skipped == 0

    caplog.clear()
    with caplog.at_level(logging.INFO, logger="ring_processor.pipeline.stats"):
        stats.report(_range(), 150, 150, 0, start, "k150", force=True)
    assert "OVERALL" in caplog.text


def test_current_rate_restarts_for_a_new_range():
    clock = FakeClock()
    stats = StatsReporter(report_interval_s=0, clock=clock)

    clock.now += 10
    stats.report(_range(1), 100, 100, 0, clock.now - 10, "a")
    range_start = clock.now
    clock.now += 4
    snap = stats.report(_range(2), 20, 20, 0, range_start, "b")

    assert snap.current_rate == 5


def test_stats_file_per_instance(tmp_path):
    stats = StatsReporter(instance_name="inst2", stats_dir=tmp_path)
    stats.add(total=3, processed=2, errors=1)
    stats.report(_range(), 3, 2, 1, 0.0, "zz")

    data = json.loads((tmp_path / "stats-inst2.json").read_text(encoding="utf-8"))
    assert data["range_id"] == 1
    assert data["hostname"] == "w1"
    assert data["total_errors"] == 1
    assert data["last_key"] == "zz"
