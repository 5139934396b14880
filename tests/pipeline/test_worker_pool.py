# tests/pipeline/test_worker_pool.py
from __future__ import annotations

import logging

import pytest

import ring_processor.pipeline.worker_pool as pool_mod
from ring_processor.config import WorkerPoolConfig
from ring_processor.errors import ProcessingHalted
from ring_processor.pipeline.range_manager import RunSummary
from ring_processor.pipeline.worker_pool import (
    EXIT_CRASHED,
    EXIT_HALTED,
    EXIT_OK,
    instance_names,
    run_instance,
    run_instances,
)


class FakeManager:
    def __init__(self, error=None):
        self.error = error
        self.runs = 0

    def process_all(self):
        self.runs += 1
        if self.error is not None:
            raise self.error
        return RunSummary(claimed=2, completed=2)


@pytest.fixture(autouse=True)
def no_proctitle(monkeypatch):
    titles = []
    monkeypatch.setattr(pool_mod, "setproctitle", titles.append)
    return titles


def test_instance_names():
    assert instance_names(WorkerPoolConfig()) == [""]
    assert instance_names(WorkerPoolConfig(num_instances=3, instance_name="main")) == [
        "main", "inst2", "inst3"
    ]


def test_run_instance_sets_title_and_runs(no_proctitle):
    created = []

    def factory(name):
        created.append(name)
        return FakeManager()

    assert run_instance(factory, "inst2", WorkerPoolConfig()) == EXIT_OK
    assert created == ["inst2"]
    assert no_proctitle == ["rp:worker[inst2]"]


@pytest.mark.parametrize("error, code", [
    (ProcessingHalted("stop"), EXIT_HALTED),
    (RuntimeError("kaput"), EXIT_CRASHED),
])
def test_run_instance_exit_codes(error, code, caplog):
    with caplog.at_level(logging.ERROR, logger="ring_processor.pipeline.worker_pool"):
        assert run_instance(lambda name: FakeManager(error), "", WorkerPoolConfig()) == code
    assert "main" in caplog.text


def test_factory_failure_is_a_crash():
    def factory(name):
        raise ValueError("bad config")

    assert run_instance(factory, "", WorkerPoolConfig()) == EXIT_CRASHED


def test_single_instance_runs_in_process():
    manager = FakeManager()
    assert run_instances(lambda name: manager, WorkerPoolConfig()) == [EXIT_OK]
    assert manager.runs == 1


def test_run_instance_sets_up_log_file(tmp_path):
    root = logging.getLogger()
    prev = list(root.handlers)
    prev_level = root.level
    try:
        run_instance(lambda name: FakeManager(), "inst4", WorkerPoolConfig(log_dir=tmp_path))
        logs = list(tmp_path.glob("ring_processor_inst4_*.log"))
        assert len(logs) == 1
        assert "Instance inst4 done" in logs[0].read_text(encoding="utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in prev:
            root.addHandler(h)
        root.setLevel(prev_level)
