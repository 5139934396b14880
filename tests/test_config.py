# tests/test_config.py
from __future__ import annotations

import dataclasses

import pytest

from ring_processor.config import ManagerConfig, StoreConfig, TunerConfig


def test_worker_identity_includes_instance_name():
    assert ManagerConfig(hostname="node7").worker_identity == "node7"
    assert ManagerConfig(hostname="node7", instance_name="inst2").worker_identity == "node7|inst2"


def test_worker_identity_defaults_to_machine_name(monkeypatch):
    import ring_processor.config as config_mod
    monkeypatch.setattr(config_mod.socket, "gethostname", lambda: "box")
    assert ManagerConfig().worker_identity == "box"


def test_shard_mode_from_table_name(tmp_path):
    assert StoreConfig(tmp_path / "r.db", "token_ranges_*").is_sharded
    assert StoreConfig(tmp_path / "r.db", "token_ranges_*").table_base == "token_ranges_"
    assert not StoreConfig(tmp_path / "r.db").is_sharded


def test_configs_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        TunerConfig().buffer_size = 3
