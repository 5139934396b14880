# ring_processor/config.py
from __future__ import annotations

import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


# Relational range-store options
@dataclass(frozen=True)
class StoreConfig:
    """Where the token range table(s) live.

    A table name ending in ``*`` (e.g. ``token_ranges_*``) selects shard mode:
    every existing ``token_ranges_1``, ``token_ranges_2``, ... table is treated
    as part of one logical table.
    """
    db_path: Union[str, Path]
    table_name: str = "token_ranges"
    max_retries: int = 5  # Attempts per statement when the database is locked
    retry_backoff_s: float = 0.1  # Linear backoff step (attempt * step)
    timeout_s: float = 30.0  # sqlite busy timeout

    @property
    def is_sharded(self) -> bool:
        return self.table_name.endswith("*")

    @property
    def table_base(self) -> str:
        return self.table_name[:-1] if self.is_sharded else self.table_name


# Batch size tuning options
@dataclass(frozen=True)
class TunerConfig:
    initial_batch_size: int = 50
    buffer_size: int = 10  # Rounds averaged before deciding on a change
    min_batch_size: int = 25
    max_batch_size: int = 250
    min_batch_time_s: float = 5.0
    max_batch_time_s: float = 20.0


# Range processing options
@dataclass(frozen=True)
class ManagerConfig:
    """Per-worker configuration for a RangeManager.

    The worker identity written into claimed rows is ``hostname`` (defaults to
    the machine name), suffixed with ``|instance_name`` when several instances
    run on one host.
    """
    partitioner: str = "murmur3"
    min_token: Optional[int] = None  # Overrides the partitioner's lower ring bound
    max_token: Optional[int] = None  # Overrides the partitioner's upper ring bound
    instance_name: str = ""
    hostname: Optional[str] = None

    # Retry bookkeeping
    max_requeues: int = 5

    # Claim scan
    claim_window: int = 100  # Width of each random_key window
    claim_max_windows: Optional[int] = None  # None = cover the whole random_key space

    # Data store retries
    fetch_retries: int = 5
    fetch_backoff_s: float = 0.1
    connect_retries: int = 5
    connect_backoff_s: float = 0.01

    # Reporting
    report_interval_s: float = 15.0
    stats_dir: Optional[Union[str, Path]] = None
    checkpoint_path: Optional[Union[str, Path]] = None

    dry_run: bool = False

    @property
    def worker_identity(self) -> str:
        host = self.hostname or socket.gethostname()
        if self.instance_name:
            return f"{host}|{self.instance_name}"
        return host


# Multi-instance launcher options
@dataclass(frozen=True)
class WorkerPoolConfig:
    num_instances: int = 1
    instance_name: str = ""  # Name kept by the first instance
    start_method: str = "spawn"
    log_dir: Optional[Union[str, Path]] = None  # None = leave logging alone
    console_log: bool = False
