"""Database schema and shard table discovery for token range tracking."""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import List

from ring_processor.errors import ConfigurationError

__all__ = ["init_range_tables", "discover_range_tables", "shard_table_names", "RANGE_COLUMNS"]

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

RANGE_COLUMNS = (
    "id",
    "start_token",
    "end_token",
    "first_key",
    "last_key",
    "status",
    "hostname",
    "total_items",
    "processed_items",
    "error_count",
    "processing_time",
    "error",
    "range_data",
    "requeue_count",
    "random_key",
    "claimed_at",
    "created_at",
    "updated_at",
)


def _check_identifier(name: str) -> str:
    if not _TABLE_NAME_RE.match(name):
        raise ConfigurationError(f"Invalid table name: {name!r}")
    return name


def shard_table_names(table_name: str, num_shards: int) -> List[str]:
    """
    Physical table names for a logical table.

    Example:
        >>> shard_table_names("token_ranges_*", 3)
        ['token_ranges_1', 'token_ranges_2', 'token_ranges_3']
        >>> shard_table_names("token_ranges", 1)
        ['token_ranges']
    """
    if not table_name.endswith("*"):
        return [_check_identifier(table_name)]
    base = table_name[:-1]
    return [_check_identifier(f"{base}{i}") for i in range(1, num_shards + 1)]


def _create_table(conn: sqlite3.Connection, table: str) -> None:
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id INTEGER PRIMARY KEY,
            start_token TEXT NOT NULL UNIQUE,
            end_token TEXT NOT NULL,
            first_key TEXT NOT NULL DEFAULT '',
            last_key TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'pending',
            hostname TEXT,
            total_items INTEGER NOT NULL DEFAULT 0,
            processed_items INTEGER NOT NULL DEFAULT 0,
            error_count INTEGER NOT NULL DEFAULT 0,
            processing_time REAL NOT NULL DEFAULT 0,
            error TEXT,
            range_data TEXT,
            requeue_count INTEGER NOT NULL DEFAULT 0,
            random_key INTEGER NOT NULL DEFAULT 0,
            claimed_at REAL,
            created_at REAL,
            updated_at REAL
        )
    """)

    # Claim scan and resume lookups
    conn.execute(f"""
        CREATE INDEX IF NOT EXISTS idx_{table}_status_random_key
        ON {table}(status, random_key)
    """)
    conn.execute(f"""
        CREATE INDEX IF NOT EXISTS idx_{table}_status_hostname
        ON {table}(status, hostname)
    """)


def init_range_tables(db_path: Path, table_name: str, num_shards: int = 1) -> List[str]:
    """
    Create the token range table(s) if they don't exist.

    Args:
        db_path: Path to SQLite database file
        table_name: Logical table name, ``base_*`` for a sharded table
        num_shards: Number of shard tables to create in shard mode

    Returns:
        Physical table names that now exist
    """
    if num_shards < 1:
        raise ConfigurationError(f"num_shards must be >= 1, got {num_shards}")

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    tables = shard_table_names(table_name, num_shards)
    with sqlite3.connect(str(db_path), timeout=10.0) as conn:
        # WAL lets readers proceed while one worker holds the claim lock
        conn.execute("PRAGMA journal_mode=WAL")
        for table in tables:
            _create_table(conn, table)
        conn.commit()
    return tables


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cursor = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table,)
    )
    return cursor.fetchone() is not None


def discover_range_tables(db_path: Path, table_name: str) -> List[str]:
    """
    List the physical tables behind a logical table name.

    A plain name maps to itself. A sharded name (``base_*``) maps to
    ``base_1``, ``base_2``, ... stopping at the first one that is missing.
    """
    if not table_name.endswith("*"):
        return [_check_identifier(table_name)]

    base = table_name[:-1]
    tables = []
    with sqlite3.connect(str(db_path), timeout=10.0) as conn:
        i = 1
        while True:
            table = _check_identifier(f"{base}{i}")
            if not _table_exists(conn, table):
                break
            tables.append(table)
            i += 1
    return tables
