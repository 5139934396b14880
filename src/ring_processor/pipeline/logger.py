"""Logging configuration for range processing workers."""
from __future__ import annotations

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

__all__ = ["setup_logger"]


def setup_logger(
        log_dir: Union[str, Path],
        *,
        instance_name: str = "",
        level: int = logging.INFO,
        filename_prefix: str = "ring_processor",
        console: bool = False,
        rotate: bool = False,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 3,
        force: bool = False,
) -> Path:
    """
    Configure root logging to write to a timestamped file in `log_dir`.

    Each worker instance gets its own file so instances forked on one host
    never interleave writes.

    Args:
        log_dir: Directory for log files (created if missing)
        instance_name: Worker instance name, included in the filename
        level: Logging level (default: INFO)
        filename_prefix: Prefix for log filename
        console: If True, also log to console
        rotate: If True, use RotatingFileHandler instead of FileHandler
        max_bytes: Maximum log file size before rotation (if rotate=True)
        backup_count: Number of backup files to keep (if rotate=True)
        force: If True, remove existing handlers before adding new ones

    Returns:
        Path to the created log file

    Examples:
        >>> log_path = setup_logger("/var/log/ranges", instance_name="inst2")
        >>> log_path
        PosixPath('/var/log/ranges/ring_processor_inst2_20250929_175430.log')
    """
    log_dir = Path(log_dir).expanduser().resolve()
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    stem = f"{filename_prefix}_{instance_name}" if instance_name else filename_prefix
    log_path = log_dir / f"{stem}_{timestamp}.log"

    root = logging.getLogger()

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

    root.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if rotate:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    else:
        file_handler = logging.FileHandler(
            log_path,
            mode="w",
            encoding="utf-8",
        )

    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    root.info("Logging initialized: %s", log_path)
    return log_path
