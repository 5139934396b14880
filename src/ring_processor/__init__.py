"""Distributed token-range processing over a consistent-hash ring."""

from .config import ManagerConfig, StoreConfig, TunerConfig, WorkerPoolConfig
from .errors import (
    BatchError,
    ConfigurationError,
    ItemError,
    ProcessingHalted,
    RangeNotFoundError,
    RangeNotHeldError,
    TransientFetchError,
)
from .tracking import RangeStatus, RangeStore, TokenRange
from .pipeline import BatchProcessor, RangeManager, RingStoreClient, SingleProcessor

__version__ = "0.1.0"

__all__ = [
    "ManagerConfig",
    "StoreConfig",
    "TunerConfig",
    "WorkerPoolConfig",
    "BatchError",
    "ConfigurationError",
    "ItemError",
    "ProcessingHalted",
    "RangeNotFoundError",
    "RangeNotHeldError",
    "TransientFetchError",
    "RangeStatus",
    "RangeStore",
    "TokenRange",
    "BatchProcessor",
    "RangeManager",
    "RingStoreClient",
    "SingleProcessor",
]
