"""Range claiming, batch processing and worker launch."""

from .processor import (
    Item,
    BatchSizeBounds,
    ProcessorContext,
    ItemProcessor,
    BatchProcessor,
    SingleProcessor,
)
from .client import RangeKeyLister, KeyColumnFetcher, RingStoreClient, EMPTY_KEY_PREFIX
from .tuner import BatchSizeTuner
from .profiler import PhaseProfiler, PhaseTiming
from .stats import StatsReporter, RangeSnapshot, format_duration
from .checkpoint import Checkpoint, ScriptProgress
from .range_manager import RangeManager, RangeOutcome, RunSummary
from .worker_pool import instance_names, run_instance, run_instances
from .logger import setup_logger

__all__ = [
    "Item",
    "BatchSizeBounds",
    "ProcessorContext",
    "ItemProcessor",
    "BatchProcessor",
    "SingleProcessor",
    "RangeKeyLister",
    "KeyColumnFetcher",
    "RingStoreClient",
    "EMPTY_KEY_PREFIX",
    "BatchSizeTuner",
    "PhaseProfiler",
    "PhaseTiming",
    "StatsReporter",
    "RangeSnapshot",
    "format_duration",
    "Checkpoint",
    "ScriptProgress",
    "RangeManager",
    "RangeOutcome",
    "RunSummary",
    "instance_names",
    "run_instance",
    "run_instances",
    "setup_logger",
]
