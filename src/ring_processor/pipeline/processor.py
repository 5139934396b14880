"""Contract for the pluggable per-batch or per-item unit of work."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

__all__ = [
    "Item",
    "BatchSizeBounds",
    "ProcessorContext",
    "ItemProcessor",
    "BatchProcessor",
    "SingleProcessor",
]

# (key, columns) pair as returned by the data store
Item = Tuple[str, Dict[str, Any]]


@dataclass(frozen=True)
class BatchSizeBounds:
    """Min/max keys fetched per round. Equal bounds fix the batch size."""

    min: int = 50
    max: int = 250

    @classmethod
    def coerce(cls, value: Union["BatchSizeBounds", int, Dict[str, int]]) -> "BatchSizeBounds":
        if isinstance(value, BatchSizeBounds):
            return value
        if isinstance(value, int):
            return cls(value, value)
        return cls(value["min"], value["max"])

    @property
    def fixed(self) -> bool:
        return self.min == self.max


@dataclass(frozen=True)
class ProcessorContext:
    """Run-wide settings handed to a processor before any range is processed."""

    worker_identity: str
    instance_name: str = ""
    dry_run: bool = False
    source: Any = None
    """Data store client the ranges are read from"""


class ItemProcessor(ABC):
    """
    Base contract for range processors.

    Subclass BatchProcessor or SingleProcessor rather than this class. The
    manager checks supports_batch() and only ever calls the matching
    operation, so a batch processor never receives process_item calls and
    vice versa.

    Processors must be idempotent per range: a range that is requeued is
    reprocessed from its original boundaries.
    """

    context: Optional[ProcessorContext] = None

    def setup(self, context: ProcessorContext) -> None:
        """Called once by the manager before processing starts."""
        self.context = context

    @property
    def dry_run(self) -> bool:
        return bool(self.context and self.context.dry_run)

    @abstractmethod
    def supports_batch(self) -> bool:
        """True when the processor consumes whole batches."""

    def required_columns(self) -> Optional[List[str]]:
        """Columns to fetch per key. None = all columns, [] = keys only."""
        return None

    def stop_on_errors(self) -> bool:
        """Return True to halt processing on the first reported error."""
        return False

    def should_checkpoint(self) -> bool:
        """Return True to save a progress checkpoint after every round."""
        return False

    def batch_size_bounds(self) -> Union[BatchSizeBounds, int, Dict[str, int]]:
        return BatchSizeBounds()

    def start_range(self, token_range) -> None:
        """Hook called before a range's first round."""

    def range_data(self) -> Optional[Any]:
        """JSON-serializable data to store with a completed range."""
        return None


class BatchProcessor(ItemProcessor):
    """Processor that handles a whole batch of items per call."""

    def supports_batch(self) -> bool:
        return True

    @abstractmethod
    def process_batch(self, items: Sequence[Item]) -> int:
        """
        Process a batch of items.

        Args:
            items: (key, columns) pairs in key order

        Returns:
            Number of items processed, excluding any that were skipped

        Raises:
            BatchError: When some of the items failed
        """


class SingleProcessor(ItemProcessor):
    """Processor that handles one item per call."""

    def supports_batch(self) -> bool:
        return False

    @abstractmethod
    def process_item(self, key: str, data: Dict[str, Any]) -> bool:
        """
        Process one item.

        Returns:
            True if the item was processed, False if it was skipped

        Raises:
            ItemError: When the item failed
        """
