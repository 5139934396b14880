"""Exception types shared by the range store, the manager and processors."""

from __future__ import annotations

from typing import Hashable, Iterable, Optional

__all__ = [
    "TRANSIENT_STATUS_CODES",
    "TransientFetchError",
    "BatchError",
    "ItemError",
    "RangeNotFoundError",
    "RangeNotHeldError",
    "ConfigurationError",
    "ProcessingHalted",
    "is_transient",
]

# Status codes the data store uses for timeouts and temporary unavailability
TRANSIENT_STATUS_CODES = frozenset({408, 503})


class TransientFetchError(Exception):
    """Data store timeout or temporary unavailability."""

    def __init__(self, message: str = "", code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class BatchError(Exception):
    """Raised by a batch processor when some items in a batch failed."""

    def __init__(self, count: int, message: str = "", error_keys: Iterable[Hashable] = ()):
        super().__init__(message)
        self.count = count
        self.error_keys = list(error_keys)


class ItemError(Exception):
    """Raised by a single-item processor when one item failed."""

    def __init__(self, key: Hashable, message: str = ""):
        super().__init__(message)
        self.key = key


class RangeNotFoundError(KeyError):
    """No range with the requested id exists in any table."""


class RangeNotHeldError(RuntimeError):
    """A worker tried to write to a range it no longer holds (reset by an operator)."""

    def __init__(self, range_id: int, owner: Optional[str]):
        super().__init__(f"Range {range_id} is no longer held by {owner}")
        self.range_id = range_id
        self.owner = owner


class ConfigurationError(ValueError):
    """Invalid partitioner, range count or batch bounds."""


class ProcessingHalted(RuntimeError):
    """A processor that stops on errors reported one."""


def is_transient(exc: BaseException) -> bool:
    """
    Decide whether an exception from the data store is worth retrying.

    Args:
        exc: Exception raised by a data store call

    Returns:
        True for timeouts, connection loss and known transient status codes
    """
    if isinstance(exc, (TransientFetchError, TimeoutError, ConnectionError)):
        return True
    if getattr(exc, "code", None) in TRANSIENT_STATUS_CODES:
        return True
    return str(exc).startswith("TSocket: timed out")
