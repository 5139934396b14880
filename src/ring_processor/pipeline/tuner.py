"""Adaptive batch sizing from observed round durations."""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Dict, List, Optional, Union

from ring_processor.config import TunerConfig
from ring_processor.errors import ConfigurationError
from .processor import BatchSizeBounds

logger = logging.getLogger(__name__)

__all__ = ["BatchSizeTuner", "MIN_BATCH_SIZE"]

# Key fetches include their start key, which repeats the previous round's last
# key. A round needs room for at least one new key.
MIN_BATCH_SIZE = 2


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class BatchSizeTuner:
    """
    Proportional controller keeping each round inside [min_batch_time, max_batch_time].

    Durations of the last `buffer_size` rounds are averaged. When the mean is
    below the window the batch grows by (min_time - mean) / mean of its size,
    when above it shrinks by (mean - max_time) / mean, clamped to the size
    bounds. Any change clears the buffer so the next decision only sees rounds
    run at the new size.

    Equal min and max sizes fix the batch size and disable tuning. Sizes below
    MIN_BATCH_SIZE are rejected.
    """

    def __init__(self, config: Optional[TunerConfig] = None, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the tuner.

        Args:
            config: Size/time bounds and averaging buffer length
            clock: Time source (seconds), injectable for tests
        """
        config = config or TunerConfig()
        if config.buffer_size < 1:
            raise ConfigurationError(f"buffer_size must be >= 1, got {config.buffer_size}")

        self.buffer_size = config.buffer_size
        self.min_batch_time = config.min_batch_time_s
        self.max_batch_time = config.max_batch_time_s
        self._clock = clock
        self._current = config.initial_batch_size
        self._batch_times: List[float] = []
        self._last_batch_time = 0.0
        self._started = False
        self._fixed = False
        self.set_batch_size_limits(config.min_batch_size, config.max_batch_size)

    @property
    def batch_size(self) -> int:
        return self._current

    @property
    def fixed(self) -> bool:
        return self._fixed

    def set_batch_size_bounds(self, bounds: Union[BatchSizeBounds, int, Dict[str, int]]) -> None:
        """Apply a processor's bounds (a BatchSizeBounds, a fixed int, or {'min': .., 'max': ..})."""
        bounds = BatchSizeBounds.coerce(bounds)
        self.set_batch_size_limits(bounds.min, bounds.max)

    def set_batch_size_limits(self, min_size: int, max_size: int) -> None:
        if min_size < MIN_BATCH_SIZE or max_size < min_size:
            raise ConfigurationError(f"Invalid batch size limits: min={min_size}, max={max_size}")

        self.min_batch_size = min_size
        self.max_batch_size = max_size
        self._fixed = min_size == max_size
        if self._fixed:
            self._current = min_size
            logger.info("BatchSizeTuner: Batch size fixed at %d", min_size)
        else:
            self._current = min(max(self._current, min_size), max_size)
            logger.info("BatchSizeTuner: Batch size range set to min=%d, max=%d", min_size, max_size)

    def set_batch_time_limits(self, min_time: float, max_time: float) -> None:
        if min_time <= 0 or max_time < min_time:
            raise ConfigurationError(f"Invalid batch time limits: min={min_time}, max={max_time}")
        self.min_batch_time = min_time
        self.max_batch_time = max_time

    def reset(self) -> None:
        """Forget buffered durations (called at the start of each range)."""
        self._batch_times = []
        self._started = False

    def next_batch(self) -> int:
        """
        Mark the start of a round and return the batch size to fetch.

        The time since the previous call is recorded as the previous round's
        duration; the first call after reset() only starts the clock.
        """
        if self._fixed:
            return self._current

        now = self._clock()
        if self._started:
            self.record(now - self._last_batch_time)
        else:
            self._started = True
        self._last_batch_time = now
        return self._current

    def record(self, duration: float) -> int:
        """Add one round duration and recalculate once the buffer is full."""
        if self._fixed:
            return self._current
        self._batch_times.append(duration)
        self._recalculate()
        return self._current

    def _recalculate(self) -> None:
        if self._fixed or len(self._batch_times) < self.buffer_size:
            return

        del self._batch_times[:-self.buffer_size]
        avg_time = sum(self._batch_times) / len(self._batch_times)

        new_size = self._current
        if avg_time < self.min_batch_time:
            # Too fast, grow
            if avg_time <= 0:
                new_size = self.max_batch_size
            else:
                proportion = (self.min_batch_time - avg_time) / avg_time
                new_size = min(_round_half_up(self._current * (1 + proportion)), self.max_batch_size)
        elif avg_time > self.max_batch_time:
            # Too slow, shrink
            proportion = (avg_time - self.max_batch_time) / avg_time
            new_size = max(_round_half_up(self._current * (1 - proportion)), self.min_batch_size)

        if new_size != self._current:
            logger.info(
                "BatchSizeTuner: Average batch time: %.2f seconds. Changing batch size from %d to %d",
                avg_time, self._current, new_size
            )
            self._current = new_size
            self._batch_times = []
        else:
            logger.debug(
                "BatchSizeTuner: Average batch time: %.2f seconds, batch size=%d",
                avg_time, self._current
            )
