"""Wall-clock timing of the manager's phases (connect, claim, fetch, save, ...)."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List

logger = logging.getLogger(__name__)

__all__ = [
    "PhaseProfiler",
    "PhaseTiming",
    "PHASE_CONNECT",
    "PHASE_CLAIM",
    "PHASE_REFRESH_KEYS",
    "PHASE_GET_KEYS",
    "PHASE_PROCESS_BATCH",
    "PHASE_REQUEUE",
    "PHASE_RANGE_SAVE",
]

PHASE_CONNECT = "connect"
PHASE_CLAIM = "claim"
PHASE_REFRESH_KEYS = "refresh_keys"
PHASE_GET_KEYS = "get_keys"
PHASE_PROCESS_BATCH = "process_batch"
PHASE_REQUEUE = "requeue"
PHASE_RANGE_SAVE = "range_save"


@dataclass
class PhaseTiming:
    count: int = 0
    total_s: float = 0.0
    max_s: float = 0.0

    @property
    def mean_s(self) -> float:
        return self.total_s / self.count if self.count else 0.0

    def add(self, duration: float) -> None:
        self.count += 1
        self.total_s += duration
        self.max_s = max(self.max_s, duration)


class PhaseProfiler:
    """
    Accumulates call counts and durations per named phase.

    Example:
        >>> profiler = PhaseProfiler()
        >>> with profiler.timed(PHASE_CLAIM):
        ...     pass
        >>> profiler.timings()[PHASE_CLAIM].count
        1
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._timings: Dict[str, PhaseTiming] = {}

    @contextmanager
    def timed(self, phase: str) -> Iterator[None]:
        """Time the body of the with-block, including when it raises."""
        start = self._clock()
        try:
            yield
        finally:
            self.add(phase, self._clock() - start)

    def add(self, phase: str, duration: float) -> None:
        self._timings.setdefault(phase, PhaseTiming()).add(duration)

    def reset(self) -> None:
        self._timings = {}

    def timings(self) -> Dict[str, PhaseTiming]:
        return dict(self._timings)

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        """Plain-data view for the stats file."""
        return {
            phase: {
                "count": timing.count,
                "total_s": round(timing.total_s, 6),
                "mean_s": round(timing.mean_s, 6),
                "max_s": round(timing.max_s, 6),
            }
            for phase, timing in sorted(self._timings.items())
        }

    def format_report(self) -> List[str]:
        lines = []
        for phase, timing in sorted(self._timings.items(), key=lambda kv: -kv[1].total_s):
            lines.append(
                f"{phase:<14} {timing.count:>8} calls  {timing.total_s:>10.3f}s total  "
                f"{timing.mean_s * 1000:>9.1f}ms mean  {timing.max_s * 1000:>9.1f}ms max"
            )
        return lines
