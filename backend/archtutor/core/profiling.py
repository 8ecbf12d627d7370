"""
Stage profiling for the tutoring pipeline.

Each measured operation is logged as ``stage_timed``; one that runs past its
threshold logs ``stage_slow`` at WARNING instead. The most recent readings per
operation are kept in memory for summary statistics.
"""

import logging
import math
import time
from collections import deque
from contextlib import contextmanager
from typing import Iterator

from archtutor.core.config import get_settings
from archtutor.core.logging import log_event

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Rolling per-operation timings grouped by category (router, rag, scaffold)."""

    def __init__(self, window: int | None = None, thresholds: dict[str, float] | None = None):
        settings = get_settings()
        self.window = window or settings.performance_window
        if thresholds is None:
            thresholds = {
                "retrieval": settings.slow_retrieval_ms,
                "generation": settings.slow_response_ms,
                "query": settings.slow_response_ms,
            }
        self.thresholds = thresholds
        self._readings: dict[tuple[str, str], deque] = {}

    def record(self, category: str, operation: str, elapsed_ms: float, **details) -> None:
        key = (category, operation)
        readings = self._readings.get(key)
        if readings is None:
            readings = deque(maxlen=self.window)
            self._readings[key] = readings
        readings.append(elapsed_ms)

        threshold = self.thresholds.get(operation)
        if threshold is not None and elapsed_ms > threshold:
            log_event(
                logger, "stage_slow", logging.WARNING,
                category=category, operation=operation,
                elapsed_ms=round(elapsed_ms), threshold_ms=threshold, **details,
            )
        else:
            log_event(
                logger, "stage_timed",
                category=category, operation=operation,
                elapsed_ms=round(elapsed_ms), **details,
            )

    @contextmanager
    def timed(self, category: str, operation: str, **details) -> Iterator[None]:
        """Time the enclosed block, including a block that raises."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record(category, operation, (time.perf_counter() - started) * 1000, **details)

    def stats(self, category: str, operation: str) -> dict:
        readings = sorted(self._readings.get((category, operation), ()))
        if not readings:
            return {"count": 0}

        threshold = self.thresholds.get(operation)
        p95_index = max(0, math.ceil(0.95 * len(readings)) - 1)
        return {
            "count": len(readings),
            "avg_ms": round(sum(readings) / len(readings), 1),
            "max_ms": round(readings[-1], 1),
            "p95_ms": round(readings[p95_index], 1),
            "slow": sum(1 for r in readings if threshold is not None and r > threshold),
        }

    def summary(self) -> dict[str, dict]:
        return {f"{category}.{operation}": self.stats(category, operation)
                for category, operation in self._readings}


# ── Singleton ─────────────────────────────────────────────────────────────────

_monitor: PerformanceMonitor | None = None


def get_monitor() -> PerformanceMonitor:
    """Get or create the process-wide performance monitor."""
    global _monitor
    if _monitor is None:
        _monitor = PerformanceMonitor()
    return _monitor
