"""Lightweight in-process metrics for development and tests.

Components record counters and timings here; nothing is exported anywhere.

Usage:
    from image_staging.metrics import metrics
    metrics.inc("staging.files_added")
    with metrics.timed("transform.rotate_duration"):
        ...
    snapshot = metrics.snapshot()
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from contextlib import contextmanager
from threading import RLock
from typing import Any


# Most recent samples kept per timing key.
TIMING_WINDOW = 1000


class _Metrics:
    def __init__(self, timing_window: int = TIMING_WINDOW) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._timings: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=timing_window))
        self._lock = RLock()

    def inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += int(amount)

    def timed(self, key: str):
        @contextmanager
        def _ctx():
            start = time.perf_counter()
            try:
                yield
            finally:
                elapsed = time.perf_counter() - start
                with self._lock:
                    self._timings[key].append(elapsed)

        return _ctx()

    def counter(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "timings": {k: list(v) for k, v in self._timings.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = _Metrics()
