"""Latency measurement for store and dispatch operations."""

from __future__ import annotations

import time
from datetime import timedelta


class Timer:
    """Simple context timer used around writes and model calls."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

    @property
    def duration(self) -> timedelta:
        return timedelta(milliseconds=self.elapsed_ms)
