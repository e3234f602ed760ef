"""Timing helpers shared by the optimizer and the manager."""

from __future__ import annotations

import time
from datetime import datetime, timezone


class Timer:
    """Context timer recording elapsed milliseconds on exit."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

    def lap_ms(self) -> float:
        """Milliseconds since entry, usable before the block exits."""
        return (time.perf_counter() - self._start) * 1000.0


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
