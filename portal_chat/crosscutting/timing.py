"""
===============================================================================
MODULE: Stage timings (embed / retrieve / llm)
===============================================================================

Components:
  - Timer: perf_counter stopwatch, usable as a context manager
  - StageTimings: named stages + total, exposed in ms for logs and in
    seconds for metrics
===============================================================================
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class Timer:
    _started: Optional[float] = field(default=None, repr=False)
    _stopped: Optional[float] = field(default=None, repr=False)

    def start(self) -> "Timer":
        self._started = time.perf_counter()
        self._stopped = None
        return self

    def stop(self) -> "Timer":
        if self._started is None:
            raise RuntimeError("timer was never started")
        self._stopped = time.perf_counter()
        return self

    @property
    def elapsed_seconds(self) -> float:
        if self._started is None:
            return 0.0
        end = self._stopped if self._stopped is not None else time.perf_counter()
        return end - self._started

    @property
    def elapsed_ms(self) -> float:
        return round(self.elapsed_seconds * 1000, 2)

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()


@dataclass
class StageTimings:
    """Per-stage durations of one chat request; the total starts at creation."""

    _stages: Dict[str, float] = field(default_factory=dict)
    _total: Timer = field(default_factory=Timer)

    def __post_init__(self) -> None:
        self._total.start()

    def measure(self, stage: str) -> "_StageTimer":
        return _StageTimer(stage, self)

    def record(self, stage: str, elapsed_seconds: float) -> None:
        self._stages[stage] = elapsed_seconds

    def seconds(self, stage: str) -> Optional[float]:
        return self._stages.get(stage)

    @property
    def total_ms(self) -> float:
        return self._total.elapsed_ms

    def to_dict(self) -> Dict[str, float]:
        result = {f"{name}_ms": round(s * 1000, 2) for name, s in self._stages.items()}
        result["total_ms"] = self.total_ms
        return result


class _StageTimer(Timer):
    def __init__(self, stage: str, parent: StageTimings):
        super().__init__()
        self._stage = stage
        self._parent = parent

    def __exit__(self, *exc) -> None:
        super().__exit__(*exc)
        self._parent.record(self._stage, self.elapsed_seconds)
