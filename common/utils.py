from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Tuple

import numpy as np


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class RateTimer:
    """
    Frame-rate tracker for loop diagnostics.

    Usage:
        rt = RateTimer(window=30)
        for frame in frames:
            # work...
            fps = rt.tick()
    """
    window: int = 30
    _times: Deque[float] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self._times = deque(maxlen=max(2, self.window))

    def tick(self) -> float:
        t = time.perf_counter()
        self._times.append(t)
        if len(self._times) < 2:
            return 0.0
        dt = (self._times[-1] - self._times[0]) / (len(self._times) - 1)
        return 0.0 if dt <= 0 else 1.0 / dt


@dataclass(slots=True)
class RunningStats:
    """
    Online mean/std using Welford's algorithm.
    """
    n: int = 0
    mean: float = 0.0
    m2: float = 0.0

    def add(self, x: float) -> None:
        self.n += 1
        d = x - self.mean
        self.mean += d / self.n
        d2 = x - self.mean
        self.m2 += d * d2

    @property
    def variance(self) -> float:
        return self.m2 / (self.n - 1) if self.n > 1 else 0.0

    @property
    def std(self) -> float:
        return self.variance ** 0.5


def to_numpy_3x3(x) -> np.ndarray:
    """Ensure input is a finite 3x3 float64 numpy array (copy if necessary)."""
    if x is None:
        raise ValueError("Expected 3x3, got None")
    a = np.asarray(x, dtype=float)
    if a.shape != (3, 3):
        raise ValueError(f"Expected 3x3, got shape {a.shape}")
    if not np.all(np.isfinite(a)):
        raise ValueError("3x3 matrix has non-finite entries")
    return a.copy()


def scaled_size(size: Tuple[int, int], scale: float) -> Tuple[int, int]:
    """(w, h) scaled by `scale`, never below 1 px."""
    w, h = size
    return (max(1, int(round(w * scale))), max(1, int(round(h * scale))))


def parse_color(value) -> Tuple[int, int, int]:
    """BGR triple from a YAML list / tuple; values clipped to 0..255."""
    if value is None or len(value) != 3:
        raise ValueError("color must have 3 components (B, G, R)")
    return tuple(int(np.clip(int(c), 0, 255)) for c in value)  # type: ignore[return-value]
