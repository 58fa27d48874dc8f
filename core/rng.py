"""
Thread-safe random source for parallel generations.

The process owns one RandomSource. Every parallel task receives its own
numpy Generator spawned from the shared SeedSequence, so workers never share
an unsynchronised generator.

Usage:
    from core.rng import get_random_source

    rngs = get_random_source().spawn(len(population))
    value = rand_int_min(rngs[0], 0, 10)
"""
from __future__ import annotations

import threading
from typing import List, Optional

import numpy as np


class RandomSource:
    """Process-wide generator factory guarded by a lock."""

    def __init__(self, seed: Optional[int] = None):
        self._lock = threading.Lock()
        self._seq = np.random.SeedSequence(seed)

    def reseed(self, seed: Optional[int]) -> None:
        """Replace the root seed sequence."""
        with self._lock:
            self._seq = np.random.SeedSequence(seed)

    def spawn(self, n: int) -> List[np.random.Generator]:
        """Create ``n`` independent generators, one per task."""
        if n <= 0:
            return []
        with self._lock:
            children = self._seq.spawn(n)
        return [np.random.default_rng(child) for child in children]

    def generator(self) -> np.random.Generator:
        """Create a single independent generator."""
        return self.spawn(1)[0]


_source = RandomSource()


def get_random_source() -> RandomSource:
    """Get the global random source."""
    return _source


def rand_int(rng: np.random.Generator, high: int) -> int:
    """Uniform int in ``[0, high)``; 0 when the range is empty."""
    if high <= 0:
        return 0
    return int(rng.integers(0, high))


def rand_int_min(rng: np.random.Generator, low: int, high: int) -> int:
    """
    Uniform int in ``[low, high)`` with degenerate ranges clamped.

    ``low >= high`` returns ``low``; a negative ``high`` returns 0.
    """
    if low >= high:
        return low
    if high < 0:
        return 0
    return int(rng.integers(low, high))


def rand_float(rng: np.random.Generator, low: float, high: float) -> float:
    """Uniform float in ``[low, high)``; ``low`` when ``low >= high``."""
    if low >= high:
        return float(low)
    return float(low + rng.random() * (high - low))
