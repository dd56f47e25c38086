"""
percentile.py — Percentile ranking over a fixed numeric distribution.

    ranker = PercentileRanker.build([120_000, 95_000, 95_000, 410_000])
    ranker.rank(95_000)   # mid-rank of the tied run → 0.1666…
    ranker.rank(200_000)  # interpolated between neighbours

Ranks follow empirical-CDF interpolation on sample positions:

    value ≤ min                 → 0.0
    value ≥ max                 → 1.0
    value equals a run [i..j]   → ((i + j) / 2) / (n - 1)
    prev < value < next         → (k - 1 + (value - prev) / (next - prev)) / (n - 1)
    one distinct value          → 0.5 for every finite value
    empty distribution          → None
"""

import math

import numpy as np


def as_finite(value) -> float | None:
    """Coerce *value* to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class PercentileRanker:
    """
    Immutable rank lookup built from one metric's samples.

    The sorted samples are held in a read-only numpy array; lookups
    are two binary searches, so concurrent reads need no locking.
    """

    __slots__ = ("_sorted",)

    def __init__(self, sorted_samples: np.ndarray):
        samples = np.array(sorted_samples, dtype=np.float64, copy=True)
        samples.flags.writeable = False
        self._sorted = samples

    @classmethod
    def build(cls, samples) -> "PercentileRanker":
        """Drop non-finite samples, sort ascending, and freeze."""
        finite = [number for number in map(as_finite, samples) if number is not None]
        return cls(np.sort(np.asarray(finite, dtype=np.float64)))

    def __len__(self) -> int:
        return int(self._sorted.size)

    @property
    def samples(self) -> np.ndarray:
        return self._sorted

    @property
    def is_degenerate(self) -> bool:
        """True when no discrimination is possible (≤ 1 distinct value)."""
        return self._sorted.size > 0 and self._sorted[0] == self._sorted[-1]

    def rank(self, value) -> float | None:
        """Return the percentile of *value* in [0, 1], or None."""
        number = as_finite(value)
        if number is None or self._sorted.size == 0:
            return None
        if self.is_degenerate:
            return 0.5

        samples = self._sorted
        last = samples.size - 1
        if number <= samples[0]:
            return 0.0
        if number >= samples[last]:
            return 1.0

        first = int(np.searchsorted(samples, number, side="left"))
        end = int(np.searchsorted(samples, number, side="right"))
        if end > first:
            # tied run occupies [first, end - 1]
            return ((first + end - 1) / 2) / last

        prev_value = float(samples[first - 1])
        next_value = float(samples[first])
        span = next_value - prev_value
        fractional = first - 1 + (number - prev_value) / span
        return fractional / last

    __call__ = rank
