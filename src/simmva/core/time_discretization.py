"""Sorted time grids used for simulation times, tenors and discount pivots."""
from __future__ import annotations

import bisect
from typing import Iterable, Sequence

import numpy as np

__all__ = ["TimeDiscretization", "TIME_TOLERANCE"]

TIME_TOLERANCE = 1e-10


class TimeDiscretization(Sequence[float]):
    """Immutable, strictly increasing sequence of times.

    Lookups tolerate floating point noise of ``TIME_TOLERANCE`` so that
    ``0.1 + 0.2`` is found on a grid containing ``0.3``.
    """

    def __init__(self, times: Iterable[float]):
        values = sorted({round(float(t), 12) for t in times})
        if not values:
            raise ValueError("A time discretization needs at least one time.")
        merged = [values[0]]
        for value in values[1:]:
            if value - merged[-1] > TIME_TOLERANCE:
                merged.append(value)
        self._times = tuple(merged)

    @classmethod
    def uniform(cls, start: float, steps: int, step: float) -> "TimeDiscretization":
        """Return ``start, start + step, ..., start + steps * step``."""
        if steps < 0:
            raise ValueError("steps must be >= 0 for a uniform discretization.")
        if step <= 0:
            raise ValueError("step must be > 0 for a uniform discretization.")
        return cls(start + i * step for i in range(steps + 1))

    def union(self, other: Iterable[float]) -> "TimeDiscretization":
        return TimeDiscretization(list(self._times) + [float(t) for t in other])

    # Sequence protocol -------------------------------------------------

    def __getitem__(self, index):
        return self._times[index]

    def __len__(self) -> int:
        return len(self._times)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TimeDiscretization):
            return NotImplemented
        return len(self) == len(other) and all(
            abs(a - b) <= TIME_TOLERANCE for a, b in zip(self._times, other._times)
        )

    def __hash__(self) -> int:
        return hash(self._times)

    def __repr__(self) -> str:
        return f"TimeDiscretization({list(self._times)!r})"

    # Lookups -----------------------------------------------------------

    @property
    def number_of_time_steps(self) -> int:
        return len(self._times) - 1

    def as_array(self) -> np.ndarray:
        return np.asarray(self._times, dtype=float)

    def time(self, index: int) -> float:
        return self._times[index]

    def time_step(self, index: int) -> float:
        """Length of the interval ``[t_index, t_index+1]``."""
        return self._times[index + 1] - self._times[index]

    def first(self) -> float:
        return self._times[0]

    def last(self) -> float:
        return self._times[-1]

    def contains(self, time: float) -> bool:
        return self.find_index(time) is not None

    def find_index(self, time: float) -> int | None:
        """Index of ``time`` on the grid, or ``None`` if it is not a grid time."""
        index = self.index_nearest_less_or_equal(time)
        if index >= 0 and abs(self._times[index] - time) <= TIME_TOLERANCE:
            return index
        return None

    def time_index(self, time: float) -> int:
        """Index of ``time``; raises ``ValueError`` if it is not a grid time."""
        index = self.find_index(time)
        if index is None:
            raise ValueError(f"Time {time} is not part of the discretization.")
        return index

    def index_nearest_less_or_equal(self, time: float) -> int:
        """Largest index with ``t_i <= time``; ``-1`` if ``time`` precedes the grid."""
        return bisect.bisect_right(self._times, float(time) + TIME_TOLERANCE) - 1

    def index_nearest_greater_or_equal(self, time: float) -> int:
        """Smallest index with ``t_i >= time``; ``len(self)`` if ``time`` is beyond the grid."""
        return bisect.bisect_left(self._times, float(time) - TIME_TOLERANCE)
