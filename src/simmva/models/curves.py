"""Deterministic discount curves used for the OIS discounting adjustment."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

__all__ = ["DiscountCurve"]


@dataclass(frozen=True)
class DiscountCurve:
    """Discount curve interpolated log-linearly in the discount factors.

    ``P(0) = 1`` is implied. Beyond the last pillar the last zero rate is
    extended, i.e. ``log P(t) = log P(T_last) * t / T_last``.

    Attributes
    ----------
    times : Sequence[float]
        Strictly increasing positive pillar times
    discount_factors : Sequence[float]
        Discount factors at the pillar times
    name : str
        Curve name, e.g. ``"OIS"``
    """

    times: Sequence[float]
    discount_factors: Sequence[float]
    name: str = "OIS"
    _log_times: np.ndarray = field(init=False, repr=False, compare=False)
    _log_dfs: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        times = np.asarray(self.times, dtype=float)
        dfs = np.asarray(self.discount_factors, dtype=float)
        if times.ndim != 1 or times.shape != dfs.shape or times.size == 0:
            raise ValueError("times and discount_factors must be non-empty 1-d sequences of equal length")
        if np.any(times <= 0.0) or np.any(np.diff(times) <= 0.0):
            raise ValueError("Pillar times must be positive and strictly increasing")
        if np.any(dfs <= 0.0):
            raise ValueError("Discount factors must be positive")
        object.__setattr__(self, "times", tuple(times.tolist()))
        object.__setattr__(self, "discount_factors", tuple(dfs.tolist()))
        object.__setattr__(self, "_log_times", np.concatenate([[0.0], times]))
        object.__setattr__(self, "_log_dfs", np.concatenate([[0.0], np.log(dfs)]))

    @classmethod
    def flat(cls, rate: float, horizon: float = 100.0, name: str = "OIS") -> "DiscountCurve":
        """Curve with continuously compounded zero rate ``rate``."""
        return cls(times=(horizon,), discount_factors=(math.exp(-rate * horizon),), name=name)

    def discount_factor(self, time: float) -> float:
        if time < 0.0:
            raise ValueError(f"Discount factor requested for negative time {time}")
        if time <= self._log_times[-1]:
            return float(np.exp(np.interp(time, self._log_times, self._log_dfs)))
        return float(np.exp(self._log_dfs[-1] * time / self._log_times[-1]))
