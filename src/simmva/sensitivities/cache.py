"""Two-tier sensitivity cache owned by one product.

* The *bucket* tier holds the maturity-bucket arrays of the current evaluation
  time only, keyed by ``(risk_class, curve_index_name)``. It is emptied
  whenever the evaluation time changes.
* The *exact* tier holds un-bucketed per-pivot sensitivities keyed by
  ``(evaluation_time, risk_class, curve_index_name)`` and survives evaluation
  time changes. Model sensitivities and market-rate sensitivities live in
  separate namespaces.

Both tiers are emptied when the bound model changes.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import jax.numpy as jnp

from simmva.sensitivities.classification import RiskClass, bucket_index

logger = logging.getLogger(__name__)

__all__ = ["SensitivityCache", "Sensitivities"]

Sensitivities = Tuple[jnp.ndarray, ...]

MODEL = "model"
MARKET_RATE = "market_rate"


def _time_key(time: float) -> float:
    return round(float(time), 12)


class SensitivityCache:
    """Owned cache state with explicit invalidation hooks."""

    def __init__(self):
        self._evaluation_time: Optional[float] = None
        self._buckets: Dict[Tuple[RiskClass, str], Sensitivities] = {}
        self._exact: Dict[str, Dict[Tuple[float, RiskClass, str], Sensitivities]] = {
            MODEL: {},
            MARKET_RATE: {},
        }
        self.hits = 0
        self.misses = 0

    @property
    def evaluation_time(self) -> Optional[float]:
        return self._evaluation_time

    # Invalidation ------------------------------------------------------

    def on_evaluation_time_changed(self, evaluation_time: float) -> None:
        """Bind the bucket tier to ``evaluation_time``; a new time empties it."""
        key = _time_key(evaluation_time)
        if self._evaluation_time != key:
            self._buckets.clear()
            self._evaluation_time = key

    def on_model_changed(self) -> None:
        self._buckets.clear()
        self._evaluation_time = None
        self.clear_exact()
        logger.debug("Cleared all cached sensitivities after model change")

    def clear_exact(self) -> None:
        for table in self._exact.values():
            table.clear()

    # Bucket tier -------------------------------------------------------

    def get_buckets(self, risk_class: RiskClass, curve_index_name: str) -> Optional[Sensitivities]:
        buckets = self._buckets.get((risk_class, curve_index_name))
        if buckets is None:
            self.misses += 1
        else:
            self.hits += 1
        return buckets

    def put_buckets(
        self, risk_class: RiskClass, curve_index_name: str, buckets: Sensitivities
    ) -> None:
        if self._evaluation_time is None:
            raise RuntimeError("Bucket sensitivities require a bound evaluation time")
        self._buckets[(risk_class, curve_index_name)] = tuple(buckets)

    def get_bucket(
        self, risk_class: RiskClass, curve_index_name: str, maturity_bucket: str
    ) -> Optional[jnp.ndarray]:
        buckets = self._buckets.get((risk_class, curve_index_name))
        if buckets is None:
            return None
        return buckets[bucket_index(maturity_bucket)]

    # Exact tier --------------------------------------------------------

    @staticmethod
    def _namespace(market_rate: bool) -> str:
        return MARKET_RATE if market_rate else MODEL

    def get_exact(
        self,
        time: float,
        risk_class: RiskClass,
        curve_index_name: str,
        market_rate: bool = False,
    ) -> Optional[Sensitivities]:
        return self._exact[self._namespace(market_rate)].get(
            (_time_key(time), risk_class, curve_index_name)
        )

    def put_exact(
        self,
        time: float,
        risk_class: RiskClass,
        curve_index_name: str,
        sensitivities: Sensitivities,
        market_rate: bool = False,
    ) -> None:
        key = (_time_key(time), risk_class, curve_index_name)
        self._exact[self._namespace(market_rate)][key] = tuple(sensitivities)
