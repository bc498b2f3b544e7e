"""Zero coupon bond discounted with the model numeraire."""
from __future__ import annotations

from typing import Any, Sequence

import jax.numpy as jnp

from simmva.core.time_discretization import TIME_TOLERANCE
from simmva.products.base import SIMMProduct
from simmva.sensitivities.classification import ProductClassification

__all__ = ["SIMMZeroCouponBond"]


class SIMMZeroCouponBond(SIMMProduct):
    """Pays ``notional`` at ``maturity``; its time-zero price is P_OIS(0, maturity)."""

    def __init__(
        self,
        currency: str,
        maturity: float,
        notional: float = 1.0,
        curve_index_names: Sequence[str] = ("OIS", "Libor6m"),
        regression_ridge: float = 1e-8,
    ):
        if maturity <= 0:
            raise ValueError("Bond maturity must be positive")
        super().__init__(
            ProductClassification(currency=currency, curve_index_names=tuple(curve_index_names)),
            regression_ridge=regression_ridge,
        )
        self.maturity = float(maturity)
        self.notional = float(notional)

    @property
    def final_maturity(self) -> float:
        return self.maturity

    def get_cash_flows(self, initial_time: float, final_time: float, model: Any) -> jnp.ndarray:
        if initial_time + TIME_TOLERANCE < self.maturity <= final_time + TIME_TOLERANCE:
            return self.notional / model.get_numeraire(self.maturity)
        return jnp.zeros(model.number_of_paths)

    def get_value(self, evaluation_time: float, model: Any) -> jnp.ndarray:
        return self.get_cash_flows(evaluation_time, self.maturity, model) * model.get_numeraire(evaluation_time)
