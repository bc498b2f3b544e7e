"""Path-wise SIMM interest rate delta margin of a single product."""
from __future__ import annotations

import logging
from typing import Any, Sequence

import jax.numpy as jnp

from simmva.core.errors import UnsupportedSensitivityError
from simmva.margin.risk_weights import (
    concentration_risk_factor,
    get_concentration_threshold,
    get_ir_correlation_matrix,
    get_ir_risk_weights,
)
from simmva.sensitivities.classification import IR_MATURITY_BUCKETS, RiskClass, SensitivityType

logger = logging.getLogger(__name__)

__all__ = ["SIMMMarginScheme"]


class SIMMMarginScheme:
    """Interest rate delta margin from the product's bucket sensitivities.

    For the single currency bucket of the product

        K = sqrt(Σ_{k,l,c,d} ρ_kl φ_cd WS_{k,c} WS_{l,d}),  WS = RW · s · CR,

    where k, l run over the twelve vertices and c, d over the product's curves.

    Args:
        product: Product answering ``get_sensitivity`` queries.
        calculation_currency: Currency of the margin; must be the product
            currency (no FX conversion is performed).
        risk_types: Risk types queried. Only ``"delta"`` contributes; any
            other type must resolve to a supported zero.
    """

    def __init__(self, product: Any, calculation_currency: str | None = None, risk_types: Sequence[str] = ("delta",)):
        currency = product.classification.currency
        if calculation_currency is not None and calculation_currency.upper() != currency:
            raise ValueError(
                f"Margin in {calculation_currency} for a {currency} product requires FX conversion, "
                "which is not supported"
            )
        self.product = product
        self.calculation_currency = currency
        self.risk_types = tuple(SensitivityType(risk_type).value for risk_type in risk_types)
        curves = product.classification.curve_index_names
        self._risk_weights = jnp.tile(get_ir_risk_weights(currency), len(curves))
        self._correlation = get_ir_correlation_matrix(len(curves))
        self._threshold = get_concentration_threshold(currency)

    def _query(self, risk_type: str, maturity_bucket: str, curve_index_name: str, evaluation_time: float):
        classification = self.product.classification
        result = self.product.get_sensitivity(
            classification.product_class,
            RiskClass.INTEREST_RATE,
            maturity_bucket,
            curve_index_name,
            classification.currency,
            risk_type,
            evaluation_time,
        )
        if not result.is_supported:
            raise UnsupportedSensitivityError(RiskClass.INTEREST_RATE, risk_type, curve_index_name)
        return result.value

    def get_value(self, evaluation_time: float) -> jnp.ndarray:
        """Path-wise margin at ``evaluation_time``."""
        curves = self.product.classification.curve_index_names
        for risk_type in self.risk_types:
            if risk_type == SensitivityType.DELTA.value:
                continue
            for curve in curves:
                self._query(risk_type, IR_MATURITY_BUCKETS[0], curve, evaluation_time)

        if SensitivityType.DELTA.value not in self.risk_types:
            return jnp.zeros(())

        values = [
            self._query(SensitivityType.DELTA.value, label, curve, evaluation_time)
            for curve in curves
            for label in IR_MATURITY_BUCKETS
        ]
        sensitivities = jnp.stack(jnp.broadcast_arrays(*[jnp.asarray(v) for v in values]))
        concentration = concentration_risk_factor(jnp.sum(sensitivities, axis=0), self._threshold)
        weighted = self._risk_weights.reshape((-1,) + (1,) * (sensitivities.ndim - 1)) * sensitivities * concentration
        variance = jnp.einsum("i...,ij,j...->...", weighted, self._correlation, weighted)
        return jnp.sqrt(jnp.maximum(variance, 0.0))
