"""ISDA SIMM interest rate delta risk weights and correlations.

Parameters of SIMM version 2.5 (10-day horizon) for the interest rate risk
class: risk weights by volatility group, the tenor correlation matrix, the
sub-curve correlation and the delta concentration thresholds.

Note: Only the parameters used by interest rate delta margin are included.
"""
from __future__ import annotations

from typing import Dict, Tuple

import jax.numpy as jnp

from simmva.sensitivities.classification import IR_MATURITY_BUCKETS

# ============================================================================
# CURRENCY VOLATILITY GROUPS
# ============================================================================

REGULAR_VOLATILITY_CURRENCIES: Tuple[str, ...] = (
    "USD", "EUR", "GBP", "CHF", "AUD", "NZD", "CAD", "SEK", "NOK", "DKK", "HKD", "KRW", "SGD", "TWD",
)
LOW_VOLATILITY_CURRENCIES: Tuple[str, ...] = ("JPY",)

# ============================================================================
# DELTA RISK WEIGHTS
# ============================================================================

IR_DELTA_RISK_WEIGHTS: Dict[str, Dict[str, float]] = {
    "regular": {
        "2w": 115.0,
        "1m": 112.0,
        "3m": 96.0,
        "6m": 74.0,
        "1y": 66.0,
        "2y": 61.0,
        "3y": 56.0,
        "5y": 52.0,
        "10y": 53.0,
        "15y": 57.0,
        "20y": 60.0,
        "30y": 66.0,
    },
    "low": {
        "2w": 15.0,
        "1m": 18.0,
        "3m": 9.0,
        "6m": 11.0,
        "1y": 13.0,
        "2y": 15.0,
        "3y": 18.0,
        "5y": 20.0,
        "10y": 19.0,
        "15y": 19.0,
        "20y": 20.0,
        "30y": 23.0,
    },
    "high": {
        "2w": 119.0,
        "1m": 93.0,
        "3m": 80.0,
        "6m": 82.0,
        "1y": 90.0,
        "2y": 92.0,
        "3y": 95.0,
        "5y": 95.0,
        "10y": 94.0,
        "15y": 108.0,
        "20y": 105.0,
        "30y": 101.0,
    },
}

# ============================================================================
# CORRELATION PARAMETERS
# ============================================================================

# Tenor correlations, rows and columns in IR_MATURITY_BUCKETS order
IR_TENOR_CORRELATION = (
    (1.00, 0.75, 0.63, 0.55, 0.44, 0.35, 0.31, 0.26, 0.21, 0.17, 0.15, 0.14),
    (0.75, 1.00, 0.79, 0.68, 0.51, 0.40, 0.33, 0.28, 0.22, 0.17, 0.15, 0.14),
    (0.63, 0.79, 1.00, 0.85, 0.67, 0.53, 0.45, 0.38, 0.31, 0.24, 0.22, 0.21),
    (0.55, 0.68, 0.85, 1.00, 0.83, 0.71, 0.62, 0.54, 0.45, 0.36, 0.35, 0.33),
    (0.44, 0.51, 0.67, 0.83, 1.00, 0.94, 0.86, 0.78, 0.65, 0.58, 0.55, 0.53),
    (0.35, 0.40, 0.53, 0.71, 0.94, 1.00, 0.95, 0.89, 0.78, 0.72, 0.68, 0.67),
    (0.31, 0.33, 0.45, 0.62, 0.86, 0.95, 1.00, 0.96, 0.87, 0.80, 0.76, 0.74),
    (0.26, 0.28, 0.38, 0.54, 0.78, 0.89, 0.96, 1.00, 0.94, 0.89, 0.85, 0.83),
    (0.21, 0.22, 0.31, 0.45, 0.65, 0.78, 0.87, 0.94, 1.00, 0.97, 0.94, 0.93),
    (0.17, 0.17, 0.24, 0.36, 0.58, 0.72, 0.80, 0.89, 0.97, 1.00, 0.98, 0.97),
    (0.15, 0.15, 0.22, 0.35, 0.55, 0.68, 0.76, 0.85, 0.94, 0.98, 1.00, 0.99),
    (0.14, 0.14, 0.21, 0.33, 0.53, 0.67, 0.74, 0.83, 0.93, 0.97, 0.99, 1.00),
)

# Same currency, different curves
SUB_CURVE_CORRELATION = 0.99

# ============================================================================
# CONCENTRATION THRESHOLDS (USD per basis point)
# ============================================================================

IR_CONCENTRATION_THRESHOLDS: Dict[str, float] = {
    "USD": 230_000_000.0,
    "EUR": 230_000_000.0,
    "GBP": 230_000_000.0,
    "AUD": 44_000_000.0,
    "CAD": 44_000_000.0,
    "CHF": 44_000_000.0,
    "DKK": 44_000_000.0,
    "HKD": 44_000_000.0,
    "KRW": 44_000_000.0,
    "NOK": 44_000_000.0,
    "NZD": 44_000_000.0,
    "SEK": 44_000_000.0,
    "SGD": 44_000_000.0,
    "TWD": 44_000_000.0,
    "JPY": 70_000_000.0,
}
OTHER_CURRENCY_CONCENTRATION_THRESHOLD = 33_000_000.0

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def volatility_group(currency: str) -> str:
    currency = currency.upper()
    if currency in REGULAR_VOLATILITY_CURRENCIES:
        return "regular"
    if currency in LOW_VOLATILITY_CURRENCIES:
        return "low"
    return "high"


def get_ir_risk_weights(currency: str) -> jnp.ndarray:
    """Delta risk weights of ``currency`` in IR_MATURITY_BUCKETS order.

    Parameters
    ----------
    currency : str
        ISO currency code (the IR bucket)

    Returns
    -------
    Array
        Risk weights of shape [12]
    """
    weights = IR_DELTA_RISK_WEIGHTS[volatility_group(currency)]
    return jnp.asarray([weights[label] for label in IR_MATURITY_BUCKETS])


def get_ir_correlation_matrix(number_of_curves: int) -> jnp.ndarray:
    """Correlation of all (curve, tenor) pairs of one currency.

    Parameters
    ----------
    number_of_curves : int
        Number of sub-curves (e.g. 2 for OIS and Libor6m)

    Returns
    -------
    Array
        Matrix of shape [12 * number_of_curves, 12 * number_of_curves] equal to
        ``φ ⊗ ρ`` with φ = 1 on the diagonal and SUB_CURVE_CORRELATION off it.
    """
    tenor = jnp.asarray(IR_TENOR_CORRELATION)
    sub_curve = jnp.full((number_of_curves, number_of_curves), SUB_CURVE_CORRELATION)
    sub_curve = sub_curve + (1.0 - SUB_CURVE_CORRELATION) * jnp.eye(number_of_curves)
    return jnp.kron(sub_curve, tenor)


def get_concentration_threshold(currency: str) -> float:
    return IR_CONCENTRATION_THRESHOLDS.get(currency.upper(), OTHER_CURRENCY_CONCENTRATION_THRESHOLD)


def concentration_risk_factor(net_sensitivity: jnp.ndarray, threshold: float) -> jnp.ndarray:
    """Path-wise concentration risk factor.

    Notes
    -----
    CR = max(1, sqrt(|Σ s| / T))
    where Σ s is the net sensitivity of the currency and T the threshold
    """
    if threshold <= 0:
        return jnp.ones_like(net_sensitivity)
    return jnp.maximum(1.0, jnp.sqrt(jnp.abs(net_sensitivity) / threshold))


__all__ = [
    "IR_DELTA_RISK_WEIGHTS",
    "IR_TENOR_CORRELATION",
    "SUB_CURVE_CORRELATION",
    "IR_CONCENTRATION_THRESHOLDS",
    "volatility_group",
    "get_ir_risk_weights",
    "get_ir_correlation_matrix",
    "get_concentration_threshold",
    "concentration_risk_factor",
]
