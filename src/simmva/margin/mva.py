"""Margin Valuation Adjustment (MVA).

MVA represents the cost of funding initial margin over the life of a trade:

    MVA = -E[ Σᵢ IM(tᵢ) · (B(tᵢ₊₁) - B(tᵢ)) ],   B(t) = 1 / (N(t) e^{s t}),

where B is the spread-adjusted funding bond and s the funding spread.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Callable, List, Sequence

import jax.numpy as jnp

__all__ = [
    "MVAMode",
    "mva_time_grid",
    "forward_funding_bond_increments",
    "margin_valuation_adjustment",
]


class MVAMode(str, Enum):
    """EXACT keeps path-wise margins; APPROXIMATION replaces them by their mean."""

    EXACT = "exact"
    APPROXIMATION = "approximation"


def mva_time_grid(final_maturity: float, time_step: float) -> List[float]:
    """Times 0, Δ, 2Δ, ... up to and including the final maturity."""
    if time_step <= 0:
        raise ValueError("time_step must be positive")
    if final_maturity <= 0:
        raise ValueError("final_maturity must be positive")
    steps = math.ceil(final_maturity / time_step - 1e-10)
    return [min(i * time_step, final_maturity) for i in range(steps + 1)]


def forward_funding_bond_increments(
    numeraire: Callable[[float], jnp.ndarray],
    times: Sequence[float],
    funding_spread: float = 0.0,
) -> List[jnp.ndarray]:
    """Path-wise increments B(tᵢ₊₁) - B(tᵢ) of the funding bond."""
    bonds = [1.0 / (numeraire(t) * math.exp(t * funding_spread)) for t in times]
    return [upper - lower for lower, upper in zip(bonds[:-1], bonds[1:])]


def margin_valuation_adjustment(
    margin_profile: Sequence[jnp.ndarray],
    bond_increments: Sequence[jnp.ndarray],
    mode: MVAMode = MVAMode.EXACT,
) -> float:
    """Compute MVA from a margin profile and funding bond increments.

    Parameters
    ----------
    margin_profile : sequence of Array
        Initial margin at the start of each funding period
    bond_increments : sequence of Array
        Funding bond increments over each period
    mode : MVAMode
        APPROXIMATION collapses each margin to its expectation

    Returns
    -------
    float
        MVA, positive for a funding cost
    """
    if len(margin_profile) != len(bond_increments):
        raise ValueError(
            f"Margin profile has {len(margin_profile)} entries but there are "
            f"{len(bond_increments)} funding periods"
        )
    total = jnp.zeros(())
    for margin, increment in zip(margin_profile, bond_increments):
        margin = jnp.asarray(margin)
        if MVAMode(mode) == MVAMode.APPROXIMATION:
            margin = jnp.mean(margin)
        total = total + increment * margin
    return float(-jnp.mean(total))
