"""Projection of time-zero adjoints onto curve sensitivities at a future time.

The gradient of the time-zero value with respect to a simulated risk factor
mixes information from the whole path. Multiplying by the numeraire at the
evaluation time ``t`` and taking the conditional expectation given ``F_t``
turns it into the sensitivity of the time-``t`` value, measurable at ``t``.

Forward rate sensitivities are returned per remaining LIBOR period. Discount
sensitivities are first obtained per numeraire adjustment time (the product's
cash-flow times) and then mapped onto the uniform grid ``t + i Δ`` by the chain
rule of log-linear discount factor interpolation.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import jax.numpy as jnp

from simmva.core.autodiff import RiskFactorId
from simmva.core.errors import UnsupportedSensitivityError
from simmva.core.regression import ConditionalExpectationEstimator
from simmva.core.time_discretization import TIME_TOLERANCE, TimeDiscretization
from simmva.sensitivities.classification import IR_MATURITY_BUCKETS, RiskClass, SensitivityType
from simmva.sensitivities.gradient import GradientProvider

logger = logging.getLogger(__name__)

__all__ = [
    "ZERO_BUCKETS_IR",
    "CurveSensitivityProjector",
    "log_linear_bond_weights",
    "discount_pivot_grid",
]

Array = jnp.ndarray

ZERO_BUCKETS_IR: Tuple[Array, ...] = tuple(jnp.zeros(()) for _ in IR_MATURITY_BUCKETS)


def log_linear_bond_weights(
    cash_flow_time: float,
    pivot_times: Sequence[float],
    bond_at_cash_flow: Array,
    pivot_bond: Callable[[int], Array],
) -> List[Array]:
    """Chain-rule weights dP(T_cf) / dP(t_i) of log-linear interpolation.

    With ``t_i <= T_cf <= t_{i+1}`` and ``α = (T_cf - t_i) / (t_{i+1} - t_i)``,
    ``P(T_cf) = P(t_i)^(1-α) P(t_{i+1})^α`` so the only non-zero weights are
    ``P(T_cf)(1-α)/P(t_i)`` and ``P(T_cf)α/P(t_{i+1})``. Cash flows outside the
    pivot range use the nearest segment.

    Args:
        cash_flow_time: Time T_cf of the interpolated bond.
        pivot_times: Increasing pivot times t_0 < t_1 < ...
        bond_at_cash_flow: Interpolated bond price P(T_cf).
        pivot_bond: Callable returning the bond price at pivot ``i``.

    Returns:
        One weight per pivot.
    """
    grid = pivot_times if isinstance(pivot_times, TimeDiscretization) else TimeDiscretization(pivot_times)
    weights: List[Array] = [jnp.zeros_like(jnp.asarray(bond_at_cash_flow)) for _ in range(len(grid))]
    if len(grid) == 1:
        weights[0] = bond_at_cash_flow / pivot_bond(0)
        return weights

    lower = min(max(grid.index_nearest_less_or_equal(cash_flow_time), 0), len(grid) - 2)
    alpha = (cash_flow_time - grid.time(lower)) / grid.time_step(lower)
    if abs(alpha) <= TIME_TOLERANCE:
        alpha = 0.0
    elif abs(alpha - 1.0) <= TIME_TOLERANCE:
        alpha = 1.0

    if alpha != 1.0:
        weights[lower] = bond_at_cash_flow * (1.0 - alpha) / pivot_bond(lower)
    if alpha != 0.0:
        weights[lower + 1] = bond_at_cash_flow * alpha / pivot_bond(lower + 1)
    return weights


def discount_pivot_grid(evaluation_time: float, model: Any) -> TimeDiscretization:
    """Uniform grid ``t, t + Δ, ...`` with one step per remaining LIBOR period."""
    tenor = model.libor_period_discretization
    remaining = model.number_of_libors - tenor.index_nearest_greater_or_equal(evaluation_time)
    return TimeDiscretization.uniform(evaluation_time, max(remaining, 1), tenor.time_step(0))


class CurveSensitivityProjector:
    """Forward rate and discount bond sensitivities at an evaluation time.

    Owns the conditional expectation slot: one estimator, bound to one
    ``(model, evaluation_time)`` pair and rebuilt when either changes.

    Args:
        gradient_provider: Source of the product's time-zero gradient.
        numeraire_adjustments: Callable returning the product's numeraire
            adjustment map ``{T: A(T)}``.
        regression_basis: Callable ``(evaluation_time, model) -> basis`` used
            to build the conditional expectation estimator.
        ridge: Regularisation of the regression.
    """

    def __init__(
        self,
        gradient_provider: GradientProvider,
        numeraire_adjustments: Callable[[], Dict[float, Array]],
        regression_basis: Callable[[float, Any], Array],
        ridge: float = 1e-8,
    ):
        self._gradient_provider = gradient_provider
        self._numeraire_adjustments = numeraire_adjustments
        self._regression_basis = regression_basis
        self._ridge = ridge
        self._estimator_slot: Optional[Tuple[Any, float, ConditionalExpectationEstimator]] = None
        self.regressions = 0

    def reset(self) -> None:
        """Drop the bound conditional expectation estimator."""
        self._estimator_slot = None

    def conditional_expectation(self, evaluation_time: float, model: Any) -> ConditionalExpectationEstimator:
        slot = self._estimator_slot
        if slot is not None and not (slot[0] != model) and abs(slot[1] - evaluation_time) <= TIME_TOLERANCE:
            return slot[2]
        estimator = ConditionalExpectationEstimator(
            self._regression_basis(evaluation_time, model), ridge=self._ridge
        )
        self._estimator_slot = (model, float(evaluation_time), estimator)
        self.regressions += 1
        logger.debug("Bound conditional expectation estimator to t=%s", evaluation_time)
        return estimator

    def get_forward_rate_sensitivities(self, evaluation_time: float, model: Any) -> Tuple[Array, ...]:
        """dV/dL per remaining LIBOR period, measurable at ``evaluation_time``.

        If ``evaluation_time`` falls inside a period, a leading entry holds the
        sensitivity to the period's already fixed rate, read from the gradient
        at its fixing time and not regressed.
        """
        gradient = self._gradient_provider.get_gradient(model)
        times = model.time_discretization
        tenor = model.libor_period_discretization
        simulation_time = times.time(times.index_nearest_less_or_equal(evaluation_time))
        first_remaining = tenor.index_nearest_greater_or_equal(evaluation_time)
        numeraire = model.get_numeraire(evaluation_time)

        sensitivities = []
        if tenor.find_index(evaluation_time) is None and first_remaining >= 1:
            previous = first_remaining - 1
            fixed = gradient.derivative(RiskFactorId.libor(tenor.time(previous), previous))
            sensitivities.append(fixed * numeraire)

        if first_remaining < model.number_of_libors:
            estimator = self.conditional_expectation(evaluation_time, model)
            for libor_index in range(first_remaining, model.number_of_libors):
                derivative = gradient.derivative(RiskFactorId.libor(simulation_time, libor_index))
                sensitivities.append(estimator.expectation(derivative * numeraire))
        return tuple(sensitivities)

    def get_discount_bond_sensitivities(
        self,
        evaluation_time: float,
        risk_class: RiskClass,
        model: Any,
        discount_times: Optional[Sequence[float]] = None,
        bond_sensitivities: Optional[Sequence[Array]] = None,
    ) -> Tuple[Array, ...]:
        """dV/dP on the pivot grid of :func:`discount_pivot_grid`.

        If ``discount_times`` and ``bond_sensitivities`` are given (analytic
        dV/dP at cash-flow times) only the interpolation step is performed.
        Returns :data:`ZERO_BUCKETS_IR` if the product has no discounting
        exposure after ``evaluation_time``.
        """
        if RiskClass(risk_class) != RiskClass.INTEREST_RATE:
            raise UnsupportedSensitivityError(risk_class, SensitivityType.DELTA.value)

        if discount_times is None:
            discount_times, bond_sensitivities = self._adjustment_bond_sensitivities(
                evaluation_time, model
            )
            if not discount_times:
                return ZERO_BUCKETS_IR
        elif bond_sensitivities is None or len(bond_sensitivities) != len(discount_times):
            raise ValueError("bond_sensitivities must have one entry per discount time")
        elif not discount_times:
            return ZERO_BUCKETS_IR

        return self._interpolate_onto_pivots(evaluation_time, model, discount_times, bond_sensitivities)

    def _adjustment_bond_sensitivities(self, evaluation_time: float, model: Any):
        gradient = self._gradient_provider.get_gradient(model)
        adjustments = {
            time: factor
            for time, factor in self._numeraire_adjustments().items()
            if time > evaluation_time + TIME_TOLERANCE
        }
        numeraire = model.get_numeraire(evaluation_time)
        adjustment_at_evaluation = model.get_numeraire_adjustment(evaluation_time)

        discount_times, bond_sensitivities = [], []
        for time in sorted(adjustments):
            derivative = gradient.derivative(RiskFactorId.adjustment(time))
            if float(jnp.min(derivative)) == 0.0 and float(jnp.max(derivative)) == 0.0:
                logger.debug("Skipping adjustment factor at T=%s without exposure", time)
                continue
            estimator = self.conditional_expectation(evaluation_time, model)
            dv_da = estimator.expectation(derivative) * numeraire
            factor = adjustments[time]
            bond = model.get_forward_bond_libor(time, evaluation_time)
            bond_sensitivities.append(-dv_da * factor**2 / (bond * adjustment_at_evaluation))
            discount_times.append(time)
        return discount_times, bond_sensitivities

    def _interpolate_onto_pivots(self, evaluation_time, model, discount_times, bond_sensitivities):
        grid = discount_pivot_grid(evaluation_time, model)
        horizon = model.libor_period_discretization.last()
        pivot_bonds: Dict[int, Array] = {}

        def pivot_bond(index: int) -> Array:
            if index not in pivot_bonds:
                if index == 0:
                    pivot_bonds[index] = jnp.ones(model.number_of_paths)
                else:
                    pivot_bonds[index] = model.get_forward_bond_ois(
                        min(grid.time(index), horizon), evaluation_time
                    )
            return pivot_bonds[index]

        result = [jnp.zeros(model.number_of_paths) for _ in range(len(grid))]
        for cash_flow_time, dv_dp in zip(discount_times, bond_sensitivities):
            bond_at_cash_flow = model.get_forward_bond_ois(cash_flow_time, evaluation_time)
            weights = log_linear_bond_weights(cash_flow_time, grid, bond_at_cash_flow, pivot_bond)
            for index, weight in enumerate(weights):
                result[index] = result[index] + dv_dp * weight
        return tuple(result)
