"""Physically settled European and Bermudan swaptions."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp

from simmva.core.regression import ConditionalExpectationEstimator
from simmva.core.time_discretization import TIME_TOLERANCE
from simmva.products.swap import SIMMSwap

logger = logging.getLogger(__name__)

__all__ = ["SIMMSwaption", "SIMMBermudanSwaption"]


class SIMMSwaption(SIMMSwap):
    """European swaption exercised at ``start`` into the underlying swap.

    After exercise the holder receives the cash flows of the underlying
    swap; the path-wise value before exercise is that of those cash flows on
    the exercised paths, so the exercise decision is carried by an integer
    indicator per path: the tenor index of exercise, or ``-1``.
    """

    def __init__(
        self,
        currency: str,
        fixed_rate: float,
        start: float,
        maturity: float,
        notional: float = 1.0,
        payer: bool = True,
        curve_index_names: Sequence[str] = ("OIS", "Libor6m"),
        regression_ridge: float = 1e-8,
    ):
        super().__init__(
            currency,
            fixed_rate,
            start,
            maturity,
            notional=notional,
            payer=payer,
            curve_index_names=curve_index_names,
            has_optionality=True,
            regression_ridge=regression_ridge,
        )

    def exercise_dates(self, model: Any) -> Tuple[int, ...]:
        return (self.tenor_index(model, self.start),)

    def underlying_value(self, model: Any, exercise_index: int) -> jnp.ndarray:
        """Numeraire relative value at T_e of the swap periods from ``exercise_index``."""
        tenor = model.libor_period_discretization
        exercise_time = tenor.time(exercise_index)
        value = jnp.zeros(model.number_of_paths)
        for j in range(exercise_index, self.tenor_index(model, self.maturity)):
            accrual = tenor.time_step(j)
            libor = self.libor_at(model, exercise_time, j)
            bond = model.get_forward_bond_ois(tenor.time(j + 1), exercise_time)
            value = value + self.sign * self.notional * accrual * (libor - self.fixed_rate) * bond
        return value / model.get_numeraire(exercise_time)

    def exercise_indicator(self, model: Any) -> jnp.ndarray:
        (exercise_index,) = self.exercise_dates(model)
        underlying = jax.lax.stop_gradient(self.underlying_value(model, exercise_index))
        return jnp.where(underlying > 0.0, exercise_index, -1)

    def get_cash_flows(self, initial_time: float, final_time: float, model: Any) -> jnp.ndarray:
        tenor = model.libor_period_discretization
        exercised = self.exercise_indicator(model)
        total = jnp.zeros(model.number_of_paths)
        for j in self.periods(model):
            payment = tenor.time(j + 1)
            if payment <= initial_time + TIME_TOLERANCE or payment > final_time + TIME_TOLERANCE:
                continue
            active = jnp.where((exercised >= 0) & (exercised <= j), 1.0, 0.0)
            total = total + active * self.period_cash_flow(model, j) / model.get_numeraire(payment)
        return total


class SIMMBermudanSwaption(SIMMSwaption):
    """Bermudan swaption exercisable on every tenor date from ``start`` to before ``maturity``.

    The exercise boundary is estimated once per model by Longstaff-Schwartz
    regression and kept as exercise state until :meth:`clear_extra_state`.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._exercise_state: Optional[Tuple[Any, jnp.ndarray]] = None

    def exercise_dates(self, model: Any) -> Tuple[int, ...]:
        return tuple(self.periods(model))

    def clear_extra_state(self) -> None:
        self._exercise_state = None

    def exercise_indicator(self, model: Any) -> jnp.ndarray:
        source = getattr(model, "source", model)
        if self._exercise_state is not None and self._exercise_state[0] is source:
            return self._exercise_state[1]

        tenor = model.libor_period_discretization
        dates = self.exercise_dates(model)
        value = jnp.zeros(model.number_of_paths)
        indicator = jnp.full(model.number_of_paths, -1)
        for exercise_index in reversed(dates):
            exercise_value = self.underlying_value(model, exercise_index)
            if exercise_index == dates[-1]:
                continuation = jnp.zeros(model.number_of_paths)
            else:
                basis = self.get_regression_basis(tenor.time(exercise_index), model)
                continuation = ConditionalExpectationEstimator(basis).expectation(value)
            exercise = (exercise_value > continuation) & (exercise_value > 0.0)
            value = jnp.where(exercise, exercise_value, value)
            indicator = jnp.where(exercise, exercise_index, indicator)

        indicator = jax.lax.stop_gradient(indicator)
        self._exercise_state = (source, indicator)
        logger.debug(
            "Estimated exercise boundary on %d dates; %.1f%% of paths exercise",
            len(dates),
            100.0 * float(jnp.mean(indicator >= 0)),
        )
        return indicator
