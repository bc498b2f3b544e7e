"""Fixed versus LIBOR interest rate swap."""
from __future__ import annotations

from typing import Any, Sequence

import jax.numpy as jnp

from simmva.core.time_discretization import TIME_TOLERANCE
from simmva.products.base import SIMMProduct
from simmva.sensitivities.classification import ProductClassification

__all__ = ["SIMMSwap"]


class SIMMSwap(SIMMProduct):
    """Swap exchanging LIBOR against a fixed rate on the model tenor.

    Each period [T_j, T_{j+1}] between ``start`` and ``maturity`` pays
    ``notional · δ_j · (L_j(T_j) - fixed_rate)`` at T_{j+1} to the payer of
    the fixed leg (``payer=True``), or its negative.

    Args:
        currency: Currency of the swap.
        fixed_rate: Fixed coupon rate.
        start: Start date, a tenor date of the model.
        maturity: Maturity date, a tenor date of the model.
        notional: Notional amount.
        payer: Pay fixed, receive LIBOR.
        curve_index_names: Curves the swap is sensitive to.
        regression_ridge: Regularisation of the conditional expectation.
        analytic_discount_sensitivities: Use the closed-form dV/dP of
            :meth:`get_analytic_discount_sensitivities` instead of the
            numeraire adjustment adjoints for the OIS curve.
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
        has_optionality: bool = False,
        regression_ridge: float = 1e-8,
        analytic_discount_sensitivities: bool = False,
    ):
        if maturity <= start:
            raise ValueError(f"Swap maturity {maturity} must be after its start {start}")
        if start < 0:
            raise ValueError("Swap start must be non-negative")
        super().__init__(
            ProductClassification(
                currency=currency,
                curve_index_names=tuple(curve_index_names),
                has_optionality=has_optionality,
            ),
            regression_ridge=regression_ridge,
        )
        self.fixed_rate = float(fixed_rate)
        self.start = float(start)
        self.maturity = float(maturity)
        self.notional = float(notional)
        self.payer = bool(payer)
        self.analytic_discount_sensitivities = bool(analytic_discount_sensitivities)

    @property
    def final_maturity(self) -> float:
        return self.maturity

    @property
    def sign(self) -> float:
        return 1.0 if self.payer else -1.0

    def periods(self, model: Any) -> range:
        return range(self.tenor_index(model, self.start), self.tenor_index(model, self.maturity))

    def period_cash_flow(self, model: Any, libor_index: int) -> jnp.ndarray:
        accrual = model.libor_period_discretization.time_step(libor_index)
        libor = self.libor_fixing(model, libor_index)
        return self.sign * self.notional * accrual * (libor - self.fixed_rate)

    def get_cash_flows(self, initial_time: float, final_time: float, model: Any) -> jnp.ndarray:
        """Numeraire relative value of the cash flows paid in (initial_time, final_time]."""
        tenor = model.libor_period_discretization
        total = jnp.zeros(model.number_of_paths)
        for j in self.periods(model):
            payment = tenor.time(j + 1)
            if payment <= initial_time + TIME_TOLERANCE or payment > final_time + TIME_TOLERANCE:
                continue
            total = total + self.period_cash_flow(model, j) / model.get_numeraire(payment)
        return total

    def get_value(self, evaluation_time: float, model: Any) -> jnp.ndarray:
        return self.get_cash_flows(evaluation_time, self.maturity, model) * model.get_numeraire(evaluation_time)

    def get_analytic_discount_sensitivities(self, evaluation_time: float, model: Any):
        """dV/dP_OIS(T_{j+1}; t) = sign · N · δ_j · (L_j(t) - K) with the forwards held fixed."""
        if not self.analytic_discount_sensitivities:
            return None
        tenor = model.libor_period_discretization
        times, sensitivities = [], []
        for j in self.periods(model):
            payment = tenor.time(j + 1)
            if payment <= evaluation_time + TIME_TOLERANCE:
                continue
            libor = self.libor_at(model, evaluation_time, j)
            times.append(payment)
            sensitivities.append(self.sign * self.notional * tenor.time_step(j) * (libor - self.fixed_rate))
        return tuple(times), tuple(sensitivities)

    def par_rate(self, model: Any, time: float = 0.0) -> jnp.ndarray:
        """Path-wise forward swap rate on the OIS discounted annuity at ``time``."""
        tenor = model.libor_period_discretization
        floating = jnp.zeros(model.number_of_paths)
        annuity = jnp.zeros(model.number_of_paths)
        for j in self.periods(model):
            payment = tenor.time(j + 1)
            bond = model.get_forward_bond_ois(payment, time)
            accrual = tenor.time_step(j)
            floating = floating + accrual * self.libor_at(model, time, j) * bond
            annuity = annuity + accrual * bond
        return floating / annuity
