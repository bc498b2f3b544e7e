"""Mapping of curve sensitivities onto the SIMM interest rate vertices.

Model sensitivities (dV/dL per LIBOR period, dV/dP per discount pivot) are
converted into par-rate ("market-rate") sensitivities through the inverse
Jacobian of par swap rates with respect to the model quantities, scaled to
one basis point, and allocated linearly onto the twelve SIMM vertices.

Sensitivity modes
-----------------
EXACT
    Buckets at ``t`` from the exact sensitivities at ``t``.
MELTING
    Time-zero market-rate sensitivities, re-bucketed at their residual
    maturity ``m - t``; rates that have matured drop out.
INTERPOLATION
    Exact buckets at the enclosing points ``t_a <= t < t_b`` of a coarse grid
    with spacing ``interpolation_step``, interpolated linearly in time. At and
    beyond the final maturity the buckets are zero.

Weight modes
------------
CONSTANT
    The Jacobian is evaluated on the time-zero curve.
TIMEDEPENDENT
    The Jacobian is evaluated path-wise on the curve simulated at ``t``.
"""
from __future__ import annotations

import bisect
import logging
import math
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp

from simmva.core.errors import UnboundProductError
from simmva.core.time_discretization import TIME_TOLERANCE
from simmva.sensitivities.cache import Sensitivities, SensitivityCache
from simmva.sensitivities.classification import IR_BUCKET_TIMES, IR_MATURITY_BUCKETS, RiskClass
from simmva.sensitivities.projector import ZERO_BUCKETS_IR, discount_pivot_grid

logger = logging.getLogger(__name__)

__all__ = [
    "SensitivityMode",
    "WeightMode",
    "BASIS_POINT",
    "is_discount_curve",
    "is_zero_buckets",
    "libor_par_rates",
    "ois_par_rates",
    "allocate_to_buckets",
    "SIMMSensitivityScheme",
    "BucketMapper",
]

Array = jnp.ndarray

BASIS_POINT = 1e-4


class SensitivityMode(str, Enum):
    """How bucket sensitivities at a future time are obtained."""

    EXACT = "exact"
    MELTING = "melting"
    INTERPOLATION = "interpolation"


class WeightMode(str, Enum):
    """Curve used for the model-to-market-rate Jacobian."""

    CONSTANT = "constant"
    TIMEDEPENDENT = "timedependent"


def is_discount_curve(curve_index_name: str) -> bool:
    return curve_index_name.upper() == "OIS"


def is_zero_buckets(sensitivities: Sequence[Array]) -> bool:
    """Whether ``sensitivities`` is the deterministic all-zero bucket sentinel."""
    return len(sensitivities) == len(IR_MATURITY_BUCKETS) and all(
        jnp.ndim(value) == 0 and float(value) == 0.0 for value in sensitivities
    )


def libor_par_rates(forwards: Array, accruals: Array) -> Array:
    """Par rates of the swaps spanning the first 1, 2, ... periods."""
    bonds = jnp.cumprod(1.0 / (1.0 + accruals * forwards))
    annuities = jnp.cumsum(accruals * bonds)
    return (1.0 - bonds) / annuities


def ois_par_rates(bonds: Array, accrual: float) -> Array:
    """Par rates of the swaps paying on the pivots 1, 2, ... of a uniform grid."""
    annuities = jnp.cumsum(accrual * bonds)
    return (1.0 - bonds) / annuities


def allocate_to_buckets(maturities: Sequence[float], sensitivities: Sequence[Array]) -> Tuple[Array, ...]:
    """Split each sensitivity linearly between the two neighbouring vertices."""
    buckets = [jnp.zeros(()) for _ in IR_BUCKET_TIMES]
    for maturity, value in zip(maturities, sensitivities):
        if maturity <= IR_BUCKET_TIMES[0]:
            buckets[0] = buckets[0] + value
        elif maturity >= IR_BUCKET_TIMES[-1]:
            buckets[-1] = buckets[-1] + value
        else:
            k = bisect.bisect_right(IR_BUCKET_TIMES, maturity) - 1
            width = IR_BUCKET_TIMES[k + 1] - IR_BUCKET_TIMES[k]
            weight = (IR_BUCKET_TIMES[k + 1] - maturity) / width
            buckets[k] = buckets[k] + weight * value
            buckets[k + 1] = buckets[k + 1] + (1.0 - weight) * value
    return tuple(buckets)


def _to_market_rate(
    par_rates: Callable[[Array], Array], curve: Array, model_sensitivities: Array
) -> Array:
    """Solve ``J^T dV/dS = dV/dx``; ``curve`` is [R] or path-wise [n_paths, R].

    ``model_sensitivities`` has shape [R, n_paths]; the result has the same.
    """
    if curve.ndim == 1:
        jacobian = jax.jacfwd(par_rates)(curve)
        return jnp.linalg.solve(jacobian.T, model_sensitivities)
    jacobians = jax.vmap(jax.jacfwd(par_rates))(curve)
    solved = jnp.linalg.solve(jnp.swapaxes(jacobians, 1, 2), model_sensitivities.T[..., None])
    return solved[..., 0].T


class SIMMSensitivityScheme:
    """Bucket sensitivities of one product under one model and configuration.

    Args:
        product: Product exposing ``get_exact_delta_from_cache`` and
            ``final_maturity``.
        model: Model the product is bound to.
        sensitivity_mode: See :class:`SensitivityMode`.
        weight_mode: See :class:`WeightMode`.
        interpolation_step: Coarse grid spacing of ``INTERPOLATION``.
        consider_ois_sensitivities: If false the OIS curve buckets are zero.
    """

    def __init__(
        self,
        product: Any,
        model: Any,
        sensitivity_mode: SensitivityMode = SensitivityMode.EXACT,
        weight_mode: WeightMode = WeightMode.TIMEDEPENDENT,
        interpolation_step: float = 1.0,
        consider_ois_sensitivities: bool = True,
    ):
        if interpolation_step <= 0:
            raise ValueError("interpolation_step must be positive")
        self.product = product
        self.model = model
        self.sensitivity_mode = SensitivityMode(sensitivity_mode)
        self.weight_mode = WeightMode(weight_mode)
        self.interpolation_step = float(interpolation_step)
        self.consider_ois_sensitivities = bool(consider_ois_sensitivities)

    # Market-rate sensitivities ------------------------------------------

    def _has_fixed_leading_entry(self, evaluation_time: float) -> bool:
        tenor = self.model.libor_period_discretization
        return (
            tenor.find_index(evaluation_time) is None
            and tenor.index_nearest_greater_or_equal(evaluation_time) >= 1
        )

    def market_rate_maturities(self, evaluation_time: float, curve_index_name: str) -> Tuple[float, ...]:
        """Residual maturities of the par rates of :meth:`get_exact_delta_sensitivities`."""
        if is_discount_curve(curve_index_name):
            grid = discount_pivot_grid(evaluation_time, self.model)
            return tuple(grid.time(i) - evaluation_time for i in range(1, len(grid)))
        tenor = self.model.libor_period_discretization
        first = tenor.index_nearest_greater_or_equal(evaluation_time)
        return tuple(
            tenor.time(j + 1) - evaluation_time for j in range(first, self.model.number_of_libors)
        )

    def _forward_curve(self, evaluation_time: float, first: int) -> Array:
        indices = range(first, self.model.number_of_libors)
        if self.weight_mode == WeightMode.CONSTANT:
            return jnp.stack([jnp.mean(self.model.get_libor(0, j)) for j in indices])
        time_index = self.model.time_discretization.index_nearest_less_or_equal(evaluation_time)
        return jnp.stack([self.model.get_libor(time_index, j) for j in indices], axis=1)

    def _discount_curve(self, evaluation_time: float, pivot_times: Sequence[float]) -> Array:
        horizon = self.model.libor_period_discretization.last()
        if self.weight_mode == WeightMode.CONSTANT:
            start = jnp.mean(self.model.get_forward_bond_ois(evaluation_time, 0.0))
            return jnp.stack(
                [jnp.mean(self.model.get_forward_bond_ois(min(T, horizon), 0.0)) / start for T in pivot_times]
            )
        return jnp.stack(
            [self.model.get_forward_bond_ois(min(T, horizon), evaluation_time) for T in pivot_times],
            axis=1,
        )

    def get_exact_delta_sensitivities(
        self, evaluation_time: float, risk_class: RiskClass, curve_index_name: str
    ) -> Sensitivities:
        """Par-rate sensitivities per basis point, one per pivot after ``evaluation_time``."""
        if is_discount_curve(curve_index_name) and not self.consider_ois_sensitivities:
            return ZERO_BUCKETS_IR
        model_sensitivities = self.product.get_exact_delta_from_cache(
            evaluation_time, risk_class, curve_index_name, False
        )
        if is_zero_buckets(model_sensitivities) or not model_sensitivities:
            return ZERO_BUCKETS_IR

        if is_discount_curve(curve_index_name):
            grid = discount_pivot_grid(evaluation_time, self.model)
            values = model_sensitivities[1:]
            curve = self._discount_curve(evaluation_time, [grid.time(i) for i in range(1, len(grid))])
            step = grid.time_step(0)

            def par_rates(bonds):
                return ois_par_rates(bonds, step)
        else:
            values = model_sensitivities[1:] if self._has_fixed_leading_entry(evaluation_time) else model_sensitivities
            tenor = self.model.libor_period_discretization
            first = tenor.index_nearest_greater_or_equal(evaluation_time)
            curve = self._forward_curve(evaluation_time, first)
            accruals = jnp.asarray([tenor.time_step(j) for j in range(first, self.model.number_of_libors)])

            def par_rates(forwards):
                return libor_par_rates(forwards, accruals)

        if not values:
            return ZERO_BUCKETS_IR
        stacked = jnp.stack([jnp.broadcast_to(v, (self.model.number_of_paths,)) for v in values])
        market = _to_market_rate(par_rates, curve, stacked) * BASIS_POINT
        return tuple(market[k] for k in range(market.shape[0]))

    # Buckets --------------------------------------------------------------

    def _exact_buckets(self, evaluation_time: float, risk_class: RiskClass, curve_index_name: str) -> Sensitivities:
        market = self.product.get_exact_delta_from_cache(evaluation_time, risk_class, curve_index_name, True)
        if is_zero_buckets(market):
            return ZERO_BUCKETS_IR
        maturities = self.market_rate_maturities(evaluation_time, curve_index_name)
        return allocate_to_buckets(maturities, market)

    def _melting_buckets(self, evaluation_time: float, risk_class: RiskClass, curve_index_name: str) -> Sensitivities:
        market = self.product.get_exact_delta_from_cache(0.0, risk_class, curve_index_name, True)
        if is_zero_buckets(market):
            return ZERO_BUCKETS_IR
        residual = [
            (maturity - evaluation_time, value)
            for maturity, value in zip(self.market_rate_maturities(0.0, curve_index_name), market)
            if maturity - evaluation_time > TIME_TOLERANCE
        ]
        if not residual:
            return ZERO_BUCKETS_IR
        maturities, values = zip(*residual)
        return allocate_to_buckets(maturities, values)

    def _interpolated_buckets(self, evaluation_time: float, risk_class: RiskClass, curve_index_name: str) -> Sensitivities:
        step = self.interpolation_step
        lower = math.floor(evaluation_time / step + TIME_TOLERANCE) * step
        if abs(evaluation_time - lower) <= TIME_TOLERANCE:
            return self._exact_buckets(evaluation_time, risk_class, curve_index_name)
        upper = lower + step
        weight = (evaluation_time - lower) / step
        lower_buckets = self._exact_buckets(lower, risk_class, curve_index_name)
        if upper >= self.product.final_maturity - TIME_TOLERANCE:
            upper_buckets = ZERO_BUCKETS_IR
        else:
            upper_buckets = self._exact_buckets(upper, risk_class, curve_index_name)
        return tuple((1.0 - weight) * a + weight * b for a, b in zip(lower_buckets, upper_buckets))

    def get_bucket_sensitivities(
        self, evaluation_time: float, risk_class: RiskClass, curve_index_name: str
    ) -> Sensitivities:
        if self.sensitivity_mode == SensitivityMode.MELTING:
            return self._melting_buckets(evaluation_time, risk_class, curve_index_name)
        if self.sensitivity_mode == SensitivityMode.INTERPOLATION:
            return self._interpolated_buckets(evaluation_time, risk_class, curve_index_name)
        return self._exact_buckets(evaluation_time, risk_class, curve_index_name)


class BucketMapper:
    """Per-time cached front end of the bound :class:`SIMMSensitivityScheme`."""

    def __init__(self, cache: SensitivityCache, scheme: Callable[[], Optional[SIMMSensitivityScheme]]):
        self._cache = cache
        self._scheme = scheme
        self.computations = 0

    def get_bucket_sensitivities(
        self, risk_class: RiskClass, curve_index_name: str, evaluation_time: float
    ) -> Sensitivities:
        """Twelve bucket arrays for ``(risk_class, curve_index_name)`` at ``evaluation_time``."""
        self._cache.on_evaluation_time_changed(evaluation_time)
        buckets = self._cache.get_buckets(risk_class, curve_index_name)
        if buckets is not None:
            return buckets
        scheme = self._scheme()
        if scheme is None:
            raise UnboundProductError(
                "Bucket sensitivities require a product bound to a model; "
                "request an initial margin first"
            )
        buckets = scheme.get_bucket_sensitivities(evaluation_time, risk_class, curve_index_name)
        self.computations += 1
        self._cache.put_buckets(risk_class, curve_index_name, buckets)
        logger.debug(
            "Computed %s buckets for %s at t=%s", curve_index_name, RiskClass(risk_class).value, evaluation_time
        )
        return buckets
