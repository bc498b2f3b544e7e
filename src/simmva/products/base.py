"""Base class of products with SIMM sensitivities, initial margin and MVA.

A product owns its whole sensitivity context: the gradient provider, the
curve sensitivity projector (with its conditional expectation slot), the two
tier cache, the bucket mapper and the margin orchestrator. All public entry
points hold the product's re-entrant lock, which makes each
check-compute-insert sequence atomic.
"""
from __future__ import annotations

import abc
import functools
import logging
import threading
from typing import Any, Dict, Optional, Tuple

import jax.numpy as jnp

from simmva.core.autodiff import Gradient
from simmva.core.errors import UnboundProductError
from simmva.core.results import UNSUPPORTED, SensitivityResult, Supported
from simmva.margin.mva import MVAMode
from simmva.margin.orchestrator import MarginOrchestrator
from simmva.sensitivities.buckets import BucketMapper, SensitivityMode, WeightMode, is_discount_curve
from simmva.sensitivities.cache import Sensitivities, SensitivityCache
from simmva.sensitivities.classification import (
    ProductClass,
    ProductClassification,
    RiskClass,
    SensitivityType,
    bucket_index,
)
from simmva.sensitivities.gradient import GradientProvider
from simmva.sensitivities.projector import CurveSensitivityProjector

logger = logging.getLogger(__name__)

__all__ = ["SIMMProduct"]


def _synchronized(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class SIMMProduct(abc.ABC):
    """Monte Carlo product with SIMM interest rate delta sensitivities.

    Subclasses implement :meth:`get_value` and :attr:`final_maturity`, and
    override :meth:`clear_extra_state` if they hold model dependent state.

    Args:
        classification: SIMM classification of the product.
        regression_ridge: Regularisation of the conditional expectation.
    """

    def __init__(self, classification: ProductClassification, regression_ridge: float = 1e-8):
        self.classification = classification
        self._lock = threading.RLock()
        self._numeraire_adjustments: Dict[float, jnp.ndarray] = {}
        self._cache = SensitivityCache()
        self._gradient_provider = GradientProvider(self, on_model_changed=self._on_model_changed)
        self._projector = CurveSensitivityProjector(
            self._gradient_provider,
            numeraire_adjustments=self.get_numeraire_adjustment_map,
            regression_basis=self.get_regression_basis,
            ridge=regression_ridge,
        )
        self._orchestrator = MarginOrchestrator(self)
        self._bucket_mapper = BucketMapper(self._cache, lambda: self._orchestrator.sensitivity_scheme)

    # ------------------------------------------------------------------
    # Product definition
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_value(self, evaluation_time: float, model: Any) -> jnp.ndarray:
        """Path-wise value at ``evaluation_time`` in units of the currency."""

    @property
    @abc.abstractmethod
    def final_maturity(self) -> float:
        """Time of the last cash flow."""

    def clear_extra_state(self) -> None:
        """Drop model dependent state beyond the sensitivity caches."""

    def get_regression_basis(self, evaluation_time: float, model: Any) -> jnp.ndarray:
        return model.get_regression_basis(evaluation_time)

    def get_analytic_discount_sensitivities(
        self, evaluation_time: float, model: Any
    ) -> Optional[Tuple[Tuple[float, ...], Tuple[jnp.ndarray, ...]]]:
        """Closed-form dV/dP per cash-flow time, or ``None`` to use the adjoints."""
        return None

    # ------------------------------------------------------------------
    # Owned state
    # ------------------------------------------------------------------

    def _on_model_changed(self) -> None:
        self._cache.on_model_changed()
        self._projector.reset()
        self.clear_extra_state()

    @property
    def sensitivity_cache(self) -> SensitivityCache:
        return self._cache

    @property
    def gradient_provider(self) -> GradientProvider:
        return self._gradient_provider

    @property
    def projector(self) -> CurveSensitivityProjector:
        return self._projector

    @property
    def bucket_mapper(self) -> BucketMapper:
        return self._bucket_mapper

    @property
    def orchestrator(self) -> MarginOrchestrator:
        return self._orchestrator

    def _bound_model(self) -> Any:
        model = self._orchestrator.model
        if model is None:
            model = self._gradient_provider.model
        if model is None:
            raise UnboundProductError(
                f"{type(self).__name__} is not bound to a model; request a gradient or margin first"
            )
        return model

    # ------------------------------------------------------------------
    # Sensitivity interface
    # ------------------------------------------------------------------

    @_synchronized
    def get_gradient(self, model: Any) -> Gradient:
        return self._gradient_provider.get_gradient(model)

    @_synchronized
    def get_numeraire_adjustment_map(self) -> Dict[float, jnp.ndarray]:
        self._numeraire_adjustments.update(self._gradient_provider.numeraire_adjustments)
        return dict(self._numeraire_adjustments)

    @_synchronized
    def get_sensitivity(
        self,
        product_class: ProductClass,
        risk_class: RiskClass,
        maturity_bucket: str,
        curve_index_name: str,
        bucket_key: Optional[str],
        risk_type: str,
        evaluation_time: float,
    ) -> SensitivityResult:
        """Bucketed sensitivity for the margin aggregation.

        Returns ``Supported(0.0)`` when the query does not apply to the
        product and :data:`UNSUPPORTED` for vega/curvature of optional
        products and for risk classes other than interest rate.
        """
        risk_type = SensitivityType(risk_type)
        if not self.classification.has_optionality and risk_type != SensitivityType.DELTA:
            return Supported(0.0)

        self._cache.on_evaluation_time_changed(evaluation_time)

        risk_class = RiskClass(risk_class)
        if not self.classification.applies_to(ProductClass(product_class), risk_class):
            return Supported(0.0)
        if risk_class != RiskClass.INTEREST_RATE or risk_type != SensitivityType.DELTA:
            return UNSUPPORTED
        if not self.classification.matches_curve(curve_index_name, bucket_key):
            return Supported(0.0)

        bucket = self._cache.get_bucket(risk_class, curve_index_name, maturity_bucket)
        if bucket is None:
            buckets = self._bucket_mapper.get_bucket_sensitivities(risk_class, curve_index_name, evaluation_time)
            bucket = buckets[bucket_index(maturity_bucket)]
        return Supported(bucket)

    @_synchronized
    def get_exact_delta_from_cache(
        self,
        time: float,
        risk_class: RiskClass,
        curve_index_name: str,
        is_market_rate_sensitivity: bool = False,
    ) -> Sensitivities:
        """Un-bucketed sensitivities at ``time``, computed for all curves on a miss."""
        risk_class = RiskClass(risk_class)
        if curve_index_name not in self.classification.curve_index_names:
            raise ValueError(
                f"Curve {curve_index_name!r} is not one of {self.classification.curve_index_names}"
            )
        cached = self._cache.get_exact(time, risk_class, curve_index_name, is_market_rate_sensitivity)
        if cached is not None:
            return cached

        model = self._bound_model()
        if is_market_rate_sensitivity:
            scheme = self._orchestrator.sensitivity_scheme
            if scheme is None:
                raise UnboundProductError("Market rate sensitivities require a bound margin configuration")
            for curve in self.classification.curve_index_names:
                self._cache.put_exact(
                    time, risk_class, curve,
                    scheme.get_exact_delta_sensitivities(time, risk_class, curve),
                    market_rate=True,
                )
        else:
            for curve in self.classification.curve_index_names:
                if is_discount_curve(curve):
                    analytic = self.get_analytic_discount_sensitivities(time, model)
                    if analytic is None:
                        sensitivities = self._projector.get_discount_bond_sensitivities(time, risk_class, model)
                    else:
                        sensitivities = self._projector.get_discount_bond_sensitivities(
                            time, risk_class, model, *analytic
                        )
                else:
                    sensitivities = self._projector.get_forward_rate_sensitivities(time, model)
                self._cache.put_exact(time, risk_class, curve, sensitivities)
        return self._cache.get_exact(time, risk_class, curve_index_name, is_market_rate_sensitivity)

    # ------------------------------------------------------------------
    # Margin
    # ------------------------------------------------------------------

    @_synchronized
    def get_initial_margin(
        self,
        evaluation_time: float,
        model: Any,
        calculation_currency: Optional[str] = None,
        sensitivity_mode: SensitivityMode = SensitivityMode.EXACT,
        weight_mode: WeightMode = WeightMode.TIMEDEPENDENT,
        interpolation_step: float = 1.0,
        consider_ois_sensitivities: bool = True,
    ) -> jnp.ndarray:
        return self._orchestrator.get_initial_margin(
            evaluation_time,
            model,
            calculation_currency,
            sensitivity_mode,
            weight_mode,
            interpolation_step,
            consider_ois_sensitivities,
        )

    @_synchronized
    def get_mva(
        self,
        model: Any,
        calculation_currency: Optional[str] = None,
        sensitivity_mode: SensitivityMode = SensitivityMode.EXACT,
        weight_mode: WeightMode = WeightMode.TIMEDEPENDENT,
        time_step: float = 1.0,
        funding_spread: float = 0.0,
        mva_mode: MVAMode = MVAMode.EXACT,
        interpolation_step: float = 1.0,
        consider_ois_sensitivities: bool = True,
    ) -> float:
        return self._orchestrator.get_mva(
            model,
            calculation_currency,
            sensitivity_mode,
            weight_mode,
            time_step,
            funding_spread,
            mva_mode,
            interpolation_step,
            consider_ois_sensitivities,
        )

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @staticmethod
    def tenor_index(model: Any, time: float) -> int:
        """Index of ``time`` on the model's LIBOR period discretization."""
        return model.libor_period_discretization.time_index(time)

    @staticmethod
    def libor_fixing(model: Any, libor_index: int) -> jnp.ndarray:
        """L_j(T_j), read at the simulation time of the fixing."""
        fixing_time = model.libor_period_discretization.time(libor_index)
        return model.get_libor(model.time_discretization.time_index(fixing_time), libor_index)

    @staticmethod
    def libor_at(model: Any, time: float, libor_index: int) -> jnp.ndarray:
        """L_j(t) on the latest simulation time not after ``time``."""
        time_index = model.time_discretization.index_nearest_less_or_equal(time)
        return model.get_libor(time_index, libor_index)

    def value_at_time_zero(self, model: Any) -> float:
        """Monte Carlo price: the path average of the time-zero value."""
        return float(jnp.mean(self.get_value(0.0, model)))
