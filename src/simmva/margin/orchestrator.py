"""Model binding, initial margin and MVA of a product."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import jax.numpy as jnp

from simmva.core.time_discretization import TIME_TOLERANCE
from simmva.margin.aggregation import SIMMMarginScheme
from simmva.margin.mva import (
    MVAMode,
    forward_funding_bond_increments,
    margin_valuation_adjustment,
    mva_time_grid,
)
from simmva.sensitivities.buckets import SensitivityMode, SIMMSensitivityScheme, WeightMode

logger = logging.getLogger(__name__)

__all__ = ["MarginState", "MarginConfiguration", "MarginOrchestrator"]


class MarginState(str, Enum):
    UNINITIALIZED = "uninitialized"
    REBINDING = "rebinding"
    BOUND = "bound"


@dataclass(frozen=True)
class MarginConfiguration:
    """Everything besides the model that the bound collaborators depend on."""

    calculation_currency: str
    sensitivity_mode: SensitivityMode = SensitivityMode.EXACT
    weight_mode: WeightMode = WeightMode.TIMEDEPENDENT
    interpolation_step: float = 1.0
    consider_ois_sensitivities: bool = True

    def __post_init__(self):
        object.__setattr__(self, "calculation_currency", self.calculation_currency.upper())
        object.__setattr__(self, "sensitivity_mode", SensitivityMode(self.sensitivity_mode))
        object.__setattr__(self, "weight_mode", WeightMode(self.weight_mode))
        object.__setattr__(self, "interpolation_step", float(self.interpolation_step))


class MarginOrchestrator:
    """State machine over (bound model, configuration).

    ``UNINITIALIZED`` until the first margin request, ``BOUND`` afterwards.
    A request with another model or configuration, or after the product's
    gradient was recomputed for a different model, passes through
    ``REBINDING``: the product's extra state and cached exact sensitivities
    are dropped, the gradient is bound to the model (recomputed only if the
    model changed) and fresh sensitivity and margin schemes are built. A
    failed rebinding leaves the orchestrator ``UNINITIALIZED``.
    """

    def __init__(self, product: Any):
        self.product = product
        self.state = MarginState.UNINITIALIZED
        self._model: Any = None
        self._configuration: Optional[MarginConfiguration] = None
        self._sensitivity_scheme: Optional[SIMMSensitivityScheme] = None
        self._margin_scheme: Optional[SIMMMarginScheme] = None
        self.rebinds = 0

    @property
    def model(self) -> Any:
        return self._model

    @property
    def configuration(self) -> Optional[MarginConfiguration]:
        return self._configuration

    @property
    def sensitivity_scheme(self) -> Optional[SIMMSensitivityScheme]:
        return self._sensitivity_scheme

    @property
    def margin_scheme(self) -> Optional[SIMMMarginScheme]:
        return self._margin_scheme

    def needs_rebinding(self, model: Any, configuration: MarginConfiguration) -> bool:
        return (
            self.state != MarginState.BOUND
            or model != self._model
            or configuration != self._configuration
            or not self.product.gradient_provider.is_current(model)
        )

    def _rebind(self, model: Any, configuration: MarginConfiguration) -> None:
        self.state = MarginState.REBINDING
        logger.info(
            "Binding %s to %s (%s, %s)",
            type(self.product).__name__,
            type(model).__name__,
            configuration.sensitivity_mode.value,
            configuration.weight_mode.value,
        )
        try:
            self.product.clear_extra_state()
            self.product.sensitivity_cache.on_model_changed()
            self.product.get_gradient(model)
            self._sensitivity_scheme = SIMMSensitivityScheme(
                self.product,
                model,
                sensitivity_mode=configuration.sensitivity_mode,
                weight_mode=configuration.weight_mode,
                interpolation_step=configuration.interpolation_step,
                consider_ois_sensitivities=configuration.consider_ois_sensitivities,
            )
            self._margin_scheme = SIMMMarginScheme(self.product, configuration.calculation_currency)
        except Exception:
            self.state = MarginState.UNINITIALIZED
            self._model = None
            self._configuration = None
            self._sensitivity_scheme = None
            self._margin_scheme = None
            raise
        self._model = model
        self._configuration = configuration
        self.state = MarginState.BOUND
        self.rebinds += 1

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
        """Path-wise initial margin at ``evaluation_time``; zero at or after maturity."""
        if evaluation_time >= self.product.final_maturity - TIME_TOLERANCE:
            return jnp.zeros(model.number_of_paths)

        configuration = MarginConfiguration(
            calculation_currency=calculation_currency or self.product.classification.currency,
            sensitivity_mode=sensitivity_mode,
            weight_mode=weight_mode,
            interpolation_step=interpolation_step,
            consider_ois_sensitivities=consider_ois_sensitivities,
        )
        if self.needs_rebinding(model, configuration):
            self._rebind(model, configuration)

        margin = self._margin_scheme.get_value(evaluation_time)
        return jnp.broadcast_to(margin, (model.number_of_paths,))

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
        """MVA by integrating the margin profile against funding bond increments."""
        times = mva_time_grid(self.product.final_maturity, time_step)
        increments = forward_funding_bond_increments(model.get_numeraire, times, funding_spread)
        margins = [
            self.get_initial_margin(
                time,
                model,
                calculation_currency,
                sensitivity_mode,
                weight_mode,
                interpolation_step,
                consider_ois_sensitivities,
            )
            for time in times[:-1]
        ]
        value = margin_valuation_adjustment(margins, increments, mva_mode)
        logger.info("MVA of %s over %d periods: %.6g", type(self.product).__name__, len(margins), value)
        return value
