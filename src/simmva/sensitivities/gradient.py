"""Lazily computed time-zero AAD gradient of a product."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import jax.numpy as jnp

from simmva.core.autodiff import DifferentiableValuation, Gradient
from simmva.core.errors import ValuationError

logger = logging.getLogger(__name__)

__all__ = ["GradientProvider"]


class GradientProvider:
    """Owns the single gradient of one product for the last model used.

    The gradient is recomputed if and only if :meth:`get_gradient` is called
    with a model that differs (``!=``) from the one the current gradient was
    computed with. Before recomputing, ``on_model_changed`` is invoked so the
    owner can drop everything derived from the previous gradient.

    Args:
        valuation: Product whose ``get_value(0.0, model)`` is differentiated.
        on_model_changed: Callback fired before each recomputation.
    """

    def __init__(
        self,
        valuation: DifferentiableValuation,
        on_model_changed: Optional[Callable[[], None]] = None,
    ):
        self._valuation = valuation
        self._on_model_changed = on_model_changed
        self._model: Any = None
        self._gradient: Optional[Gradient] = None
        self._value: Optional[jnp.ndarray] = None
        self._numeraire_adjustments: Dict[float, jnp.ndarray] = {}
        self.recomputations = 0

    @property
    def model(self) -> Any:
        """Model of the current gradient, ``None`` before the first computation."""
        return self._model if self._gradient is not None else None

    @property
    def value(self) -> Optional[jnp.ndarray]:
        """Path-wise time-zero value from the last gradient computation."""
        return self._value

    @property
    def numeraire_adjustments(self) -> Dict[float, jnp.ndarray]:
        return self._numeraire_adjustments

    def is_current(self, model: Any) -> bool:
        return self._gradient is not None and not (model != self._model)

    def get_gradient(self, model: Any) -> Gradient:
        if self.is_current(model):
            return self._gradient

        # Drop the stale gradient first so a failed valuation is retried on the next access.
        self._gradient = None
        self._value = None
        self._model = model
        if self._on_model_changed is not None:
            self._on_model_changed()

        logger.info("Computing time-zero AAD gradient for %s", type(self._valuation).__name__)
        try:
            valuation = model.value_and_gradient(
                lambda state: self._valuation.get_value(0.0, state)
            )
        except (ValueError, ArithmeticError) as error:
            raise ValuationError(f"Time-zero valuation failed: {error}") from error
        check_finite(valuation.values, "Time-zero valuation")
        self._numeraire_adjustments.update(valuation.numeraire_adjustments)
        self._value = valuation.values
        self._gradient = valuation.gradient
        self.recomputations += 1
        return self._gradient


def check_finite(values: jnp.ndarray, what: str) -> jnp.ndarray:
    """Raise :class:`ValuationError` if ``values`` contains NaN or infinity."""
    if not bool(jnp.all(jnp.isfinite(values))):
        raise ValuationError(f"{what} produced non-finite values")
    return values
