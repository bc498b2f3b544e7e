"""Interface the sensitivity engine consumes from a term structure model."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Protocol, runtime_checkable

import jax.numpy as jnp

from simmva.core.autodiff import Gradient
from simmva.core.time_discretization import TimeDiscretization

Array = jnp.ndarray

__all__ = ["PathwiseValuation", "TermStructureModel"]


@dataclass(frozen=True)
class PathwiseValuation:
    """Result of a differentiated valuation at time zero.

    Attributes
    ----------
    values : Array
        Path-wise product values, shape [n_paths]
    gradient : Gradient
        Path-wise adjoints of ``values`` with respect to the model risk factors
    numeraire_adjustments : dict
        Numeraire adjustment factors A(T) used by the valuation, keyed by T
    """

    values: Array
    gradient: Gradient
    numeraire_adjustments: Dict[float, Array]


@runtime_checkable
class TermStructureModel(Protocol):
    """Monte Carlo LIBOR model with path-wise adjoint support."""

    @property
    def time_discretization(self) -> TimeDiscretization:
        ...

    @property
    def libor_period_discretization(self) -> TimeDiscretization:
        ...

    @property
    def number_of_libors(self) -> int:
        ...

    @property
    def number_of_paths(self) -> int:
        ...

    def get_libor(self, time_index: int, libor_index: int) -> Array:
        ...

    def get_numeraire(self, time: float) -> Array:
        ...

    def get_numeraire_adjustment(self, time: float) -> Array:
        ...

    def get_forward_bond_libor(self, maturity: float, time: float) -> Array:
        ...

    def get_forward_bond_ois(self, maturity: float, time: float) -> Array:
        ...

    def get_regression_basis(self, time: float) -> Array:
        ...

    def value_and_gradient(self, valuation: Callable[["TermStructureModel"], Array]) -> PathwiseValuation:
        ...
