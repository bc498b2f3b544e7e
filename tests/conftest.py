"""Configure test environment for importing the project package."""
import math
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent
SRC = REPO_ROOT / "src"

if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import jax

jax.config.update("jax_enable_x64", True)

import jax.numpy as jnp

from simmva.core.autodiff import Gradient
from simmva.core.time_discretization import TimeDiscretization
from simmva.models import (
    DiscountCurve,
    LIBORMonteCarloSimulation,
    LMMParams,
    create_correlation_matrix,
    simple_volatility_structure,
)
from simmva.models.base import PathwiseValuation


class CountingModel:
    """Deterministic one-period model with numeraire exp(r t) that counts valuations."""

    def __init__(self, number_of_paths: int = 4, rate: float = 0.01):
        self.number_of_paths = number_of_paths
        self.rate = rate
        self.calls = 0
        self.time_discretization = TimeDiscretization([0.0, 1.0])
        self.libor_period_discretization = TimeDiscretization([0.0, 1.0])
        self.number_of_libors = 1

    def get_numeraire(self, time: float) -> jnp.ndarray:
        return jnp.full((self.number_of_paths,), math.exp(self.rate * time))

    def get_numeraire_adjustment(self, time: float) -> jnp.ndarray:
        return jnp.ones(self.number_of_paths)

    def value_and_gradient(self, valuation) -> PathwiseValuation:
        self.calls += 1
        values = jnp.broadcast_to(jnp.asarray(valuation(self), dtype=float), (self.number_of_paths,))
        gradient = Gradient(
            self.time_discretization, jnp.ones((len(self.time_discretization), self.number_of_paths, 1))
        )
        return PathwiseValuation(values=values, gradient=gradient, numeraire_adjustments={1.0: jnp.ones(self.number_of_paths)})


def build_lmm(
    n_periods: int = 4,
    period_length: float = 0.5,
    forward: float = 0.03,
    volatility: float = 0.2,
    paths: int = 1000,
    seed: int = 7,
    ois_rate=None,
    time_discretization=None,
) -> LIBORMonteCarloSimulation:
    params = LMMParams(
        forward_rates=[forward] * n_periods,
        tenor_structure=[i * period_length for i in range(n_periods + 1)],
        volatility_fn=simple_volatility_structure(volatility, 0.0, n_periods),
        correlation_matrix=create_correlation_matrix(n_periods, beta=0.1, rho_infty=0.4),
    )
    curve = None if ois_rate is None else DiscountCurve.flat(ois_rate)
    return LIBORMonteCarloSimulation(
        params,
        time_discretization=time_discretization,
        number_of_paths=paths,
        seed=seed,
        discount_curve=curve,
    )


@pytest.fixture
def counting_model():
    """Factory of :class:`CountingModel` instances."""
    return CountingModel


@pytest.fixture
def lmm_factory():
    """Factory of small LIBOR market model simulations."""
    return build_lmm


@pytest.fixture(scope="module")
def multi_curve_model():
    """Four year, semi-annual LMM discounted on a flat 2% OIS curve."""
    return build_lmm(n_periods=8, paths=400, ois_rate=0.02)
