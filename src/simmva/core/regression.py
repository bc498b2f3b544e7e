"""Regression based conditional expectation estimators.

The estimator approximates ``E[Y | F_t]`` by least squares projection of the
path-wise values ``Y`` on basis functions of the state at ``t``, as in the
Longstaff-Schwartz algorithm.
"""
from __future__ import annotations

import logging
from typing import Callable, Sequence

import jax.numpy as jnp

Array = jnp.ndarray

logger = logging.getLogger(__name__)

__all__ = [
    "power_basis",
    "laguerre_basis",
    "get_basis_functions",
    "build_basis",
    "ConditionalExpectationEstimator",
]


def power_basis(x: Array, degree: int) -> Array:
    """Generate power basis functions: [1, x, x^2, ..., x^degree].

    Args:
        x: Input values [n_samples]
        degree: Maximum polynomial degree

    Returns:
        Basis matrix [n_samples, degree+1]
    """
    powers = jnp.arange(degree + 1)
    return jnp.power(x[:, None], powers)


def laguerre_basis(x: Array, degree: int) -> Array:
    """Generate Laguerre polynomial basis functions.

    Args:
        x: Input values [n_samples]
        degree: Maximum polynomial degree

    Returns:
        Basis matrix [n_samples, degree+1]

    Notes:
        Recurrence: (n+1)L_{n+1}(x) = (2n+1-x)L_n(x) - nL_{n-1}(x)
    """
    basis = jnp.zeros((x.shape[0], degree + 1))
    basis = basis.at[:, 0].set(1.0)
    if degree >= 1:
        basis = basis.at[:, 1].set(1.0 - x)
    for n in range(1, degree):
        next_column = ((2 * n + 1 - x) * basis[:, n] - n * basis[:, n - 1]) / (n + 1)
        basis = basis.at[:, n + 1].set(next_column)
    return basis


def get_basis_functions(basis_type: str, degree: int) -> Callable[[Array], Array]:
    """Get basis function generator.

    Args:
        basis_type: Type of basis ("power", "laguerre")
        degree: Polynomial degree

    Returns:
        Function that generates basis matrix from input values
    """
    if degree < 1:
        raise ValueError("Polynomial degree must be at least 1")
    if basis_type == "power":
        return lambda x: power_basis(x, degree)
    elif basis_type == "laguerre":
        return lambda x: laguerre_basis(x, degree)
    else:
        raise ValueError(f"Unknown basis type: {basis_type}")


def build_basis(
    factors: Sequence[Array], degree: int = 2, basis_type: str = "power"
) -> Array:
    """Stack the univariate bases of several state variables.

    The constant column of each univariate basis is dropped; the estimator
    adds a single intercept itself.
    """
    generator = get_basis_functions(basis_type, degree)
    columns = [generator(jnp.asarray(factor))[:, 1:] for factor in factors]
    return jnp.concatenate(columns, axis=1)


class ConditionalExpectationEstimator:
    """Least squares estimator of ``E[Y | basis]``.

    Columns that are (numerically) constant across paths carry no information
    and are removed; if none remain, the estimate is the path average, which
    is the exact conditional expectation given the trivial filtration at
    time zero.

    Args:
        basis: Basis matrix [n_paths, n_functions] observed at the conditioning
            time, without intercept column.
        ridge: Tikhonov regularisation added to the normal equations.
    """

    def __init__(self, basis: Array, ridge: float = 1e-8):
        basis = jnp.asarray(basis)
        if basis.ndim == 1:
            basis = basis[:, None]
        if basis.ndim != 2:
            raise ValueError(f"Basis must be two-dimensional, got shape {basis.shape}")
        self.ridge = float(ridge)
        self.number_of_paths = int(basis.shape[0])

        mean = jnp.mean(basis, axis=0)
        scale = jnp.std(basis, axis=0)
        informative = scale > 1e-12 * (1.0 + jnp.abs(mean))
        standardized = (basis[:, informative] - mean[informative]) / scale[informative]
        self._design = jnp.concatenate(
            [jnp.ones((self.number_of_paths, 1), dtype=basis.dtype), standardized], axis=1
        )
        gram = self._design.T @ self._design
        self._gram = gram + self.ridge * jnp.eye(gram.shape[0], dtype=gram.dtype)
        logger.debug(
            "Built conditional expectation estimator with %d of %d basis functions",
            int(jnp.sum(informative)),
            int(basis.shape[1]),
        )

    @property
    def number_of_basis_functions(self) -> int:
        return int(self._design.shape[1])

    def coefficients(self, values: Array) -> Array:
        values = jnp.asarray(values)
        if values.ndim == 0:
            values = jnp.full((self.number_of_paths,), values)
        if values.shape[0] != self.number_of_paths:
            raise ValueError(
                f"Expected {self.number_of_paths} path values, got shape {values.shape}"
            )
        return jnp.linalg.solve(self._gram, self._design.T @ values)

    def expectation(self, values: Array) -> Array:
        """Path-wise estimate of the conditional expectation of ``values``."""
        return self._design @ self.coefficients(values)
