"""Tests for the path-wise gradient map and the AAD wrapper."""
import jax.numpy as jnp
import numpy as np
import pytest

from simmva.core.autodiff import Gradient, RiskFactorId, pathwise_value_and_grad
from simmva.core.results import UNSUPPORTED, Supported


def _gradient():
    adjoints = jnp.arange(2 * 3 * 2, dtype=float).reshape(2, 3, 2)
    return Gradient([0.0, 0.5], adjoints, {1.0: jnp.full(3, 7.0)})


class TestGradient:
    def test_libor_lookup(self):
        gradient = _gradient()
        np.testing.assert_allclose(gradient[RiskFactorId.libor(0.5, 1)], [7.0, 9.0, 11.0])

    def test_adjustment_lookup(self):
        gradient = _gradient()
        np.testing.assert_allclose(gradient[RiskFactorId.adjustment(1.0)], jnp.full(3, 7.0))
        assert gradient.adjustment_times == (1.0,)

    def test_absent_factor_has_zero_derivative(self):
        """Missing factors are not keys but differentiate to zero."""
        gradient = _gradient()
        factor = RiskFactorId.adjustment(2.0)
        assert factor not in gradient
        np.testing.assert_allclose(gradient.derivative(factor), jnp.zeros(3))
        with pytest.raises(KeyError):
            gradient[RiskFactorId.libor(0.25, 0)]

    def test_mapping_size(self):
        gradient = _gradient()
        assert len(gradient) == 5
        assert len(list(gradient)) == 5
        assert gradient.number_of_paths == 3

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError):
            Gradient([0.0], jnp.zeros((2, 3, 1)))


def test_pathwise_value_and_grad_is_per_path():
    """Summing over independent paths yields each path's own derivative."""
    x = jnp.array([1.0, 2.0, 3.0])
    values, grads = pathwise_value_and_grad(lambda state: state**2)(x)
    np.testing.assert_allclose(values, x**2)
    np.testing.assert_allclose(grads, 2.0 * x)


def test_tagged_results():
    assert Supported(0.0).is_supported
    assert not UNSUPPORTED.is_supported
    assert Supported(0.0) != UNSUPPORTED
