"""Tests for the lazily computed, model-keyed gradient."""
import jax.numpy as jnp
import pytest

from simmva.core.autodiff import RiskFactorId
from simmva.core.errors import ValuationError
from simmva.sensitivities.gradient import GradientProvider


class _Valuation:
    def __init__(self, failures=0, value=1.0):
        self.failures = failures
        self.value = value

    def get_value(self, evaluation_time, model):
        if self.failures:
            self.failures -= 1
            raise ValueError("fixing missing")
        return jnp.full(model.number_of_paths, self.value)


def test_computed_once_per_model(counting_model):
    model = counting_model()
    changes = []
    provider = GradientProvider(_Valuation(), on_model_changed=lambda: changes.append(1))

    first = provider.get_gradient(model)
    second = provider.get_gradient(model)
    assert first is second
    assert model.calls == 1
    assert provider.recomputations == 1
    assert len(changes) == 1
    assert provider.model is model
    assert float(first.derivative(RiskFactorId.libor(1.0, 0))[0]) == 1.0


def test_new_model_recomputes(counting_model):
    provider = GradientProvider(_Valuation())
    first_model, second_model = counting_model(), counting_model()
    provider.get_gradient(first_model)
    provider.get_gradient(second_model)
    assert provider.recomputations == 2
    assert provider.is_current(second_model)
    assert not provider.is_current(first_model)
    assert 1.0 in provider.numeraire_adjustments


def test_failure_is_reported_and_retried(counting_model):
    """A failed valuation leaves no gradient; the next access computes afresh."""
    model = counting_model()
    provider = GradientProvider(_Valuation(failures=1))
    with pytest.raises(ValuationError):
        provider.get_gradient(model)
    assert provider.model is None

    provider.get_gradient(model)
    assert provider.recomputations == 1
    assert model.calls == 2


def test_non_finite_values_rejected(counting_model):
    provider = GradientProvider(_Valuation(value=float("nan")))
    with pytest.raises(ValuationError):
        provider.get_gradient(counting_model())

