"""Tests for the LIBOR market model simulation and its path-wise adjoints."""
import math

import jax.numpy as jnp
import numpy as np
import pytest

from simmva.core.autodiff import RiskFactorId
from simmva.core.errors import ValuationError
from simmva.models import DiscountCurve, LMMParams, TermStructureModel, create_correlation_matrix
from simmva.models.lmm import simple_volatility_structure
from simmva.products import SIMMSwap, SIMMZeroCouponBond


class TestLMMParams:
    def test_rejects_non_positive_rates(self):
        with pytest.raises(ValueError):
            LMMParams(
                forward_rates=[0.03, -0.01],
                tenor_structure=[0.0, 0.5, 1.0],
                volatility_fn=simple_volatility_structure(0.2, n_rates=2),
                correlation_matrix=create_correlation_matrix(2),
            )

    def test_tenor_must_start_at_zero(self):
        with pytest.raises(ValueError):
            LMMParams(
                forward_rates=[0.03, 0.03],
                tenor_structure=[0.5, 1.0, 1.5],
                volatility_fn=simple_volatility_structure(0.2, n_rates=2),
                correlation_matrix=create_correlation_matrix(2),
            )

    def test_correlation_is_unit_diagonal(self):
        rho = create_correlation_matrix(5, beta=0.2, rho_infty=0.3)
        np.testing.assert_allclose(jnp.diag(rho), jnp.ones(5))
        assert float(rho[0, 4]) < float(rho[0, 1])


class TestSimulation:
    def test_shapes_and_protocol(self, lmm_factory):
        model = lmm_factory(paths=64)
        assert isinstance(model, TermStructureModel)
        assert model.number_of_libors == 4
        assert model.get_libor(2, 3).shape == (64,)
        assert len(model.time_discretization) == 5

    def test_initial_state_is_deterministic(self, lmm_factory):
        model = lmm_factory(paths=64)
        np.testing.assert_allclose(model.get_libor(0, 1), jnp.full(64, 0.03))
        np.testing.assert_allclose(model.get_numeraire(0.0), jnp.ones(64))

    def test_rates_freeze_after_fixing(self, lmm_factory):
        """L_j is constant on every path after T_j."""
        model = lmm_factory(paths=64, time_discretization=[0.25, 0.75])
        times = model.time_discretization
        fixing = model.get_libor(times.time_index(0.5), 1)
        later = model.get_libor(times.time_index(1.5), 1)
        np.testing.assert_allclose(fixing, later)
        assert float(jnp.std(fixing)) > 0.0

    def test_numeraire_between_tenor_dates(self, lmm_factory):
        model = lmm_factory(paths=32, time_discretization=[0.75])
        expected = (1.0 + 0.5 * 0.03) * (1.0 + 0.5 * model.get_libor_fixing(1)) / (
            1.0 + 0.25 * model.get_libor_fixing(1)
        )
        np.testing.assert_allclose(model.get_numeraire(0.75), expected, rtol=1e-12)

    def test_horizon_is_checked(self, lmm_factory):
        model = lmm_factory(paths=8)
        with pytest.raises(ValueError):
            model.get_numeraire(2.5)

    def test_zero_coupon_bond_reprices_ois_curve(self, lmm_factory):
        """E[1 / N(T)] recovers the OIS discount factor."""
        model = lmm_factory(paths=4000, ois_rate=0.02)
        bond = SIMMZeroCouponBond("EUR", maturity=2.0)
        assert bond.value_at_time_zero(model) == pytest.approx(math.exp(-0.04), rel=5e-3)

    def test_single_curve_adjustment_is_one(self, lmm_factory):
        model = lmm_factory(paths=8)
        assert model.initial_adjustment(1.5) == 1.0

    def test_adjustment_reconciles_curves(self, lmm_factory):
        model = lmm_factory(paths=8, ois_rate=0.02)
        libor_bond = 1.0 / (1.0 + 0.5 * 0.03) ** 2
        assert model.initial_adjustment(1.0) == pytest.approx(libor_bond / math.exp(-0.02))
        assert DiscountCurve.flat(0.02).discount_factor(1.0) == pytest.approx(math.exp(-0.02))


class TestPathwiseGradient:
    def test_records_adjustment_factors(self, lmm_factory):
        model = lmm_factory(paths=32, ois_rate=0.02)
        swap = SIMMSwap("EUR", 0.03, 0.0, 2.0)
        valuation = model.value_and_gradient(lambda state: swap.get_value(0.0, state))
        assert sorted(valuation.numeraire_adjustments) == [0.0, 0.5, 1.0, 1.5, 2.0]
        assert valuation.values.shape == (32,)
        assert float(jnp.max(jnp.abs(valuation.gradient.derivative(RiskFactorId.adjustment(2.0))))) > 0.0

    def test_time_zero_delta_matches_finite_difference(self, lmm_factory):
        """dV/dL_j(0) from the adjoint agrees with a bumped revaluation."""
        swap = SIMMSwap("EUR", 0.03, 0.0, 2.0)
        model = lmm_factory(paths=500)
        gradient = model.value_and_gradient(lambda state: swap.get_value(0.0, state)).gradient

        bump = 1e-5
        for libor_index in range(4):
            forwards_up = [0.03] * 4
            forwards_down = [0.03] * 4
            forwards_up[libor_index] += bump
            forwards_down[libor_index] -= bump

            def value(forwards):
                params = LMMParams(
                    forward_rates=forwards,
                    tenor_structure=[0.0, 0.5, 1.0, 1.5, 2.0],
                    volatility_fn=simple_volatility_structure(0.2, 0.0, 4),
                    correlation_matrix=create_correlation_matrix(4, beta=0.1, rho_infty=0.4),
                )
                bumped = type(model)(params, number_of_paths=500, seed=7)
                return swap.get_value(0.0, bumped)

            finite_difference = (value(forwards_up) - value(forwards_down)) / (2.0 * bump)
            adjoint = gradient.derivative(RiskFactorId.libor(0.0, libor_index))
            np.testing.assert_allclose(adjoint, finite_difference, rtol=1e-4, atol=1e-7)

    def test_non_finite_valuation_raises(self, lmm_factory):
        model = lmm_factory(paths=8)
        with pytest.raises(ValuationError):
            model.value_and_gradient(lambda state: jnp.log(state.get_libor(0, 0) - 1.0))
