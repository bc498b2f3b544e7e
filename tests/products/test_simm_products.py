"""Tests for the interest rate products and their sensitivity interface."""
import threading

import jax.numpy as jnp
import numpy as np
import pytest

from simmva.core.errors import UnboundProductError
from simmva.core.results import UNSUPPORTED, Supported
from simmva.products import SIMMBermudanSwaption, SIMMSwap, SIMMSwaption, SIMMZeroCouponBond
from simmva.sensitivities.classification import ProductClass, ProductClassification, RiskClass

IR = RiskClass.INTEREST_RATE
RATES = ProductClass.RATES_FX


class TestSwap:
    def test_rejects_inverted_dates(self):
        with pytest.raises(ValueError):
            SIMMSwap("EUR", 0.03, 2.0, 1.0)

    def test_at_par_swap_has_zero_value(self, lmm_factory):
        model = lmm_factory(paths=4000)
        probe = SIMMSwap("EUR", 0.0, 0.0, 2.0)
        par = float(jnp.mean(probe.par_rate(model)))
        assert par == pytest.approx(0.03, rel=1e-10)
        swap = SIMMSwap("EUR", par, 0.0, 2.0)
        assert abs(swap.value_at_time_zero(model)) < 1e-3

    def test_payer_and_receiver_offset(self, lmm_factory):
        model = lmm_factory(paths=200)
        payer = SIMMSwap("EUR", 0.025, 0.5, 2.0, payer=True)
        receiver = SIMMSwap("EUR", 0.025, 0.5, 2.0, payer=False)
        np.testing.assert_allclose(payer.get_value(0.0, model), -receiver.get_value(0.0, model))
        assert payer.value_at_time_zero(model) > 0.0

    def test_cash_flows_window(self, lmm_factory):
        model = lmm_factory(paths=50)
        swap = SIMMSwap("EUR", 0.03, 0.0, 2.0)
        total = swap.get_cash_flows(0.0, 2.0, model)
        split = swap.get_cash_flows(0.0, 1.0, model) + swap.get_cash_flows(1.0, 2.0, model)
        np.testing.assert_allclose(total, split)
        np.testing.assert_allclose(swap.get_cash_flows(2.0, 2.0, model), jnp.zeros(50))

    def test_analytic_discount_sensitivities(self, multi_curve_model):
        swap = SIMMSwap("EUR", 0.025, 0.0, 4.0, notional=1e6, analytic_discount_sensitivities=True)
        times, sensitivities = swap.get_analytic_discount_sensitivities(0.0, multi_curve_model)
        assert times == pytest.approx([0.5 * k for k in range(1, 9)])

        swap.get_gradient(multi_curve_model)
        pivots = swap.get_exact_delta_from_cache(0.0, IR, "OIS")
        assert len(pivots) == 9
        np.testing.assert_allclose(pivots[0], 0.0)
        for value in pivots[1:]:
            np.testing.assert_allclose(value, 1e6 * 0.5 * (0.03 - 0.025), rtol=1e-10)

    def test_adjoint_discount_sensitivities_by_default(self, multi_curve_model):
        swap = SIMMSwap("EUR", 0.025, 0.0, 4.0)
        assert swap.get_analytic_discount_sensitivities(0.0, multi_curve_model) is None

    def test_value_after_maturity_is_zero(self, lmm_factory):
        model = lmm_factory(paths=20)
        swap = SIMMSwap("EUR", 0.03, 0.0, 1.0)
        np.testing.assert_allclose(swap.get_value(1.5, model), jnp.zeros(20))


class TestSwaptions:
    def test_swaption_dominates_forward_swap(self, lmm_factory):
        model = lmm_factory(paths=1000)
        swap = SIMMSwap("EUR", 0.03, 1.0, 2.0)
        swaption = SIMMSwaption("EUR", 0.03, 1.0, 2.0)
        assert swaption.value_at_time_zero(model) >= swap.value_at_time_zero(model)
        assert swaption.value_at_time_zero(model) > 0.0

    def test_optionality_flag(self):
        assert SIMMSwaption("EUR", 0.03, 1.0, 2.0).classification.has_optionality
        assert not SIMMSwap("EUR", 0.03, 1.0, 2.0).classification.has_optionality

    def test_bermudan_exercise_state_follows_the_model(self, lmm_factory):
        model = lmm_factory(paths=300)
        bermudan = SIMMBermudanSwaption("EUR", 0.03, 0.5, 2.0)
        bermudan.get_gradient(model)
        source, indicator = bermudan._exercise_state
        assert source is model
        assert set(np.unique(np.asarray(indicator))) <= {-1, 1, 2, 3}

        bermudan.clear_extra_state()
        assert bermudan._exercise_state is None

        other = lmm_factory(paths=300, seed=3)
        bermudan.get_gradient(other)
        assert bermudan._exercise_state[0] is other

    def test_bermudan_worth_at_least_its_first_exercise(self, lmm_factory):
        model = lmm_factory(paths=1000)
        bermudan = SIMMBermudanSwaption("EUR", 0.03, 0.5, 2.0)
        european = SIMMSwaption("EUR", 0.03, 0.5, 2.0)
        assert bermudan.value_at_time_zero(model) >= 0.9 * european.value_at_time_zero(model)

    def test_bermudan_margin(self, lmm_factory):
        model = lmm_factory(paths=300, ois_rate=0.02)
        bermudan = SIMMBermudanSwaption("EUR", 0.03, 0.5, 2.0, notional=1e6)
        margin = bermudan.get_initial_margin(0.0, model)
        assert float(margin[0]) > 0.0


class TestSensitivityQueries:
    def _query(self, product, model=None, **overrides):
        query = dict(
            product_class=RATES,
            risk_class=IR,
            maturity_bucket="1y",
            curve_index_name="Libor6m",
            bucket_key="EUR",
            risk_type="delta",
            evaluation_time=0.0,
        )
        query.update(overrides)
        return product.get_sensitivity(**query)

    def test_vega_of_linear_product_is_zero(self):
        assert self._query(SIMMSwap("EUR", 0.03, 0.0, 2.0), risk_type="vega") == Supported(0.0)

    def test_vega_of_option_is_unsupported(self):
        assert self._query(SIMMSwaption("EUR", 0.03, 1.0, 2.0), risk_type="vega") is UNSUPPORTED

    @pytest.mark.parametrize("risk_type", ["vega", "curvature"])
    def test_option_vega_unsupported_without_curve(self, risk_type):
        swaption = SIMMSwaption("EUR", 0.03, 1.0, 2.0)
        result = self._query(swaption, risk_type=risk_type, curve_index_name=None)
        assert result is UNSUPPORTED

    def test_declared_non_ir_risk_class_is_unsupported(self):
        swap = SIMMSwap("EUR", 0.03, 0.0, 2.0)
        swap.classification = ProductClassification(
            "EUR", risk_classes=(IR, RiskClass.EQUITY), bucket_key="1"
        )
        result = self._query(swap, risk_class=RiskClass.EQUITY, curve_index_name=None, bucket_key="1")
        assert result is UNSUPPORTED

    def test_queries_outside_the_classification_are_zero(self):
        swap = SIMMSwap("EUR", 0.03, 0.0, 2.0)
        assert self._query(swap, bucket_key="USD") == Supported(0.0)
        assert self._query(swap, curve_index_name="Libor3m") == Supported(0.0)
        assert self._query(swap, risk_class=RiskClass.EQUITY) == Supported(0.0)
        assert self._query(swap, product_class=ProductClass.CREDIT) == Supported(0.0)

    def test_delta_requires_binding(self):
        with pytest.raises(UnboundProductError):
            self._query(SIMMSwap("EUR", 0.03, 0.0, 2.0))

    def test_delta_after_binding(self, multi_curve_model):
        swap = SIMMSwap("EUR", 0.03, 0.0, 4.0, notional=1e6)
        swap.get_initial_margin(0.0, multi_curve_model)
        result = self._query(swap, maturity_bucket="2y")
        assert result.is_supported
        assert result.value.shape == (multi_curve_model.number_of_paths,)

    def test_exact_delta_unknown_curve(self, multi_curve_model):
        swap = SIMMSwap("EUR", 0.03, 0.0, 4.0)
        swap.get_gradient(multi_curve_model)
        with pytest.raises(ValueError):
            swap.get_exact_delta_from_cache(0.0, IR, "Libor3m")

    def test_exact_delta_cached_for_all_curves(self, multi_curve_model):
        swap = SIMMSwap("EUR", 0.03, 0.0, 4.0)
        swap.get_gradient(multi_curve_model)
        forward = swap.get_exact_delta_from_cache(0.5, IR, "Libor6m")
        assert swap.sensitivity_cache.get_exact(0.5, IR, "OIS") is not None
        assert swap.get_exact_delta_from_cache(0.5, IR, "Libor6m") is forward
        assert len(forward) == 7

    def test_numeraire_adjustment_map(self, multi_curve_model):
        bond = SIMMZeroCouponBond("EUR", maturity=3.0)
        bond.get_gradient(multi_curve_model)
        assert sorted(bond.get_numeraire_adjustment_map()) == [0.0, 3.0]


class TestConcurrentQueries:
    def test_threads_share_one_gradient_and_cache(self, multi_curve_model):
        swap = SIMMSwap("EUR", 0.03, 0.0, 4.0, notional=1e6)
        swap.get_initial_margin(0.0, multi_curve_model)
        exact, buckets, errors = [], [], []

        def worker():
            try:
                exact.append(swap.get_exact_delta_from_cache(1.0, IR, "Libor6m"))
                result = swap.get_sensitivity(RATES, IR, "2y", "Libor6m", "EUR", "delta", 1.0)
                buckets.append(result.value)
            except Exception as error:
                errors.append(error)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert swap.gradient_provider.recomputations == 1
        assert swap.projector.regressions == 2
        assert all(result is exact[0] for result in exact)
        for value in buckets[1:]:
            np.testing.assert_array_equal(value, buckets[0])
