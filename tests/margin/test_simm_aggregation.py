"""Tests for the SIMM interest rate delta aggregation."""
import math

import jax.numpy as jnp
import pytest

from simmva.core.errors import UnsupportedSensitivityError
from simmva.core.results import UNSUPPORTED, Supported
from simmva.margin.aggregation import SIMMMarginScheme
from simmva.margin.risk_weights import (
    IR_TENOR_CORRELATION,
    concentration_risk_factor,
    get_concentration_threshold,
    get_ir_correlation_matrix,
    get_ir_risk_weights,
    volatility_group,
)
from simmva.sensitivities.classification import ProductClassification


class _StubProduct:
    def __init__(self, sensitivities, curves=("Libor6m",), currency="EUR", supported=True):
        self.classification = ProductClassification(currency=currency, curve_index_names=curves)
        self.sensitivities = sensitivities
        self.supported = supported
        self.queries = []

    def get_sensitivity(self, product_class, risk_class, maturity_bucket, curve, bucket_key, risk_type, t):
        self.queries.append((curve, maturity_bucket, bucket_key, risk_type, t))
        if not self.supported:
            return UNSUPPORTED
        return Supported(self.sensitivities.get((curve, maturity_bucket), 0.0))


class TestRiskWeights:
    def test_volatility_groups(self):
        assert volatility_group("eur") == "regular"
        assert volatility_group("JPY") == "low"
        assert volatility_group("BRL") == "high"

    def test_regular_weights(self):
        weights = get_ir_risk_weights("USD")
        assert weights.shape == (12,)
        assert float(weights[0]) == 115.0
        assert float(weights[8]) == 53.0

    def test_sub_curve_correlation(self):
        rho = get_ir_correlation_matrix(2)
        assert rho.shape == (24, 24)
        assert float(rho[0, 12]) == pytest.approx(0.99)
        assert float(rho[3, 4]) == pytest.approx(IR_TENOR_CORRELATION[3][4])
        assert float(rho[12 + 3, 4]) == pytest.approx(0.99 * IR_TENOR_CORRELATION[3][4])

    def test_concentration(self):
        assert get_concentration_threshold("EUR") == 230e6
        assert get_concentration_threshold("XYZ") == 33e6
        assert float(concentration_risk_factor(jnp.asarray(920e6), 230e6)) == pytest.approx(2.0)
        assert float(concentration_risk_factor(jnp.asarray(1e6), 230e6)) == 1.0


class TestMarginScheme:
    def test_single_sensitivity(self):
        product = _StubProduct({("Libor6m", "10y"): 1000.0})
        margin = SIMMMarginScheme(product).get_value(1.0)
        assert float(margin) == pytest.approx(53.0 * 1000.0)
        assert all(query[2] == "EUR" and query[4] == 1.0 for query in product.queries)

    def test_tenor_correlation(self):
        product = _StubProduct({("Libor6m", "2y"): 1000.0, ("Libor6m", "10y"): -500.0})
        first, second = 61.0 * 1000.0, 53.0 * -500.0
        expected = math.sqrt(first**2 + second**2 + 2 * 0.78 * first * second)
        assert float(SIMMMarginScheme(product).get_value(0.0)) == pytest.approx(expected)

    def test_sub_curves(self):
        product = _StubProduct(
            {("OIS", "10y"): 1000.0, ("Libor6m", "10y"): 1000.0}, curves=("OIS", "Libor6m")
        )
        expected = 53.0 * 1000.0 * math.sqrt(2.0 + 2.0 * 0.99)
        assert float(SIMMMarginScheme(product).get_value(0.0)) == pytest.approx(expected)

    def test_concentration_scales_margin(self):
        product = _StubProduct({("Libor6m", "10y"): 920e6})
        assert float(SIMMMarginScheme(product).get_value(0.0)) == pytest.approx(53.0 * 920e6 * 2.0)

    def test_path_wise_sensitivities(self):
        product = _StubProduct({("Libor6m", "5y"): jnp.array([1.0, -2.0, 0.0])})
        margin = SIMMMarginScheme(product).get_value(0.0)
        assert margin.shape == (3,)
        assert [float(m) for m in margin] == pytest.approx([52.0, 104.0, 0.0])

    def test_unsupported_sensitivity_raises(self):
        product = _StubProduct({}, supported=False)
        with pytest.raises(UnsupportedSensitivityError):
            SIMMMarginScheme(product).get_value(0.0)

    def test_other_currency_rejected(self):
        with pytest.raises(ValueError):
            SIMMMarginScheme(_StubProduct({}), calculation_currency="USD")
