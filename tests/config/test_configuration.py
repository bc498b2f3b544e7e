"""Tests for run configuration defaults and YAML schemas."""
import logging

import pytest
import yaml
from pydantic import ValidationError

from simmva.config import (
    AppConfig,
    ConfigValidationError,
    collect_and_validate,
    discover_config_files,
    get_config,
    get_default_config,
    init_environment,
    load_config,
)
from simmva.margin.mva import MVAMode
from simmva.models import LIBORMonteCarloSimulation
from simmva.products import SIMMBermudanSwaption, SIMMSwap, SIMMZeroCouponBond
from simmva.sensitivities.buckets import SensitivityMode, WeightMode

PAYLOAD = {
    "seed": 3,
    "model": {"flat_forward": 0.03, "horizon": 3.0, "paths": 64},
    "curve": {"flat_rate": 0.02},
    "product": {"type": "swap", "currency": "eur", "fixed_rate": 0.03, "maturity": 3.0},
    "margin": {"sensitivity_mode": "melting"},
    "mva": {"funding_spread": 0.01, "mode": "approximation"},
}


class TestDefaults:
    def test_default_sections(self):
        cfg = get_default_config()
        assert cfg.jax.enable_x64 is True
        assert cfg.margin.sensitivity_mode == "exact"
        assert cfg.mva.time_step == 1.0
        assert cfg.regression.ridge == 1e-8

    def test_overrides_are_merged(self):
        cfg = get_config({"seed": 5, "mva": {"funding_spread": 0.02}})
        assert cfg.seed == 5
        assert cfg.mva.funding_spread == 0.02
        assert cfg.mva.time_step == 1.0

    def test_init_environment(self):
        cfg = init_environment({"seed": 9, "logging": {"level": "WARNING"}})
        assert cfg.runtime.seed == 9
        assert logging.getLogger().level == logging.WARNING
        assert cfg.simulation.paths == 1000


class TestSchemas:
    def test_valid_payload(self):
        config = AppConfig.model_validate(PAYLOAD)
        assert config.product.currency == "EUR"
        assert config.margin.sensitivity_mode is SensitivityMode.MELTING
        assert config.mva.mode is MVAMode.APPROXIMATION
        assert config.model.number_of_periods == 6

    def test_builds_model_and_product(self):
        config = AppConfig.model_validate(PAYLOAD)
        model = config.build_model()
        assert isinstance(model, LIBORMonteCarloSimulation)
        assert model.number_of_libors == 6
        assert model.number_of_paths == 64
        assert model.discount_curve is not None
        assert isinstance(config.build_product(), SIMMSwap)

    def test_omitted_settings_follow_the_defaults(self):
        cfg = get_default_config()
        config = AppConfig.model_validate(
            {"model": {"flat_forward": 0.03, "horizon": 3.0}, "product": {"maturity": 3.0}}
        )
        assert config.seed == cfg.seed
        assert config.model.paths == cfg.simulation.paths
        assert config.model.time_step is None
        assert config.model.regression_degree == cfg.regression.degree
        assert config.margin.weight_mode is WeightMode(cfg.margin.weight_mode)
        assert config.margin.calculation_currency is None
        assert config.mva.mode is MVAMode(cfg.mva.mode)
        assert config.mva.time_step == cfg.mva.time_step

    def test_regression_ridge_reaches_the_product(self):
        payload = dict(PAYLOAD, model=dict(PAYLOAD["model"], regression_ridge=1e-6))
        config = AppConfig.model_validate(payload)
        model = config.build_model()
        assert config.build_product().projector.conditional_expectation(0.5, model).ridge == 1e-6

        default = AppConfig.model_validate(PAYLOAD).build_product()
        ridge = default.projector.conditional_expectation(0.5, model).ridge
        assert ridge == get_default_config().regression.ridge

    def test_analytic_discount_sensitivities_flag(self):
        swap = dict(PAYLOAD, product=dict(PAYLOAD["product"], analytic_discount_sensitivities=True))
        assert AppConfig.model_validate(swap).build_product().analytic_discount_sensitivities

        swaption = dict(swap, product=dict(swap["product"], type="swaption", start=1.0))
        with pytest.raises(ValidationError):
            AppConfig.model_validate(swaption)

    def test_product_types(self):
        bermudan = dict(PAYLOAD, product={"type": "bermudan", "start": 1.0, "maturity": 3.0})
        bond = dict(PAYLOAD, product={"type": "bond", "maturity": 2.0})
        assert isinstance(AppConfig.model_validate(bermudan).build_product(), SIMMBermudanSwaption)
        assert isinstance(AppConfig.model_validate(bond).build_product(), SIMMZeroCouponBond)

    @pytest.mark.parametrize(
        "model",
        [
            {"horizon": 3.0},
            {"flat_forward": 0.03, "forward_rates": [0.03] * 6, "horizon": 3.0},
            {"forward_rates": [0.03, 0.03], "horizon": 3.0},
            {"flat_forward": 0.03, "horizon": 3.0, "unknown": 1},
        ],
    )
    def test_invalid_models(self, model):
        with pytest.raises(ValidationError):
            AppConfig.model_validate(dict(PAYLOAD, model=model))

    def test_maturity_beyond_horizon(self):
        payload = dict(PAYLOAD, product={"type": "swap", "maturity": 5.0})
        with pytest.raises(ValidationError):
            AppConfig.model_validate(payload)

    def test_curve_needs_matching_pillars(self):
        with pytest.raises(ValidationError):
            AppConfig.model_validate(dict(PAYLOAD, curve={"times": [1.0, 2.0], "discount_factors": [0.99]}))


class TestFiles:
    def test_load_and_discover(self, tmp_path):
        path = tmp_path / "run.yaml"
        path.write_text(yaml.safe_dump(PAYLOAD), encoding="utf-8")
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
        assert load_config(path).seed == 3
        assert discover_config_files([tmp_path, path]) == [path.resolve()]
        assert len(collect_and_validate([tmp_path])) == 1

    def test_invalid_files_are_collected(self, tmp_path):
        (tmp_path / "good.yml").write_text(yaml.safe_dump(PAYLOAD), encoding="utf-8")
        (tmp_path / "bad.yml").write_text(yaml.safe_dump({"seed": -1}), encoding="utf-8")
        with pytest.raises(ConfigValidationError) as excinfo:
            collect_and_validate([tmp_path])
        assert len(excinfo.value.errors) == 1
        assert excinfo.value.errors[0][0].name == "bad.yml"
