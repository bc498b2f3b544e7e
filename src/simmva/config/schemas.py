"""Pydantic-based configuration schemas and helpers."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Literal, Optional

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from simmva.config.defaults import get_default_config
from simmva.margin.mva import MVAMode
from simmva.sensitivities.buckets import SensitivityMode, WeightMode


def _default(path: str, convert=None):
    """Factory of a field default read from :func:`get_default_config` at ``path``."""

    def factory():
        value = get_default_config()
        for key in path.split("."):
            value = value[key]
        return value if convert is None else convert(value)

    return factory


class ModelSettings(BaseModel):
    """LIBOR market model and simulation settings parsed from YAML."""

    model_config = ConfigDict(extra="forbid")

    period_length: float = Field(default=0.5, gt=0, description="Length of each LIBOR period in years")
    horizon: float = Field(default=10.0, gt=0, description="Last tenor date in years")
    flat_forward: Optional[float] = Field(default=None, gt=0, description="Flat initial forward rate")
    forward_rates: Optional[list[float]] = Field(default=None, description="Initial forward rate per period")
    volatility: float = Field(default=0.2, gt=0, description="Initial LIBOR volatility level")
    volatility_decay: float = Field(default=0.0, ge=0, description="Exponential decay of the volatility")
    correlation_beta: float = Field(default=0.1, ge=0, description="Correlation decay per period")
    correlation_rho_infinity: float = Field(default=0.4, ge=0, le=1, description="Long-range correlation")
    paths: int = Field(default_factory=_default("simulation.paths"), gt=0, description="Number of Monte Carlo paths")
    time_step: Optional[float] = Field(
        default_factory=_default("simulation.time_step"), gt=0, description="Simulation step between tenor dates"
    )
    regression_degree: int = Field(
        default_factory=_default("regression.degree"), ge=1, description="Polynomial degree of the regression basis"
    )
    regression_ridge: float = Field(
        default_factory=_default("regression.ridge"), ge=0, description="Regularisation of the conditional expectation"
    )

    @field_validator("forward_rates")
    @classmethod
    def validate_forward_rates(cls, value: Optional[list[float]]) -> Optional[list[float]]:
        if value is not None and any(rate <= 0 for rate in value):
            raise ValueError("forward_rates must be positive")
        return value

    @model_validator(mode="after")
    def validate_curve(self) -> "ModelSettings":
        if (self.flat_forward is None) == (self.forward_rates is None):
            raise ValueError("Exactly one of flat_forward and forward_rates is required")
        if self.forward_rates is not None and len(self.forward_rates) != self.number_of_periods:
            raise ValueError(
                f"forward_rates needs {self.number_of_periods} entries for a "
                f"{self.horizon}y horizon of {self.period_length}y periods"
            )
        return self

    @property
    def number_of_periods(self) -> int:
        return int(round(self.horizon / self.period_length))

    def tenor_structure(self) -> list[float]:
        return [i * self.period_length for i in range(self.number_of_periods + 1)]

    def initial_forwards(self) -> list[float]:
        if self.forward_rates is not None:
            return list(self.forward_rates)
        return [float(self.flat_forward)] * self.number_of_periods


class CurveSettings(BaseModel):
    """OIS discount curve: a flat zero rate or explicit pillars."""

    model_config = ConfigDict(extra="forbid")

    flat_rate: Optional[float] = Field(default=None, description="Continuously compounded zero rate")
    times: Optional[list[float]] = Field(default=None, description="Pillar times")
    discount_factors: Optional[list[float]] = Field(default=None, description="Discount factors at the pillars")

    @model_validator(mode="after")
    def validate_pillars(self) -> "CurveSettings":
        explicit = self.times is not None or self.discount_factors is not None
        if explicit and self.flat_rate is not None:
            raise ValueError("Give either flat_rate or pillars, not both")
        if explicit and (
            self.times is None or self.discount_factors is None or len(self.times) != len(self.discount_factors)
        ):
            raise ValueError("times and discount_factors must have equal length")
        if not explicit and self.flat_rate is None:
            raise ValueError("A curve needs flat_rate or pillars")
        return self


class ProductSettings(BaseModel):
    """Interest rate product to margin."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["swap", "swaption", "bermudan", "bond"] = "swap"
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    fixed_rate: float = Field(default=0.0, description="Fixed rate of the swap leg")
    start: float = Field(default=0.0, ge=0, description="Start or exercise date")
    maturity: float = Field(gt=0, description="Final maturity")
    notional: float = Field(default=1.0, gt=0)
    payer: bool = Field(default=True, description="Pay fixed, receive LIBOR")
    analytic_discount_sensitivities: bool = Field(
        default=False, description="Closed-form OIS curve sensitivities of a swap"
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def validate_dates(self) -> "ProductSettings":
        if self.type != "bond" and self.maturity <= self.start:
            raise ValueError("maturity must be after start")
        if self.analytic_discount_sensitivities and self.type != "swap":
            raise ValueError("analytic_discount_sensitivities is only available for swaps")
        return self


class MarginSettings(BaseModel):
    """SIMM margin calculation choices."""

    model_config = ConfigDict(extra="forbid")

    calculation_currency: Optional[str] = Field(default_factory=_default("margin.calculation_currency"))
    sensitivity_mode: SensitivityMode = Field(
        default_factory=_default("margin.sensitivity_mode", SensitivityMode)
    )
    weight_mode: WeightMode = Field(default_factory=_default("margin.weight_mode", WeightMode))
    interpolation_step: float = Field(default_factory=_default("margin.interpolation_step"), gt=0)
    consider_ois_sensitivities: bool = Field(default_factory=_default("margin.consider_ois_sensitivities"))


class MVASettings(BaseModel):
    """MVA integration settings."""

    model_config = ConfigDict(extra="forbid")

    time_step: float = Field(default_factory=_default("mva.time_step"), gt=0, description="Spacing of the margin profile")
    funding_spread: float = Field(default_factory=_default("mva.funding_spread"), description="Margin funding spread over OIS")
    mode: MVAMode = Field(default_factory=_default("mva.mode", MVAMode))


class AppConfig(BaseModel):
    """Top-level configuration container for margin runs."""

    model_config = ConfigDict(extra="forbid")

    seed: int = Field(default_factory=_default("seed"), ge=0, description="Seed for PRNG initialisation")
    model: ModelSettings
    curve: Optional[CurveSettings] = None
    product: ProductSettings
    margin: MarginSettings = Field(default_factory=MarginSettings)
    mva: MVASettings = Field(default_factory=MVASettings)

    @model_validator(mode="after")
    def validate_horizon(self) -> "AppConfig":
        if self.product.maturity > self.model.horizon + 1e-10:
            raise ValueError("product maturity exceeds the model horizon")
        return self

    def build_model(self):
        """Simulate the configured :class:`~simmva.models.LIBORMonteCarloSimulation`."""
        from simmva.models import (
            DiscountCurve,
            LIBORMonteCarloSimulation,
            LMMParams,
            create_correlation_matrix,
            simple_volatility_structure,
        )

        settings = self.model
        n_rates = settings.number_of_periods
        params = LMMParams(
            forward_rates=settings.initial_forwards(),
            tenor_structure=settings.tenor_structure(),
            volatility_fn=simple_volatility_structure(
                settings.volatility, settings.volatility_decay, n_rates
            ),
            correlation_matrix=create_correlation_matrix(
                n_rates, settings.correlation_beta, settings.correlation_rho_infinity
            ),
        )
        discount_curve = None
        if self.curve is not None:
            if self.curve.flat_rate is not None:
                discount_curve = DiscountCurve.flat(self.curve.flat_rate)
            else:
                discount_curve = DiscountCurve(self.curve.times, self.curve.discount_factors)

        times = None
        if settings.time_step is not None:
            steps = int(round(settings.horizon / settings.time_step))
            times = [i * settings.time_step for i in range(steps + 1)]
        return LIBORMonteCarloSimulation(
            params,
            time_discretization=times,
            number_of_paths=settings.paths,
            seed=self.seed,
            discount_curve=discount_curve,
            regression_degree=settings.regression_degree,
        )

    def build_product(self):
        """Instantiate the configured product."""
        from simmva.products import (
            SIMMBermudanSwaption,
            SIMMSwap,
            SIMMSwaption,
            SIMMZeroCouponBond,
        )

        product = self.product
        if product.type == "bond":
            return SIMMZeroCouponBond(
                product.currency, product.maturity, product.notional, regression_ridge=self.model.regression_ridge
            )
        options = {}
        if product.type == "swap":
            product_type = SIMMSwap
            options["analytic_discount_sensitivities"] = product.analytic_discount_sensitivities
        else:
            product_type = {"swaption": SIMMSwaption, "bermudan": SIMMBermudanSwaption}[product.type]
        return product_type(
            product.currency,
            product.fixed_rate,
            product.start,
            product.maturity,
            notional=product.notional,
            payer=product.payer,
            regression_ridge=self.model.regression_ridge,
            **options,
        )


class ConfigValidationError(RuntimeError):
    """Raised when one or more configuration files fail validation."""

    def __init__(self, errors: list[tuple[Path, ValidationError]]):
        message_lines = ["Configuration validation failed:"]
        for path, error in errors:
            message_lines.append(f"- {path}: {error}")
        super().__init__("\n".join(message_lines))
        self.errors = errors


def _load_yaml(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration at {path} must contain a mapping")
    return data


def load_config(path: Path | str) -> AppConfig:
    """Load a configuration file into an :class:`AppConfig`."""
    target = Path(path)
    payload = _load_yaml(target)
    return AppConfig.model_validate(payload)


def discover_config_files(paths: Iterable[Path | str]) -> list[Path]:
    """Discover YAML configuration files from provided paths."""
    discovered: list[Path] = []
    seen = set()
    for raw_path in paths:
        path = Path(raw_path)
        if path.is_file() and path.suffix in {".yml", ".yaml"}:
            candidates = [path]
        elif path.is_dir():
            candidates = sorted(path.rglob("*.yml")) + sorted(path.rglob("*.yaml"))
        else:
            candidates = []
        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved not in seen:
                discovered.append(resolved)
                seen.add(resolved)
    return discovered


def collect_and_validate(paths: Iterable[Path | str]) -> list[AppConfig]:
    """Validate all configuration files under the given paths."""
    files = discover_config_files(paths)
    errors: list[tuple[Path, ValidationError]] = []
    configs: list[AppConfig] = []
    for file in files:
        try:
            configs.append(load_config(file))
        except ValidationError as error:
            errors.append((file, error))
    if errors:
        raise ConfigValidationError(errors)
    return configs


__all__ = [
    "ModelSettings",
    "CurveSettings",
    "ProductSettings",
    "MarginSettings",
    "MVASettings",
    "AppConfig",
    "load_config",
    "discover_config_files",
    "collect_and_validate",
    "ConfigValidationError",
]
