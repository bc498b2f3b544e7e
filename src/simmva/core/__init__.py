"""Numerical building blocks shared across the margin engine."""
from simmva.core.autodiff import (
    Array,
    DifferentiableValuation,
    Gradient,
    RiskFactorId,
    pathwise_value_and_grad,
)
from simmva.core.errors import (
    SIMMError,
    UnboundProductError,
    UnsupportedSensitivityError,
    ValuationError,
)
from simmva.core.regression import ConditionalExpectationEstimator, build_basis
from simmva.core.results import UNSUPPORTED, SensitivityResult, Supported, Unsupported
from simmva.core.time_discretization import TimeDiscretization

__all__ = [
    "Array",
    "DifferentiableValuation",
    "Gradient",
    "RiskFactorId",
    "pathwise_value_and_grad",
    "SIMMError",
    "UnboundProductError",
    "UnsupportedSensitivityError",
    "ValuationError",
    "ConditionalExpectationEstimator",
    "build_basis",
    "UNSUPPORTED",
    "SensitivityResult",
    "Supported",
    "Unsupported",
    "TimeDiscretization",
]
