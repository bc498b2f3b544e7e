"""Term structure models consumed by the margin engine."""
from simmva.models.base import PathwiseValuation, TermStructureModel
from simmva.models.curves import DiscountCurve
from simmva.models.lmm import (
    LIBORMonteCarloSimulation,
    LMMParams,
    create_correlation_matrix,
    simple_volatility_structure,
)

__all__ = [
    "PathwiseValuation",
    "TermStructureModel",
    "DiscountCurve",
    "LIBORMonteCarloSimulation",
    "LMMParams",
    "create_correlation_matrix",
    "simple_volatility_structure",
]
