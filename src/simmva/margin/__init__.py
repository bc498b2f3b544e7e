"""SIMM margin aggregation, model binding and MVA."""
from simmva.margin.aggregation import SIMMMarginScheme
from simmva.margin.mva import MVAMode, margin_valuation_adjustment
from simmva.margin.orchestrator import MarginConfiguration, MarginOrchestrator, MarginState

__all__ = [
    "SIMMMarginScheme",
    "MVAMode",
    "margin_valuation_adjustment",
    "MarginConfiguration",
    "MarginOrchestrator",
    "MarginState",
]
