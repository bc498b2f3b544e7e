"""SIMM initial margin and MVA for interest rate products under Monte Carlo."""

from simmva.core import SIMMError, Supported, UNSUPPORTED, Unsupported
from simmva.margin import MarginOrchestrator, MVAMode
from simmva.models import DiscountCurve, LIBORMonteCarloSimulation, LMMParams
from simmva.products import (
    SIMMBermudanSwaption,
    SIMMProduct,
    SIMMSwap,
    SIMMSwaption,
    SIMMZeroCouponBond,
)
from simmva.sensitivities import SensitivityMode, WeightMode

__version__ = "0.1.0"

__all__ = [
    "SIMMError",
    "Supported",
    "Unsupported",
    "UNSUPPORTED",
    "MarginOrchestrator",
    "MVAMode",
    "DiscountCurve",
    "LIBORMonteCarloSimulation",
    "LMMParams",
    "SIMMProduct",
    "SIMMSwap",
    "SIMMSwaption",
    "SIMMBermudanSwaption",
    "SIMMZeroCouponBond",
    "SensitivityMode",
    "WeightMode",
    "__version__",
]
