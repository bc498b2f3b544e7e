"""Interest rate products with SIMM sensitivities, initial margin and MVA."""
from simmva.products.base import SIMMProduct
from simmva.products.bond import SIMMZeroCouponBond
from simmva.products.swap import SIMMSwap
from simmva.products.swaption import SIMMBermudanSwaption, SIMMSwaption

__all__ = [
    "SIMMProduct",
    "SIMMZeroCouponBond",
    "SIMMSwap",
    "SIMMSwaption",
    "SIMMBermudanSwaption",
]
