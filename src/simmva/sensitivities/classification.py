"""SIMM classification of products and sensitivities."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ProductClass(str, Enum):
    """SIMM product class."""

    RATES_FX = "RatesFX"
    CREDIT = "Credit"
    EQUITY = "Equity"
    COMMODITY = "Commodity"


class RiskClass(str, Enum):
    """SIMM risk class."""

    INTEREST_RATE = "InterestRate"
    CREDIT_QUALIFYING = "CreditQualifying"
    CREDIT_NON_QUALIFYING = "CreditNonQualifying"
    EQUITY = "Equity"
    COMMODITY = "Commodity"
    FX = "FX"


class SensitivityType(str, Enum):
    """Type of risk sensitivity."""

    DELTA = "delta"
    VEGA = "vega"
    CURVATURE = "curvature"


# Standard SIMM interest rate vertices, in the order of the bucket arrays.
IR_MATURITY_BUCKETS: Tuple[str, ...] = (
    "2w", "1m", "3m", "6m", "1y", "2y", "3y", "5y", "10y", "15y", "20y", "30y",
)

IR_BUCKET_TIMES: Tuple[float, ...] = (
    14.0 / 365.0, 1.0 / 12.0, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 15.0, 20.0, 30.0,
)


def bucket_index(label: str) -> int:
    """Position of a maturity bucket label (case insensitive) on the IR ladder."""
    try:
        return IR_MATURITY_BUCKETS.index(label.lower())
    except ValueError:
        raise ValueError(
            f"Unknown maturity bucket {label!r}; expected one of {IR_MATURITY_BUCKETS}"
        ) from None


@dataclass(frozen=True)
class ProductClassification:
    """Immutable SIMM classification of a product.

    Attributes
    ----------
    currency : str
        Currency of the product; the IR bucket is implied by it
    product_class : ProductClass
        SIMM product class
    risk_classes : tuple of RiskClass
        Risk classes the product is sensitive to
    curve_index_names : tuple of str
        Curves the product depends on, e.g. ``("OIS", "Libor6m")``
    has_optionality : bool
        Whether vega and curvature apply to the product
    bucket_key : str, optional
        Bucket of non-IR risk; ``None`` for interest rate risk
    """

    currency: str
    product_class: ProductClass = ProductClass.RATES_FX
    risk_classes: Tuple[RiskClass, ...] = (RiskClass.INTEREST_RATE,)
    curve_index_names: Tuple[str, ...] = ("OIS", "Libor6m")
    has_optionality: bool = False
    bucket_key: Optional[str] = field(default=None)

    def __post_init__(self):
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "risk_classes", tuple(RiskClass(rc) for rc in self.risk_classes))
        object.__setattr__(self, "curve_index_names", tuple(self.curve_index_names))
        if not self.curve_index_names:
            raise ValueError("A product needs at least one curve index name")

    def applies_to(self, product_class: ProductClass, risk_class: RiskClass) -> bool:
        """Whether the product contributes to ``risk_class`` within ``product_class``."""
        return product_class == self.product_class and risk_class in self.risk_classes

    def matches_curve(self, curve_index_name: Optional[str], bucket_key: Optional[str]) -> bool:
        """Whether an interest rate query names one of the product's curves in its currency."""
        return (
            curve_index_name in self.curve_index_names
            and (bucket_key or "").upper() == self.currency
        )


__all__ = [
    "ProductClass",
    "RiskClass",
    "SensitivityType",
    "IR_MATURITY_BUCKETS",
    "IR_BUCKET_TIMES",
    "bucket_index",
    "ProductClassification",
]
