"""Exception hierarchy for sensitivity, margin and MVA calculations."""
from __future__ import annotations


class SIMMError(RuntimeError):
    """Base class for errors raised by the margin engine."""


class ValuationError(SIMMError):
    """The underlying Monte Carlo valuation could not be computed.

    Raised when the valuation itself fails or produces non-finite values. The
    failure is not retried: repeating the valuation with unchanged inputs is
    deterministic. The next access after the inputs change computes afresh.
    """


class UnsupportedSensitivityError(SIMMError):
    """A risk type / risk class combination has no implementation yet.

    Distinct from a legitimate zero sensitivity, which is reported as
    ``Supported(0.0)``.
    """

    def __init__(self, risk_class, risk_type: str, curve_index_name: str | None = None):
        self.risk_class = risk_class
        self.risk_type = risk_type
        self.curve_index_name = curve_index_name
        label = getattr(risk_class, "value", risk_class)
        message = f"{risk_type} sensitivities for risk class {label} are not supported"
        if curve_index_name is not None:
            message += f" (curve {curve_index_name})"
        super().__init__(message)


class UnboundProductError(SIMMError):
    """A product was queried for sensitivities before being bound to a model."""


__all__ = [
    "SIMMError",
    "ValuationError",
    "UnsupportedSensitivityError",
    "UnboundProductError",
]
