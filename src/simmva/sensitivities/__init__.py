"""Sensitivity extraction, projection, bucketing and caching."""
from simmva.sensitivities.buckets import (
    BucketMapper,
    SensitivityMode,
    SIMMSensitivityScheme,
    WeightMode,
    allocate_to_buckets,
)
from simmva.sensitivities.cache import SensitivityCache
from simmva.sensitivities.classification import (
    IR_MATURITY_BUCKETS,
    ProductClass,
    ProductClassification,
    RiskClass,
    SensitivityType,
)
from simmva.sensitivities.gradient import GradientProvider
from simmva.sensitivities.projector import (
    ZERO_BUCKETS_IR,
    CurveSensitivityProjector,
    log_linear_bond_weights,
)

__all__ = [
    "BucketMapper",
    "SensitivityMode",
    "SIMMSensitivityScheme",
    "WeightMode",
    "allocate_to_buckets",
    "SensitivityCache",
    "IR_MATURITY_BUCKETS",
    "ProductClass",
    "ProductClassification",
    "RiskClass",
    "SensitivityType",
    "GradientProvider",
    "ZERO_BUCKETS_IR",
    "CurveSensitivityProjector",
    "log_linear_bond_weights",
]
