"""Run configuration: ml_collections defaults and validated YAML schemas."""
from simmva.config.defaults import ConfigDict, get_config, get_default_config, init_environment
from simmva.config.schemas import (
    AppConfig,
    ConfigValidationError,
    CurveSettings,
    MarginSettings,
    ModelSettings,
    MVASettings,
    ProductSettings,
    collect_and_validate,
    discover_config_files,
    load_config,
)

__all__ = [
    "ConfigDict",
    "get_config",
    "get_default_config",
    "init_environment",
    "AppConfig",
    "ConfigValidationError",
    "CurveSettings",
    "MarginSettings",
    "ModelSettings",
    "MVASettings",
    "ProductSettings",
    "collect_and_validate",
    "discover_config_files",
    "load_config",
]
