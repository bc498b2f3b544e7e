"""Default run configuration and environment initialisation."""

from __future__ import annotations

import logging
import random
from copy import deepcopy
from typing import Any, Mapping, MutableMapping

import jax
import numpy as np
from ml_collections import ConfigDict

__all__ = ["ConfigDict", "get_config", "get_default_config", "init_environment"]


def get_default_config() -> ConfigDict:
    """Return the canonical configuration for margin and MVA runs."""
    cfg = ConfigDict()
    cfg.seed = 0

    cfg.logging = ConfigDict()
    cfg.logging.level = "INFO"
    cfg.logging.format = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    cfg.logging.datefmt = "%Y-%m-%d %H:%M:%S"
    cfg.logging.force = True

    # Path-wise adjoints are compared against finite differences in float64
    cfg.jax = ConfigDict()
    cfg.jax.enable_x64 = True

    cfg.simulation = ConfigDict()
    cfg.simulation.paths = 1000
    cfg.simulation.time_step = None  # tenor dates only

    cfg.regression = ConfigDict()
    cfg.regression.degree = 2
    cfg.regression.ridge = 1e-8

    cfg.margin = ConfigDict()
    cfg.margin.calculation_currency = None  # product currency
    cfg.margin.sensitivity_mode = "exact"
    cfg.margin.weight_mode = "timedependent"
    cfg.margin.interpolation_step = 1.0
    cfg.margin.consider_ois_sensitivities = True

    cfg.mva = ConfigDict()
    cfg.mva.time_step = 1.0
    cfg.mva.funding_spread = 0.0
    cfg.mva.mode = "exact"

    return cfg


def get_config(overrides: Mapping[str, Any] | None = None) -> ConfigDict:
    """Create a configuration, optionally applying ``overrides``."""
    cfg = get_default_config()
    if overrides:
        _deep_update(cfg, overrides)
    return cfg


def init_environment(config: ConfigDict | Mapping[str, Any] | None = None) -> ConfigDict:
    """Seed all libraries and configure logging based on ``config``."""
    if config is None:
        cfg = get_default_config()
    elif isinstance(config, ConfigDict):
        cfg = config.copy_and_resolve_references()
    else:
        cfg = get_config(deepcopy(dict(config)))

    seed = int(cfg.get("seed", 0))
    random.seed(seed)
    np.random.seed(seed)
    cfg.runtime = ConfigDict()
    cfg.runtime.seed = seed
    cfg.runtime.jax_key = jax.random.PRNGKey(seed)

    logging_cfg = cfg.get("logging", {})
    level = logging_cfg.get("level", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=logging_cfg.get("format", None),
        datefmt=logging_cfg.get("datefmt", None),
        force=logging_cfg.get("force", False),
    )

    jax_cfg = cfg.get("jax", {})
    enable_x64 = jax_cfg.get("enable_x64")
    if enable_x64 is not None:
        jax.config.update("jax_enable_x64", bool(enable_x64))

    return cfg


def _deep_update(target: MutableMapping[str, Any], updates: Mapping[str, Any]) -> None:
    for key, value in updates.items():
        if isinstance(value, Mapping):
            if not isinstance(target.get(key), ConfigDict):
                target[key] = ConfigDict()
            _deep_update(target[key], value)
        else:
            target[key] = value
