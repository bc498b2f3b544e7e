"""Command line interface for SIMM margin and MVA workflows."""
from __future__ import annotations

import argparse
import json
from typing import Any

import jax.numpy as jnp

from simmva.config import (
    AppConfig,
    ConfigValidationError,
    collect_and_validate,
    discover_config_files,
    get_config,
    init_environment,
    load_config,
)

JsonDict = dict[str, Any]


def _float_sequence(text: str) -> list[float]:
    parts = [p.strip() for p in text.split(",") if p.strip()]
    if not parts:
        raise argparse.ArgumentTypeError("expected at least one numeric value")
    try:
        return [float(p) for p in parts]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _load_app_config(args: argparse.Namespace) -> AppConfig:
    if args.config is None:
        raise ValueError("missing required option '--config'")
    app_config = load_config(args.config)
    overrides = {"seed": app_config.seed}
    if getattr(args, "log_level", None):
        overrides["logging"] = {"level": args.log_level}
    init_environment(get_config(overrides))
    return app_config


def _margin_options(app_config: AppConfig, args: argparse.Namespace) -> JsonDict:
    margin = app_config.margin
    return {
        "calculation_currency": margin.calculation_currency,
        "sensitivity_mode": args.sensitivity_mode or margin.sensitivity_mode,
        "weight_mode": args.weight_mode or margin.weight_mode,
        "interpolation_step": margin.interpolation_step,
        "consider_ois_sensitivities": margin.consider_ois_sensitivities,
    }


def _handle_margin(args: argparse.Namespace) -> JsonDict:
    app_config = _load_app_config(args)
    model = app_config.build_model()
    product = app_config.build_product()
    options = _margin_options(app_config, args)

    times = args.times
    if times is None:
        step = app_config.mva.time_step
        times = [i * step for i in range(int(product.final_maturity / step) + 1)]

    profile = []
    for time in times:
        margin = product.get_initial_margin(time, model, **options)
        profile.append({"time": float(time), "expected_margin": float(jnp.mean(margin))})

    return {
        "product": app_config.product.type,
        "currency": app_config.product.currency,
        "value": product.value_at_time_zero(model),
        "initial_margin": profile,
    }


def _handle_mva(args: argparse.Namespace) -> JsonDict:
    app_config = _load_app_config(args)
    model = app_config.build_model()
    product = app_config.build_product()
    options = _margin_options(app_config, args)

    settings = app_config.mva
    funding_spread = settings.funding_spread if args.funding_spread is None else args.funding_spread
    time_step = settings.time_step if args.time_step is None else args.time_step
    mode = args.mode or settings.mode

    value = product.get_mva(
        model,
        options["calculation_currency"],
        options["sensitivity_mode"],
        options["weight_mode"],
        time_step=time_step,
        funding_spread=funding_spread,
        mva_mode=mode,
        interpolation_step=options["interpolation_step"],
        consider_ois_sensitivities=options["consider_ois_sensitivities"],
    )
    return {"product": app_config.product.type, "funding_spread": funding_spread, "mva": float(value)}


def _handle_validate_configs(args: argparse.Namespace) -> JsonDict:
    files = [str(path) for path in discover_config_files(args.paths)]
    try:
        configs = collect_and_validate(args.paths)
    except ConfigValidationError as error:
        return {
            "valid": False,
            "files": files,
            "errors": [{"file": str(path), "error": str(exc)} for path, exc in error.errors],
        }
    return {"valid": True, "files": files, "count": len(configs)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="simmva", description="SIMM initial margin and MVA CLI")
    subparsers = parser.add_subparsers(dest="command")

    def add_margin_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--config", help="Path to YAML configuration")
        sub.add_argument(
            "--sensitivity-mode",
            dest="sensitivity_mode",
            choices=["exact", "melting", "interpolation"],
            help="How future bucket sensitivities are obtained",
        )
        sub.add_argument(
            "--weight-mode",
            dest="weight_mode",
            choices=["constant", "timedependent"],
            help="Curve used for the market rate Jacobian",
        )
        sub.add_argument("--log-level", dest="log_level", help="Logging level")

    margin_parser = subparsers.add_parser("margin", help="Expected SIMM initial margin profile")
    add_margin_arguments(margin_parser)
    margin_parser.add_argument("--times", type=_float_sequence, help="Evaluation times")
    margin_parser.set_defaults(handler=_handle_margin)

    mva_parser = subparsers.add_parser("mva", help="Margin Valuation Adjustment")
    add_margin_arguments(mva_parser)
    mva_parser.add_argument("--funding-spread", dest="funding_spread", type=float, help="Funding spread over OIS")
    mva_parser.add_argument("--time-step", dest="time_step", type=float, help="Margin profile spacing")
    mva_parser.add_argument("--mode", choices=["exact", "approximation"], help="MVA integration mode")
    mva_parser.set_defaults(handler=_handle_mva)

    validate_parser = subparsers.add_parser("validate-configs", help="Validate YAML configurations")
    validate_parser.add_argument("paths", nargs="+", help="Files or directories to validate")
    validate_parser.set_defaults(handler=_handle_validate_configs)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)

    if handler is None:
        parser.print_help()
        return 1

    result = handler(args)
    print(json.dumps(result, indent=2))
    if result.get("valid") is False:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
