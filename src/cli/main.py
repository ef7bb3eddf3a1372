"""CLI entry point for the TWAP sell bot."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from engine.twap_runner import build_provider, run_sell_twap, run_sell_twap_async
from strategies import sell_twap_describe
from strategies.volume_filter import CapResolutionError
from twap_client.price_feed import FixedPriceFeed
from utils.config_validator import ConfigValidationError
from utils.logging_config import LogContext, setup_logging

LOGGER = logging.getLogger("twap_bot.cli")

SUPPORTED_FORMATS = (".json", ".toml", ".yaml", ".yml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="TWAP sell bot CLI")
    parser.add_argument("--version", action="version", version="twap-sell-bot 0.1.0")
    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="Run the TWAP sell loop.")
    _add_common_arguments(start_parser)
    start_parser.add_argument(
        "--structured-logs",
        action="store_true",
        help="Emit JSON log lines.",
    )
    start_parser.add_argument("--log-file", help="Optional log file path.")
    start_parser.add_argument(
        "--instance-id",
        default="default",
        help="Instance identifier stamped on every log line.",
    )
    start_parser.set_defaults(handler=run_start)

    validate_parser = subparsers.add_parser(
        "validate", help="Validate a config file and build the level provider."
    )
    _add_common_arguments(validate_parser)
    validate_parser.set_defaults(handler=run_validate)

    bucket_parser = subparsers.add_parser(
        "bucket", help="Show the bucket and allotment for a timestamp."
    )
    _add_common_arguments(bucket_parser)
    bucket_parser.add_argument(
        "--at",
        help="ISO-8601 timestamp to evaluate (defaults to now, UTC).",
    )
    bucket_parser.set_defaults(handler=run_bucket)
    return parser


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", required=True, help="Path to JSON/TOML/YAML config file."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.handler(args)


def run_start(args: argparse.Namespace) -> int:
    setup_logging(
        level=args.log_level,
        structured=args.structured_logs,
        log_file=args.log_file,
    )
    try:
        config = load_config(Path(args.config).expanduser())
        LOGGER.info("Strategy description: %s", sell_twap_describe())
        with LogContext(strategy="sell_twap", instance_id=args.instance_id):
            if config.get("use_asyncio", False):
                asyncio.run(run_sell_twap_async(config))
            else:
                run_sell_twap(config)
    except ConfigValidationError as exc:
        LOGGER.error("Configuration validation failed: %s", exc)
        return 2
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    except KeyboardInterrupt:
        LOGGER.info("Stopped by user.")
    except Exception as exc:  # pragma: no cover - safeguard for unexpected issues.
        LOGGER.exception("Unexpected error: %s", exc)
        return 3
    return 0


def run_validate(args: argparse.Namespace) -> int:
    setup_logging(level=args.log_level)
    try:
        config = load_config(Path(args.config).expanduser())
        provider = build_provider(config)
    except ConfigValidationError as exc:
        LOGGER.error("Configuration validation failed: %s", exc)
        return 2
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    print(f"Config OK: {provider.config.base_asset}/{provider.config.quote_asset}")
    return 0


def run_bucket(args: argparse.Namespace) -> int:
    setup_logging(level=args.log_level)
    try:
        config = load_config(Path(args.config).expanduser())
        at = parse_timestamp(args.at) if args.at else datetime.now(timezone.utc)
        # bucket sizing never needs a price; keep the feed offline
        provider = build_provider(
            config, price_feed=FixedPriceFeed("1"), clock=lambda: at
        )
        bucket = provider.make_bucket_info(at)
        allotment = provider.compute_allotment(bucket)
    except ConfigValidationError as exc:
        LOGGER.error("Configuration validation failed: %s", exc)
        return 2
    except CapResolutionError as exc:
        LOGGER.error("Could not resolve today's cap: %s", exc)
        return 2
    except (FileNotFoundError, RuntimeError, ValueError) as exc:
        LOGGER.error(str(exc))
        return 2
    print(bucket)
    print(allotment if allotment is not None else "No allotment: nothing to sell now.")
    return 0


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. Ensure the path is correct and readable."
        )
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        supported = ", ".join(SUPPORTED_FORMATS)
        raise ValueError(
            f"Unsupported config format '{suffix}'. Supported formats: {supported}."
        )
    text = config_path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix == ".toml":
            data = load_toml(text)
        else:
            data = load_yaml(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file {config_path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON/TOML/YAML object mapping."
        )
    return data


def load_toml(text: str) -> dict[str, Any]:
    if sys.version_info >= (3, 11):
        import tomllib

        return tomllib.loads(text)
    import tomli

    return tomli.loads(text)


def load_yaml(text: str) -> Any:
    import yaml

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML config: {exc}") from exc


if __name__ == "__main__":
    raise SystemExit(main())
