"""Configuration validation utilities for the TWAP sell bot.

These checks cover the shape of a loaded config file. Range checks on the
TWAP parameters happen when the level provider is constructed.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

DAYS_PER_WEEK = 7
SUPPORTED_PRICE_FEEDS = {"fixed", "url", "json"}
SUPPORTED_MODES = {"live", "monitor"}


class ConfigValidationError(ValueError):
    """Raised when configuration validation fails."""


def validate_symbol(config: dict[str, Any]) -> None:
    """Validate trading symbol is present and properly formatted."""
    if "symbol" not in config:
        raise ConfigValidationError("Missing required field: symbol")

    symbol = config["symbol"]
    if not isinstance(symbol, str) or not symbol.strip():
        raise ConfigValidationError("symbol must be a non-empty string")

    # BTC/USDT, BTC-USDT or BTC_USDT
    if not re.match(r"^[A-Z0-9]+[/_-][A-Z0-9]+$", symbol, re.IGNORECASE):
        raise ConfigValidationError(
            "symbol '{symbol}' does not match expected format (e.g., XLM/USDC, "
            "XLM-USDC, or XLM_USDC)".format(symbol=symbol)
        )


def split_symbol(symbol: str) -> tuple[str, str]:
    for delimiter in ("/", "-", "_"):
        if delimiter in symbol:
            base, quote = symbol.split(delimiter, maxsplit=1)
            return base, quote
    raise ValueError(f"Unsupported symbol format: {symbol}")


def _decimal_field(config: dict[str, Any], field: str) -> Decimal:
    value = config[field]
    if isinstance(value, bool):
        raise ConfigValidationError(f"{field} must be a valid number, got: {value}")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc
    if not number.is_finite():
        raise ConfigValidationError(f"{field} must be a finite number, got: {value}")
    return number


def validate_positive_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a positive decimal value."""
    if field not in config or config[field] is None:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    decimal_value = _decimal_field(config, field)
    if decimal_value <= 0:
        raise ConfigValidationError(f"{field} must be positive, got: {decimal_value}")


def validate_non_negative_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a non-negative decimal value."""
    if field not in config or config[field] is None:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    decimal_value = _decimal_field(config, field)
    if decimal_value < 0:
        raise ConfigValidationError(
            f"{field} must be non-negative, got: {decimal_value}"
        )


def validate_number(config: dict[str, Any], field: str, *, required: bool = True) -> None:
    """Validate that a field parses as a number, without range checks."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return
    _decimal_field(config, field)


def validate_integer(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is an integer."""
    if field not in config or (config[field] is None and not required):
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigValidationError(
            f"{field} must be an integer, got: {type(value).__name__}"
        )


def validate_choice(
    config: dict[str, Any], field: str, choices: set[str], *, required: bool = True
) -> None:
    """Validate that a field is one of the allowed choices."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str):
        raise ConfigValidationError(
            f"{field} must be a string, got: {type(value).__name__}"
        )

    if value not in choices:
        choices_str = ", ".join(sorted(choices))
        raise ConfigValidationError(
            f"{field} must be one of [{choices_str}], got: {value}"
        )


def validate_url(config: dict[str, Any], field: str = "url") -> None:
    """Validate that a URL field is properly formatted."""
    if field not in config:
        raise ConfigValidationError(f"Missing required field: {field}")

    url = config[field]
    if not isinstance(url, str) or not url.strip():
        raise ConfigValidationError(f"{field} must be a non-empty string")

    if not re.match(r"^https?://", url, re.IGNORECASE):
        raise ConfigValidationError(
            f"{field} must start with http:// or https://, got: {url}"
        )


def _mapping(config: dict[str, Any], field: str, *, required: bool) -> dict[str, Any] | None:
    if field not in config or config[field] is None:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return None
    value = config[field]
    if not isinstance(value, dict):
        raise ConfigValidationError(f"{field} must be a mapping")
    return value


def validate_price_feed_config(config: dict[str, Any]) -> None:
    feed = _mapping(config, "price_feed", required=True)
    validate_choice(feed, "type", SUPPORTED_PRICE_FEEDS, required=True)
    if feed["type"] == "fixed":
        validate_positive_decimal(feed, "value", required=True)
    else:
        validate_url(feed, "url")
        if feed["type"] == "json":
            path = feed.get("json_path")
            if not isinstance(path, str) or not path.strip():
                raise ConfigValidationError(
                    "price_feed.json_path must be a non-empty string for json feeds"
                )
    validate_positive_decimal(feed, "timeout_sec", required=False)
    validate_integer(feed, "retries", required=False)


def validate_order_constraints_config(config: dict[str, Any]) -> None:
    constraints = _mapping(config, "order_constraints", required=True)
    validate_integer(constraints, "price_precision", required=True)
    validate_integer(constraints, "volume_precision", required=True)
    validate_non_negative_decimal(constraints, "min_base_volume", required=True)
    for field in ("min_quote_volume", "max_base_volume", "max_quote_volume"):
        validate_non_negative_decimal(constraints, field, required=False)

    overrides = _mapping(config, "constraint_overrides", required=False)
    if overrides is not None:
        validate_integer(overrides, "price_precision", required=False)
        validate_integer(overrides, "volume_precision", required=False)
        validate_non_negative_decimal(overrides, "min_base_volume", required=False)
        validate_non_negative_decimal(overrides, "min_quote_volume", required=False)


def validate_sell_twap_config(config: dict[str, Any]) -> None:
    """Validate configuration for the TWAP sell strategy."""
    validate_symbol(config)
    validate_choice(config, "mode", SUPPORTED_MODES, required=False)
    validate_price_feed_config(config)
    validate_order_constraints_config(config)

    filters = config.get("day_of_week_daily_sell_volume_filters")
    if not isinstance(filters, list):
        raise ConfigValidationError(
            "day_of_week_daily_sell_volume_filters must be a list of 7 descriptors"
        )
    if len(filters) != DAYS_PER_WEEK:
        raise ConfigValidationError(
            "day_of_week_daily_sell_volume_filters must contain exactly 7 entries "
            f"(Sunday first), got: {len(filters)}"
        )
    for idx, entry in enumerate(filters):
        if not isinstance(entry, str) or not entry.strip():
            raise ConfigValidationError(
                f"day_of_week_daily_sell_volume_filters[{idx}] must be a non-empty string"
            )

    validate_integer(config, "num_hours_to_sell", required=True)
    validate_integer(config, "parent_bucket_size_seconds", required=True)
    validate_number(
        config,
        "distribute_surplus_over_remaining_intervals_percent_ceiling",
        required=True,
    )
    validate_number(config, "exponential_smoothing_factor", required=True)
    validate_number(config, "min_child_order_size_percent_of_parent", required=True)

    rate_offset = _mapping(config, "rate_offset", required=False)
    if rate_offset is not None:
        validate_number(rate_offset, "percent", required=False)
        validate_number(rate_offset, "absolute", required=False)
        for flag in ("percent_first", "invert"):
            if flag in rate_offset and not isinstance(rate_offset[flag], bool):
                raise ConfigValidationError(f"rate_offset.{flag} must be a boolean")

    validate_non_negative_decimal(config, "max_asset_base", required=True)
    validate_non_negative_decimal(config, "max_asset_quote", required=False)
    validate_positive_decimal(config, "poll_interval_sec", required=False)
    if "use_asyncio" in config and not isinstance(config["use_asyncio"], bool):
        raise ConfigValidationError("use_asyncio must be a boolean")

    fill_store = _mapping(config, "fill_store", required=False)
    if fill_store is not None:
        if "enabled" in fill_store and not isinstance(fill_store["enabled"], bool):
            raise ConfigValidationError("fill_store.enabled must be a boolean")
        url = fill_store.get("database_url")
        if fill_store.get("enabled") and (not isinstance(url, str) or not url.strip()):
            raise ConfigValidationError(
                "fill_store.database_url is required when the fill store is enabled"
            )


def validate_config(config: dict[str, Any], strategy: str | None = None) -> None:
    """
    Validate configuration for a specific strategy.

    Args:
        config: Configuration dictionary
        strategy: Strategy name (only 'sell_twap' is known)

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a dictionary")

    if not config:
        raise ConfigValidationError("Configuration cannot be empty")

    if strategy in (None, "sell_twap"):
        validate_sell_twap_config(config)
    else:
        raise ConfigValidationError(f"Unknown strategy: {strategy}")
