"""Runner utilities for the TWAP sell strategy."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable

from engine.level_provider import ExecutionHistory, LevelProvider
from strategies.bucket_scheduler import utc_now
from strategies.rate_offset import RateOffset
from strategies.sell_twap import (
    SellTwapLevelProvider,
    TwapConfig,
    make_sell_twap_level_provider,
)
from strategies.volume_filter import CapResolutionError, VolumeFilter, parse_volume_filter
from twap_client.models import ConstraintOverrides, Level, OrderConstraints
from twap_client.price_feed import (
    AsyncPriceFeed,
    PriceFeed,
    PriceFeedError,
    make_price_feed,
)
from twap_client.rest import RestError
from utils.config_validator import split_symbol, validate_sell_twap_config
from utils.fill_store import FillStoreError, build_fill_store

LOGGER = logging.getLogger("twap_bot.engine.twap_runner")

LevelSink = Callable[[list[Level]], None]

RETRYABLE_TICK_ERRORS = (CapResolutionError, PriceFeedError, RestError, FillStoreError)


def build_order_constraints(config: dict[str, Any]) -> OrderConstraints:
    raw = config["order_constraints"]
    constraints = OrderConstraints(
        price_precision=int(raw["price_precision"]),
        volume_precision=int(raw["volume_precision"]),
        min_base_volume=raw["min_base_volume"],
        min_quote_volume=raw.get("min_quote_volume"),
        max_base_volume=raw.get("max_base_volume"),
        max_quote_volume=raw.get("max_quote_volume"),
    )
    overrides_raw = config.get("constraint_overrides")
    if isinstance(overrides_raw, dict):
        constraints = constraints.with_overrides(ConstraintOverrides(**overrides_raw))
    return constraints


def build_volume_filters(config: dict[str, Any]) -> tuple[VolumeFilter, ...]:
    return tuple(
        parse_volume_filter(entry)
        for entry in config["day_of_week_daily_sell_volume_filters"]
    )


def build_twap_config(config: dict[str, Any]) -> TwapConfig:
    base_asset, quote_asset = split_symbol(config["symbol"])
    return TwapConfig(
        base_asset=base_asset,
        quote_asset=quote_asset,
        day_of_week_filters=build_volume_filters(config),
        order_constraints=build_order_constraints(config),
        num_hours_to_sell=config["num_hours_to_sell"],
        parent_bucket_size_seconds=config["parent_bucket_size_seconds"],
        distribute_surplus_over_remaining_intervals_percent_ceiling=Decimal(
            str(config["distribute_surplus_over_remaining_intervals_percent_ceiling"])
        ),
        exponential_smoothing_factor=Decimal(
            str(config["exponential_smoothing_factor"])
        ),
        min_child_order_size_percent_of_parent=Decimal(
            str(config["min_child_order_size_percent_of_parent"])
        ),
        rate_offset=RateOffset.from_config(config.get("rate_offset")),
    )


def build_provider(
    config: dict[str, Any],
    *,
    price_feed: PriceFeed | AsyncPriceFeed | None = None,
    history: ExecutionHistory | None = None,
    clock: Callable[[], datetime] = utc_now,
    use_asyncio: bool = False,
) -> SellTwapLevelProvider:
    """Validate ``config`` and assemble a provider; raises ConfigValidationError."""
    validate_sell_twap_config(config)
    twap_config = build_twap_config(config)
    if price_feed is None:
        price_feed = make_price_feed(config["price_feed"], use_asyncio=use_asyncio)
    if history is None:
        history = build_fill_store(
            config, twap_config.base_asset, twap_config.quote_asset
        )
    return make_sell_twap_level_provider(
        price_feed, twap_config, history=history, clock=clock
    )


def run_tick(
    provider: LevelProvider,
    max_asset_base: Decimal,
    max_asset_quote: Decimal,
    on_levels: LevelSink | None = None,
) -> list[Level] | None:
    """Evaluate one tick; return None when the tick failed and should be retried."""
    try:
        levels = provider.get_levels(max_asset_base, max_asset_quote)
    except RETRYABLE_TICK_ERRORS as exc:
        LOGGER.warning("Tick failed, retrying next tick: %s", exc, exc_info=True)
        return None
    if on_levels is not None:
        on_levels(levels)
    return levels


def log_levels(levels: list[Level]) -> None:
    if not levels:
        LOGGER.info("No sell levels this tick.")
    for level in levels:
        LOGGER.info("MONITOR: would sell %s @ %s", level.amount, level.price)


def run_sell_twap(
    config: dict[str, Any],
    *,
    on_levels: LevelSink | None = None,
    sleep: Callable[[float], None] = time.sleep,
    max_ticks: int | None = None,
    clock: Callable[[], datetime] = utc_now,
    price_feed: PriceFeed | None = None,
) -> None:
    provider = build_provider(config, price_feed=price_feed, clock=clock)
    mode = config.get("mode", "live")
    if mode == "monitor" or on_levels is None:
        on_levels = log_levels
    max_asset_base = Decimal(str(config["max_asset_base"]))
    max_asset_quote = Decimal(str(config.get("max_asset_quote", "Infinity")))
    poll_interval = float(config.get("poll_interval_sec", 5))
    LOGGER.info(
        "TWAP sell bot running. symbol=%s mode=%s poll_interval_sec=%s",
        config["symbol"],
        mode,
        poll_interval,
    )

    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        run_tick(provider, max_asset_base, max_asset_quote, on_levels)
        ticks += 1
        if max_ticks is not None and ticks >= max_ticks:
            break
        sleep(poll_interval)


async def run_tick_async(
    provider: SellTwapLevelProvider,
    max_asset_base: Decimal,
    max_asset_quote: Decimal,
    on_levels: LevelSink | None = None,
) -> list[Level] | None:
    """Async counterpart of run_tick."""
    try:
        levels = await provider.get_levels_async(max_asset_base, max_asset_quote)
    except RETRYABLE_TICK_ERRORS as exc:
        LOGGER.warning("Tick failed, retrying next tick: %s", exc, exc_info=True)
        return None
    if on_levels is not None:
        on_levels(levels)
    return levels


async def run_sell_twap_async(
    config: dict[str, Any],
    *,
    on_levels: LevelSink | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    max_ticks: int | None = None,
    clock: Callable[[], datetime] = utc_now,
    price_feed: PriceFeed | AsyncPriceFeed | None = None,
) -> None:
    """Event-loop variant of run_sell_twap; url and json feeds use aiohttp."""
    provider = build_provider(
        config, price_feed=price_feed, clock=clock, use_asyncio=True
    )
    mode = config.get("mode", "live")
    if mode == "monitor" or on_levels is None:
        on_levels = log_levels
    max_asset_base = Decimal(str(config["max_asset_base"]))
    max_asset_quote = Decimal(str(config.get("max_asset_quote", "Infinity")))
    poll_interval = float(config.get("poll_interval_sec", 5))
    LOGGER.info(
        "TWAP sell bot running on asyncio. symbol=%s mode=%s poll_interval_sec=%s",
        config["symbol"],
        mode,
        poll_interval,
    )

    ticks = 0
    try:
        while max_ticks is None or ticks < max_ticks:
            await run_tick_async(provider, max_asset_base, max_asset_quote, on_levels)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            await sleep(poll_interval)
    finally:
        close = getattr(provider.start_price_feed, "close", None)
        if close is not None:
            closing = close()
            if inspect.isawaitable(closing):
                await closing
