"""Tests for the TWAP runner loop."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from engine.fills import FillTracker
from engine.twap_runner import (
    build_order_constraints,
    build_provider,
    run_sell_twap,
    run_sell_twap_async,
    run_tick,
)
from strategies.sell_twap import TwapConfigError
from twap_client.models import Level
from twap_client.price_feed import AsyncGenericPriceFeed, FixedPriceFeed, PriceFeedError
from utils.fill_store import FillStore

NOW = datetime(2024, 1, 3, 0, 30, tzinfo=timezone.utc)


class FailingProvider:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def get_levels(self, max_asset_base, max_asset_quote):
        raise self.exc

    def get_fill_handlers(self):
        return []


def test_build_provider_from_config(twap_config):
    provider = build_provider(twap_config, clock=lambda: NOW)

    assert provider.config.base_asset == "XLM"
    assert provider.config.quote_asset == "USDC"
    assert isinstance(provider.start_price_feed, FixedPriceFeed)
    assert isinstance(provider.history, FillTracker)


def test_build_provider_uses_fill_store_when_enabled(twap_config, tmp_path):
    twap_config["fill_store"] = {
        "enabled": True,
        "database_url": f"sqlite:///{tmp_path / 'fills.db'}",
    }

    provider = build_provider(twap_config, clock=lambda: NOW)

    assert isinstance(provider.history, FillStore)
    assert provider.get_fill_handlers() == [provider.history]
    provider.history.close()


def test_constraint_overrides_are_applied(twap_config):
    twap_config["constraint_overrides"] = {
        "price_precision": 6,
        "volume_precision": 1,
        "min_base_volume": "30",
        "min_quote_volume": "10",
    }

    constraints = build_order_constraints(twap_config)

    assert constraints.price_precision == 6
    assert constraints.volume_precision == 1
    assert constraints.min_base_volume == Decimal("30")
    assert constraints.min_quote_volume == Decimal("10")


def test_out_of_range_parameters_fail_before_loop(twap_config):
    twap_config["num_hours_to_sell"] = 0
    sleeps: list[float] = []

    with pytest.raises(TwapConfigError):
        run_sell_twap(twap_config, sleep=sleeps.append, max_ticks=1, clock=lambda: NOW)

    assert sleeps == []


def test_run_tick_returns_none_on_retryable_error():
    provider = FailingProvider(PriceFeedError("feed down"))

    assert run_tick(provider, Decimal("1"), Decimal("1")) is None


def test_run_tick_propagates_unexpected_errors():
    provider = FailingProvider(ZeroDivisionError("bug"))

    with pytest.raises(ZeroDivisionError):
        run_tick(provider, Decimal("1"), Decimal("1"))


def test_run_sell_twap_emits_levels_each_tick(twap_config):
    emitted: list[list[Level]] = []
    sleeps: list[float] = []

    run_sell_twap(
        twap_config,
        on_levels=emitted.append,
        sleep=sleeps.append,
        max_ticks=3,
        clock=lambda: NOW,
    )

    assert len(emitted) == 3
    assert emitted[0] == [Level(price=Decimal("2"), amount=Decimal("100"))]
    assert sleeps == [5.0, 5.0]


def test_monitor_mode_only_logs_levels(twap_config, caplog):
    twap_config["mode"] = "monitor"
    emitted: list[list[Level]] = []

    with caplog.at_level("INFO", logger="twap_bot.engine.twap_runner"):
        run_sell_twap(
            twap_config,
            on_levels=emitted.append,
            sleep=lambda _: None,
            max_ticks=1,
            clock=lambda: NOW,
        )

    assert emitted == []
    assert "MONITOR: would sell" in caplog.text


def test_loop_survives_failing_ticks(twap_config):
    class FlakyFeed:
        def __init__(self) -> None:
            self.calls = 0

        def get_price(self) -> Decimal:
            self.calls += 1
            if self.calls == 1:
                raise PriceFeedError("first tick fails")
            return Decimal("2")

    emitted: list[list[Level]] = []

    run_sell_twap(
        twap_config,
        on_levels=emitted.append,
        sleep=lambda _: None,
        max_ticks=2,
        clock=lambda: NOW,
        price_feed=FlakyFeed(),
    )

    assert len(emitted) == 1


def test_loop_survives_non_finite_price(twap_config):
    class NanThenGoodFeed:
        def __init__(self) -> None:
            self.prices = [Decimal("NaN"), Decimal("2")]

        def get_price(self) -> Decimal:
            return self.prices.pop(0)

    emitted: list[list[Level]] = []

    run_sell_twap(
        twap_config,
        on_levels=emitted.append,
        sleep=lambda _: None,
        max_ticks=2,
        clock=lambda: NOW,
        price_feed=NanThenGoodFeed(),
    )

    assert emitted == [[Level(price=Decimal("2"), amount=Decimal("100"))]]


@pytest.mark.asyncio
async def test_async_loop_emits_levels_and_closes_feed(twap_config):
    class AsyncFeed:
        def __init__(self) -> None:
            self.calls = 0
            self.closed = False

        async def get_price(self) -> Decimal:
            self.calls += 1
            if self.calls == 1:
                raise PriceFeedError("first tick fails")
            return Decimal("2")

        async def close(self) -> None:
            self.closed = True

    feed = AsyncFeed()
    emitted: list[list[Level]] = []
    sleeps: list[float] = []

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    await run_sell_twap_async(
        twap_config,
        on_levels=emitted.append,
        sleep=record_sleep,
        max_ticks=3,
        clock=lambda: NOW,
        price_feed=feed,
    )

    assert emitted == [[Level(price=Decimal("2"), amount=Decimal("100"))]] * 2
    assert sleeps == [5.0, 5.0]
    assert feed.closed is True


@pytest.mark.asyncio
async def test_async_loop_builds_aiohttp_feed(twap_config, monkeypatch):
    twap_config["price_feed"] = {
        "type": "json",
        "url": "https://prices.example/ticker",
        "json_path": "price",
    }
    built = []
    original = build_provider

    def capture(config, **kwargs):
        provider = original(config, **kwargs)
        built.append(provider)
        return provider

    async def fake_get_price(self) -> Decimal:
        return Decimal("2")

    monkeypatch.setattr("engine.twap_runner.build_provider", capture)
    monkeypatch.setattr(AsyncGenericPriceFeed, "get_price", fake_get_price)
    emitted: list[list[Level]] = []

    await run_sell_twap_async(
        twap_config,
        on_levels=emitted.append,
        max_ticks=1,
        clock=lambda: NOW,
    )

    assert isinstance(built[0].start_price_feed, AsyncGenericPriceFeed)
    assert emitted == [[Level(price=Decimal("2"), amount=Decimal("100"))]]
