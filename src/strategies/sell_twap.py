"""TWAP sell level provider that spreads a daily volume cap across time buckets."""

from __future__ import annotations

import inspect
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence

from engine.fills import FillTracker
from engine.level_provider import ExecutionHistory, FillHandler
from strategies.bucket_scheduler import (
    SECONDS_IN_DAY,
    SECONDS_IN_HOUR,
    BucketSchedule,
    schedule_bucket,
    sunday_first_weekday,
    utc_now,
)
from strategies.rate_offset import RateOffset
from strategies.volume_filter import VolumeFilter
from twap_client.models import Level, OrderConstraints
from twap_client.price_feed import AsyncPriceFeed, PriceFeed, PriceFeedError
from twap_client.pricing import (
    ConstraintViolation,
    clamp_sell_amount,
    quantize_sell_price,
)
from utils.config_validator import ConfigValidationError

LOGGER = logging.getLogger("twap_bot.strategy.sell_twap")

ZERO = Decimal("0")
ONE = Decimal("1")


class TwapConfigError(ConfigValidationError):
    """Raised when a TWAP parameter is out of range."""

    def __init__(self, parameter: str, message: str) -> None:
        super().__init__(message)
        self.parameter = parameter


@dataclass(frozen=True)
class TwapConfig:
    base_asset: str
    quote_asset: str
    day_of_week_filters: tuple[VolumeFilter, ...]
    order_constraints: OrderConstraints
    num_hours_to_sell: int
    parent_bucket_size_seconds: int
    distribute_surplus_over_remaining_intervals_percent_ceiling: Decimal
    exponential_smoothing_factor: Decimal
    min_child_order_size_percent_of_parent: Decimal
    rate_offset: RateOffset = RateOffset()


def validate_twap_config(config: TwapConfig) -> None:
    """Check every TWAP parameter in a fixed order; the first failure wins."""
    hours = config.num_hours_to_sell
    if isinstance(hours, bool) or not isinstance(hours, int) or not 1 <= hours <= 24:
        raise TwapConfigError(
            "num_hours_to_sell",
            "invalid number of hours to sell, expected 0 < num_hours_to_sell <= 24; "
            f"was {hours}",
        )

    size = config.parent_bucket_size_seconds
    if isinstance(size, bool) or not isinstance(size, int) or not 1 <= size <= SECONDS_IN_DAY:
        raise TwapConfigError(
            "parent_bucket_size_seconds",
            "invalid value for parent_bucket_size_seconds, expected "
            f"0 < parent_bucket_size_seconds <= {SECONDS_IN_DAY} (seconds in a day); "
            f"was {size}",
        )
    if SECONDS_IN_DAY % size != 0:
        raise TwapConfigError(
            "parent_bucket_size_seconds",
            "parent_bucket_size_seconds needs to perfectly divide the seconds in a "
            f"day but it does not; seconds in a day is {SECONDS_IN_DAY} and "
            f"parent_bucket_size_seconds was {size}",
        )

    for name in (
        "distribute_surplus_over_remaining_intervals_percent_ceiling",
        "exponential_smoothing_factor",
        "min_child_order_size_percent_of_parent",
    ):
        value = getattr(config, name)
        if (
            not isinstance(value, Decimal)
            or not value.is_finite()
            or not ZERO <= value <= ONE
        ):
            raise TwapConfigError(
                name, f"{name} is invalid, expected 0.0 <= {name} <= 1.0; was {value}"
            )

    if len(config.day_of_week_filters) != 7:
        raise TwapConfigError(
            "day_of_week_filters",
            "expected exactly 7 day-of-week volume filters (Sunday first); "
            f"got {len(config.day_of_week_filters)}",
        )
    for idx, volume_filter in enumerate(config.day_of_week_filters):
        if not volume_filter.is_selling_base():
            raise TwapConfigError(
                "day_of_week_filters",
                f"volume filter at index {idx} was not selling the base asset as "
                f"expected: {volume_filter.config_value}",
            )


@dataclass(frozen=True)
class BucketInfo:
    bucket_id: int
    total_buckets: int
    now: datetime
    seconds_elapsed: int
    vol_filter: VolumeFilter
    daily_limit: Decimal
    schedule: BucketSchedule

    def __str__(self) -> str:
        return (
            f"BucketInfo[ID={self.bucket_id}, totalBuckets={self.total_buckets}, "
            f"now={self.now.isoformat()} (day={self.now.strftime('%A')}, "
            f"secondsElapsed={self.seconds_elapsed}), volFilter={self.vol_filter}, "
            f"dailyLimit={self.daily_limit:.8f}]"
        )


@dataclass(frozen=True)
class BucketAllotment:
    selling_buckets: int
    nominal: Decimal
    smoothed: Decimal
    surplus: Decimal
    surplus_share: Decimal
    sold_before: Decimal
    sold_in_bucket: Decimal
    remaining_daily: Decimal
    target: Decimal
    amount: Decimal
    child_floor: Decimal

    def __str__(self) -> str:
        return (
            f"BucketAllotment[sellingBuckets={self.selling_buckets}, "
            f"nominal={self.nominal:.8f}, smoothed={self.smoothed:.8f}, "
            f"surplus={self.surplus:.8f}, surplusShare={self.surplus_share:.8f}, "
            f"soldBefore={self.sold_before:.8f}, soldInBucket={self.sold_in_bucket:.8f}, "
            f"remainingDaily={self.remaining_daily:.8f}, target={self.target:.8f}, "
            f"amount={self.amount:.8f}, childFloor={self.child_floor:.8f}]"
        )


@dataclass(frozen=True)
class LevelPlan:
    """A sized sell for the current bucket that still needs a price."""

    bucket: BucketInfo
    allotment: BucketAllotment
    amount: Decimal


class SellTwapLevelProvider:
    """Provides at most one sell level per tick, sized by the TWAP schedule."""

    def __init__(
        self,
        start_price_feed: PriceFeed | AsyncPriceFeed,
        config: TwapConfig,
        *,
        history: ExecutionHistory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.start_price_feed = start_price_feed
        self.config = config
        self.history = history
        self.clock = clock

    def get_levels(
        self, max_asset_base: Decimal, max_asset_quote: Decimal
    ) -> list[Level]:
        if inspect.iscoroutinefunction(self.start_price_feed.get_price):
            raise TypeError(
                f"{self.start_price_feed!r} is async; call get_levels_async instead"
            )
        plan = self.plan_level(max_asset_base)
        if plan is None:
            return []
        return self.level_for(plan, self.start_price_feed.get_price(), max_asset_quote)

    async def get_levels_async(
        self, max_asset_base: Decimal, max_asset_quote: Decimal
    ) -> list[Level]:
        """Same as get_levels, awaiting the price feed when it is async."""
        plan = self.plan_level(max_asset_base)
        if plan is None:
            return []
        reference = self.start_price_feed.get_price()
        if inspect.isawaitable(reference):
            reference = await reference
        return self.level_for(plan, reference, max_asset_quote)

    def plan_level(self, max_asset_base: Decimal) -> LevelPlan | None:
        """Size this tick's sell before any price is known."""
        now = self.clock().astimezone(timezone.utc)
        LOGGER.info(
            "get_levels, unix timestamp for 'now' in UTC = %d (%s)",
            int(now.timestamp()),
            now.isoformat(),
        )
        bucket = self.make_bucket_info(now)
        LOGGER.info("bucket info for this update round: %s", bucket)
        if isinstance(self.history, FillTracker):
            self.history.prune(bucket.schedule.day_start)

        allotment = self.compute_allotment(bucket)
        if allotment is None:
            return None
        LOGGER.info("allotment for bucket %d: %s", bucket.bucket_id, allotment)

        amount = allotment.amount
        if amount <= 0 or amount < allotment.child_floor:
            LOGGER.info(
                "Skipping bucket %d: amount %s below child floor %s; "
                "remainder rolls into later buckets.",
                bucket.bucket_id,
                amount,
                allotment.child_floor,
            )
            return None

        max_asset_base = Decimal(str(max_asset_base))
        if max_asset_base < amount:
            LOGGER.info(
                "Clamping amount %s to available base %s", amount, max_asset_base
            )
            amount = max_asset_base
        if amount <= 0:
            LOGGER.info("No base asset available to sell.")
            return None
        return LevelPlan(bucket=bucket, allotment=allotment, amount=amount)

    def level_for(
        self, plan: LevelPlan, reference_price: Decimal, max_asset_quote: Decimal
    ) -> list[Level]:
        """Price a planned sell and fit it to the order constraints."""
        price = self._resolve_price(reference_price)
        bucket_id = plan.bucket.bucket_id
        try:
            amount = clamp_sell_amount(
                price,
                plan.amount,
                self.config.order_constraints,
                max_quote=Decimal(str(max_asset_quote)),
            )
            if amount < plan.allotment.child_floor:
                raise ConstraintViolation(
                    f"clamped amount {amount} is below child floor "
                    f"{plan.allotment.child_floor}"
                )
        except ConstraintViolation as exc:
            LOGGER.info("Dropping level for bucket %d: %s", bucket_id, exc)
            return []

        level = Level(price=price, amount=amount)
        LOGGER.info(
            "Sell level for bucket %d: amount=%s price=%s",
            bucket_id,
            level.amount,
            level.price,
        )
        return [level]

    def get_fill_handlers(self) -> Sequence[FillHandler]:
        if isinstance(self.history, FillHandler):
            return [self.history]
        return []

    def make_bucket_info(self, now: datetime) -> BucketInfo:
        volume_filter = self.config.day_of_week_filters[sunday_first_weekday(now)]
        # CapResolutionError propagates to the caller and aborts the tick
        daily_limit = volume_filter.base_asset_cap_in_base_units()

        schedule = schedule_bucket(now, self.config.parent_bucket_size_seconds)
        return BucketInfo(
            bucket_id=schedule.bucket_id,
            total_buckets=schedule.total_buckets,
            now=now,
            seconds_elapsed=schedule.seconds_elapsed,
            vol_filter=volume_filter,
            daily_limit=daily_limit,
            schedule=schedule,
        )

    def selling_buckets(self, total_buckets: int) -> int:
        selling_seconds = self.config.num_hours_to_sell * SECONDS_IN_HOUR
        return min(
            total_buckets,
            math.ceil(selling_seconds / self.config.parent_bucket_size_seconds),
        )

    def compute_allotment(self, bucket: BucketInfo) -> BucketAllotment | None:
        """Size the current bucket, or return None when nothing may be sold."""
        if bucket.daily_limit <= 0:
            LOGGER.info("Daily limit is zero for %s; market closed today.", bucket.vol_filter)
            return None
        selling_buckets = self.selling_buckets(bucket.total_buckets)
        if bucket.bucket_id >= selling_buckets:
            LOGGER.info(
                "Bucket %d is outside the %d selling hours (%d selling buckets).",
                bucket.bucket_id,
                self.config.num_hours_to_sell,
                selling_buckets,
            )
            return None

        schedule = bucket.schedule
        nominal = bucket.daily_limit / selling_buckets
        factor = self.config.exponential_smoothing_factor
        smoothed = nominal
        sold_before = ZERO
        for idx in range(bucket.bucket_id):
            sold = self.history.base_sold_between(
                schedule.bucket_start(idx), schedule.bucket_end(idx)
            )
            sold_before += sold
            smoothed = factor * sold + (ONE - factor) * smoothed
        sold_in_bucket = self.history.base_sold_between(
            schedule.bucket_start(), schedule.bucket_end()
        )

        remaining_daily = max(ZERO, bucket.daily_limit - sold_before)
        if remaining_daily <= 0:
            LOGGER.info(
                "Daily limit %s already sold (%s); nothing left today.",
                bucket.daily_limit,
                sold_before,
            )
            return None

        surplus = max(ZERO, nominal * bucket.bucket_id - sold_before)
        remaining_buckets = selling_buckets - bucket.bucket_id
        surplus_share = min(
            surplus / remaining_buckets,
            self.config.distribute_surplus_over_remaining_intervals_percent_ceiling
            * remaining_daily,
        )
        target = min(smoothed + surplus_share, remaining_daily)
        amount = max(ZERO, target - sold_in_bucket)
        child_floor = self.config.min_child_order_size_percent_of_parent * nominal

        return BucketAllotment(
            selling_buckets=selling_buckets,
            nominal=nominal,
            smoothed=smoothed,
            surplus=surplus,
            surplus_share=surplus_share,
            sold_before=sold_before,
            sold_in_bucket=sold_in_bucket,
            remaining_daily=remaining_daily,
            target=target,
            amount=amount,
            child_floor=child_floor,
        )

    def _resolve_price(self, reference: Decimal) -> Decimal:
        try:
            price = self.config.rate_offset.apply(reference)
        except ValueError as exc:
            raise PriceFeedError(
                f"could not apply {self.config.rate_offset} to {reference}: {exc}"
            ) from exc
        if price <= 0:
            raise PriceFeedError(
                f"price {price} after {self.config.rate_offset} is not positive "
                f"(reference {reference})"
            )
        return quantize_sell_price(price, self.config.order_constraints)


def make_sell_twap_level_provider(
    start_price_feed: PriceFeed | AsyncPriceFeed,
    config: TwapConfig,
    *,
    history: ExecutionHistory | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> SellTwapLevelProvider:
    """Validate ``config`` and build a provider; no network access happens here."""
    validate_twap_config(config)
    if history is None:
        history = FillTracker(base=config.base_asset, quote=config.quote_asset)
    provider = SellTwapLevelProvider(
        start_price_feed, config, history=history, clock=clock
    )
    LOGGER.info(
        "made sell TWAP level provider for %s/%s: hours=%d bucket=%ds "
        "surplus_ceiling=%s smoothing=%s min_child=%s %s %s",
        config.base_asset,
        config.quote_asset,
        config.num_hours_to_sell,
        config.parent_bucket_size_seconds,
        config.distribute_surplus_over_remaining_intervals_percent_ceiling,
        config.exponential_smoothing_factor,
        config.min_child_order_size_percent_of_parent,
        config.rate_offset,
        config.order_constraints,
    )
    return provider


def describe() -> str:
    return (
        "TWAP sell strategy that spreads a weekday-specific daily volume cap "
        "across fixed time buckets with bounded surplus carry-over and smoothing."
    )
