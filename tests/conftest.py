from __future__ import annotations

import copy

import pytest

BASE_CONFIG = {
    "symbol": "XLM/USDC",
    "mode": "live",
    "poll_interval_sec": 5,
    "max_asset_base": "5000",
    "max_asset_quote": "1000000",
    "price_feed": {"type": "fixed", "value": "2"},
    "rate_offset": {"percent": "0", "absolute": "0", "percent_first": True},
    "day_of_week_daily_sell_volume_filters": [
        "volume/daily/sell/base/2400/exact"
    ]
    * 7,
    "num_hours_to_sell": 24,
    "parent_bucket_size_seconds": 3600,
    "distribute_surplus_over_remaining_intervals_percent_ceiling": "0.2",
    "exponential_smoothing_factor": "0",
    "min_child_order_size_percent_of_parent": "0.1",
    "order_constraints": {
        "price_precision": 7,
        "volume_precision": 7,
        "min_base_volume": "1",
    },
}


@pytest.fixture
def twap_config() -> dict:
    return copy.deepcopy(BASE_CONFIG)
