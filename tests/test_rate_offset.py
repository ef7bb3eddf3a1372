from decimal import Decimal

import pytest

from strategies.rate_offset import RateOffset
from utils.config_validator import ConfigValidationError


def test_default_offset_leaves_rate_unchanged():
    offset = RateOffset()

    assert offset.apply(Decimal("1.5")) == Decimal("1.5")


def test_percent_applied_before_absolute():
    offset = RateOffset(percent=Decimal("0.1"), absolute=Decimal("1"))

    assert offset.apply(Decimal("10")) == Decimal("12")


def test_absolute_applied_before_percent():
    offset = RateOffset(
        percent=Decimal("0.1"), absolute=Decimal("1"), percent_first=False
    )

    assert offset.apply(Decimal("10")) == Decimal("12.1")


def test_inverted_offset_acts_on_reciprocal():
    offset = RateOffset(absolute=Decimal("1"), invert=True)

    # 1 / (1/4 + 1) = 0.8
    assert offset.apply(Decimal("4")) == Decimal("0.8")


def test_invert_of_zero_raises_value_error():
    with pytest.raises(ValueError):
        RateOffset(invert=True).apply(Decimal("0"))


def test_from_config():
    offset = RateOffset.from_config(
        {"percent": "0.005", "absolute": 0, "percent_first": False}
    )

    assert offset.percent == Decimal("0.005")
    assert offset.absolute == Decimal("0")
    assert offset.percent_first is False
    assert offset.invert is False
    assert RateOffset.from_config(None) == RateOffset()


@pytest.mark.parametrize("key", ["percent", "absolute"])
@pytest.mark.parametrize("raw", ["nan", "NaN", "Infinity", "-inf"])
def test_from_config_rejects_non_finite_values(key, raw):
    with pytest.raises(ConfigValidationError, match=f"rate_offset.{key}"):
        RateOffset.from_config({key: raw})


def test_non_finite_result_raises_value_error():
    with pytest.raises(ValueError, match="rate offset turned 2"):
        RateOffset(percent=Decimal("NaN")).apply(Decimal("2"))
