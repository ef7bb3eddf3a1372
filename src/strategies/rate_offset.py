"""Offset applied to the reference price before levels are emitted."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, DivisionByZero, InvalidOperation
from typing import Any, Mapping

from utils.config_validator import ConfigValidationError

ONE = Decimal("1")


def _finite(raw: Mapping[str, Any], key: str) -> Decimal:
    value = raw.get(key, "0")
    try:
        number = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigValidationError(
            f"rate_offset.{key} must be a valid number, got: {value}"
        ) from exc
    if not number.is_finite():
        raise ConfigValidationError(
            f"rate_offset.{key} must be a finite number, got: {value}"
        )
    return number


@dataclass(frozen=True)
class RateOffset:
    percent: Decimal = Decimal("0")
    absolute: Decimal = Decimal("0")
    percent_first: bool = True
    invert: bool = False

    def apply(self, rate: Decimal) -> Decimal:
        """Return ``rate`` adjusted by the offset.

        When ``invert`` is set the offset is applied to ``1 / rate`` and the
        result is inverted back, so percentages act on the inverted quote.
        Raises ValueError when the result is not a finite number.
        """
        original = rate
        try:
            rate = Decimal(str(rate))
            if self.invert:
                rate = ONE / rate
            if self.percent_first:
                rate = rate * (ONE + self.percent) + self.absolute
            else:
                rate = (rate + self.absolute) * (ONE + self.percent)
            if self.invert:
                rate = ONE / rate
        except (DivisionByZero, InvalidOperation) as exc:
            raise ValueError(
                f"rate offset cannot be applied to {original}: {exc!r}"
            ) from exc
        if not rate.is_finite():
            raise ValueError(f"rate offset turned {original} into {rate}")
        return rate

    @classmethod
    def from_config(cls, raw: Mapping[str, Any] | None) -> "RateOffset":
        if not raw:
            return cls()
        return cls(
            percent=_finite(raw, "percent"),
            absolute=_finite(raw, "absolute"),
            percent_first=bool(raw.get("percent_first", True)),
            invert=bool(raw.get("invert", False)),
        )

    def __str__(self) -> str:
        return (
            f"RateOffset[percent={self.percent}, absolute={self.absolute}, "
            f"percent_first={self.percent_first}, invert={self.invert}]"
        )
