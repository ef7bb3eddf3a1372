"""Shared data models for the TWAP sell bot.

Pydantic-based models with validation. Amounts are carried as Decimal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


def _to_decimal(v: Any, *, allow_none: bool = False) -> Decimal | None:
    if v is None:
        if allow_none:
            return None
        raise ValueError("Amount is required")
    try:
        return Decimal(str(v))
    except (ArithmeticError, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {v}") from e


class Level(BaseModel):
    """A single sell level handed to the order placement loop."""

    model_config = ConfigDict(frozen=True)

    price: Decimal
    amount: Decimal

    @field_validator("price", "amount", mode="before")
    @classmethod
    def validate_amounts(cls, v: Any) -> Decimal:
        """Validate price and amount are positive decimals."""
        value = _to_decimal(v)
        if value <= 0:
            raise ValueError("Level price and amount must be positive")
        return value

    @property
    def quote_amount(self) -> Decimal:
        return self.price * self.amount


class ConstraintOverrides(BaseModel):
    """Explicit overrides layered on top of venue order constraints."""

    model_config = ConfigDict(frozen=True)

    price_precision: int | None = None
    volume_precision: int | None = None
    min_base_volume: Decimal | None = None
    min_quote_volume: Decimal | None = None

    @field_validator("min_base_volume", "min_quote_volume", mode="before")
    @classmethod
    def validate_volumes(cls, v: Any) -> Decimal | None:
        return _to_decimal(v, allow_none=True)

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.price_precision,
                self.volume_precision,
                self.min_base_volume,
                self.min_quote_volume,
            )
        )


class OrderConstraints(BaseModel):
    """Tradable size bounds and price/amount granularity for a market."""

    model_config = ConfigDict(frozen=True)

    price_precision: int
    volume_precision: int
    min_base_volume: Decimal
    min_quote_volume: Decimal | None = None
    max_base_volume: Decimal | None = None
    max_quote_volume: Decimal | None = None

    @field_validator("price_precision", "volume_precision")
    @classmethod
    def validate_precision(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"Precision cannot be negative: {v}")
        return v

    @field_validator(
        "min_base_volume",
        "min_quote_volume",
        "max_base_volume",
        "max_quote_volume",
        mode="before",
    )
    @classmethod
    def validate_volumes(cls, v: Any) -> Decimal | None:
        value = _to_decimal(v, allow_none=True)
        if value is not None and value < 0:
            raise ValueError(f"Volume bound cannot be negative: {v}")
        return value

    @model_validator(mode="after")
    def validate_bounds(self) -> "OrderConstraints":
        if (
            self.max_base_volume is not None
            and self.max_base_volume < self.min_base_volume
        ):
            raise ValueError("max_base_volume must be >= min_base_volume")
        if (
            self.max_quote_volume is not None
            and self.min_quote_volume is not None
            and self.max_quote_volume < self.min_quote_volume
        ):
            raise ValueError("max_quote_volume must be >= min_quote_volume")
        return self

    @property
    def price_step(self) -> Decimal:
        return Decimal("1").scaleb(-self.price_precision)

    @property
    def amount_step(self) -> Decimal:
        return Decimal("1").scaleb(-self.volume_precision)

    def with_overrides(self, overrides: ConstraintOverrides | None) -> "OrderConstraints":
        """Return a copy with every non-empty override applied."""
        if overrides is None or overrides.is_empty():
            return self
        updates = {
            key: value
            for key, value in overrides.model_dump().items()
            if value is not None
        }
        return OrderConstraints(**{**self.model_dump(), **updates})

    def __str__(self) -> str:
        return (
            f"OrderConstraints[price_precision={self.price_precision}, "
            f"volume_precision={self.volume_precision}, "
            f"min_base_volume={self.min_base_volume}, "
            f"min_quote_volume={self.min_quote_volume}, "
            f"max_base_volume={self.max_base_volume}, "
            f"max_quote_volume={self.max_quote_volume}]"
        )


class Trade(BaseModel):
    """Executed trade reported back to fill handlers."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    timestamp: datetime
    base: str
    quote: str
    action: str
    order_type: str = "limit"
    price: Decimal
    volume: Decimal
    cost: Decimal | None = None
    fee: Decimal | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def validate_timestamp(cls, v: Any) -> datetime:
        """Accept datetimes or unix milliseconds; naive values are UTC."""
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        if isinstance(v, datetime) and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("action", "order_type", mode="before")
    @classmethod
    def normalize_lower(cls, v: Any) -> str:
        return str(v).strip().lower()

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: str) -> str:
        if v not in {"buy", "sell"}:
            raise ValueError(f"Unsupported trade action: {v}")
        return v

    @field_validator("price", "volume", mode="before")
    @classmethod
    def validate_amounts(cls, v: Any) -> Decimal:
        value = _to_decimal(v)
        if value < 0:
            raise ValueError(f"Trade amount cannot be negative: {v}")
        return value

    @field_validator("cost", "fee", mode="before")
    @classmethod
    def validate_optional_amounts(cls, v: Any) -> Decimal | None:
        return _to_decimal(v, allow_none=True)

    @property
    def timestamp_millis(self) -> int:
        return int(self.timestamp.timestamp() * 1000)
