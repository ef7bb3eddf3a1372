"""Pricing, rounding and order constraint helpers."""

from decimal import ROUND_DOWN, ROUND_UP, Decimal

from twap_client.models import OrderConstraints


class ConstraintViolation(ValueError):
    """Raised when a candidate level cannot satisfy the order constraints."""


def round_up_to_step(quantity: Decimal, step: Decimal) -> Decimal:
    """Round quantity up to the nearest step."""
    quantity = Decimal(str(quantity))
    step = Decimal(str(step))
    if step <= 0:
        return quantity
    multiplier = (quantity / step).to_integral_value(rounding=ROUND_UP)
    return multiplier * step


def round_down_to_step(quantity: Decimal, step: Decimal) -> Decimal:
    """Round quantity down to the nearest step."""
    quantity = Decimal(str(quantity))
    step = Decimal(str(step))
    if step <= 0:
        return quantity
    multiplier = (quantity / step).to_integral_value(rounding=ROUND_DOWN)
    return multiplier * step


def quantize_sell_price(price: Decimal, constraints: OrderConstraints) -> Decimal:
    """Round a sell price up to the market's price precision."""
    return Decimal(str(price)).quantize(constraints.price_step, rounding=ROUND_UP)


def quantize_amount(amount: Decimal, constraints: OrderConstraints) -> Decimal:
    """Round an amount down to the market's volume precision."""
    return Decimal(str(amount)).quantize(constraints.amount_step, rounding=ROUND_DOWN)


def clamp_sell_amount(
    price: Decimal,
    amount: Decimal,
    constraints: OrderConstraints,
    *,
    max_quote: Decimal | None = None,
) -> Decimal:
    """Clamp a sell amount to the base and quote ceilings, then quantize it.

    Raises ConstraintViolation when the clamped amount falls below the
    market minimums.
    """
    price = Decimal(str(price))
    amount = Decimal(str(amount))
    if price <= 0:
        raise ConstraintViolation(f"price must be positive, got {price}")
    if constraints.max_base_volume is not None:
        amount = min(amount, constraints.max_base_volume)
    if constraints.max_quote_volume is not None:
        amount = min(amount, constraints.max_quote_volume / price)
    if max_quote is not None:
        amount = min(amount, Decimal(str(max_quote)) / price)
    amount = quantize_amount(amount, constraints)

    if amount <= 0:
        raise ConstraintViolation(f"amount rounds to zero at price {price}")
    if amount < constraints.min_base_volume:
        raise ConstraintViolation(
            f"amount {amount} is below min_base_volume {constraints.min_base_volume}"
        )
    if (
        constraints.min_quote_volume is not None
        and amount * price < constraints.min_quote_volume
    ):
        raise ConstraintViolation(
            f"notional {amount * price} is below min_quote_volume "
            f"{constraints.min_quote_volume}"
        )
    return amount
