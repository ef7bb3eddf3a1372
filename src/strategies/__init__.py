"""Strategy implementations for the TWAP sell bot."""

from .sell_twap import describe as sell_twap_describe

__all__ = [
    "sell_twap_describe",
]
