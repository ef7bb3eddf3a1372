"""Capability interfaces shared by the level provider and its callers."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol, Sequence, runtime_checkable

from twap_client.models import Level, Trade


@runtime_checkable
class FillHandler(Protocol):
    def handle_fill(self, trade: Trade) -> None:
        """Record an executed trade; raise on failure."""


@runtime_checkable
class ExecutionHistory(Protocol):
    def base_sold_between(self, start: datetime, end: datetime) -> Decimal:
        """Return base volume sold in ``[start, end)``."""


class LevelProvider(Protocol):
    def get_levels(
        self, max_asset_base: Decimal, max_asset_quote: Decimal
    ) -> list[Level]:
        """Return the sell levels for the current tick."""

    def get_fill_handlers(self) -> Sequence[FillHandler]:
        """Return handlers the caller should feed executed trades into."""
