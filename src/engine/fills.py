"""In-memory execution tracking for one trading pair."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from twap_client.models import Trade

LOGGER = logging.getLogger("twap_bot.engine.fills")


def _as_utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        return t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


@dataclass
class FillTracker:
    """Records sell fills and answers how much base was sold in a window.

    Acts as both a FillHandler and an ExecutionHistory.
    """

    base: str
    quote: str
    sells: list[tuple[datetime, Decimal]] = field(default_factory=list)
    seen_transaction_ids: dict[str, datetime] = field(default_factory=dict)

    def handle_fill(self, trade: Trade) -> None:
        if trade.base != self.base or trade.quote != self.quote:
            LOGGER.debug(
                "Ignoring fill %s for %s/%s (tracking %s/%s)",
                trade.transaction_id,
                trade.base,
                trade.quote,
                self.base,
                self.quote,
            )
            return
        if trade.action != "sell":
            return
        if trade.transaction_id in self.seen_transaction_ids:
            LOGGER.info("Fill %s already recorded", trade.transaction_id)
            return
        timestamp = _as_utc(trade.timestamp)
        self.seen_transaction_ids[trade.transaction_id] = timestamp
        self.sells.append((timestamp, trade.volume))
        LOGGER.info(
            "Recorded sell fill %s: %s %s @ %s",
            trade.transaction_id,
            trade.volume,
            trade.base,
            trade.price,
        )

    def base_sold_between(self, start: datetime, end: datetime) -> Decimal:
        start_utc = _as_utc(start)
        end_utc = _as_utc(end)
        total = Decimal("0")
        for timestamp, volume in self.sells:
            if start_utc <= timestamp < end_utc:
                total += volume
        return total

    def prune(self, before: datetime) -> int:
        """Forget fills and transaction ids older than ``before``.

        The level provider calls this with the start of the current day on
        every tick, which keeps the tracker bounded to one day of fills.
        Returns how many fills were removed.
        """
        cutoff = _as_utc(before)
        kept = [(ts, volume) for ts, volume in self.sells if ts >= cutoff]
        removed = len(self.sells) - len(kept)
        self.sells = kept
        self.seen_transaction_ids = {
            txid: ts for txid, ts in self.seen_transaction_ids.items() if ts >= cutoff
        }
        if removed:
            LOGGER.debug("Pruned %d fills older than %s", removed, cutoff.isoformat())
        return removed
