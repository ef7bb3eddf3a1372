"""SQL-backed fill writer that doubles as the strategy's execution history.

Trades are written to a ``trades`` table keyed by transaction id. Any
SQLAlchemy URL works; SQLite is the default for single-host bots.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BigInteger,
    Column,
    Float,
    Index,
    MetaData,
    String,
    Table,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from twap_client.models import Trade

LOGGER = logging.getLogger("twap_bot.fill_store")

DATE_FORMAT = "%Y/%m/%d"

metadata = MetaData()

trades = Table(
    "trades",
    metadata,
    Column("txid", String(128), primary_key=True),
    Column("date_utc", String(10)),
    Column("timestamp_millis", BigInteger),
    Column("base", String(32)),
    Column("quote", String(32)),
    Column("action", String(8)),
    Column("type", String(16)),
    Column("counter_price", Float),
    Column("base_volume", Float),
    Column("counter_cost", Float),
    Column("fee", Float),
)

Index("date", trades.c.date_utc, trades.c.base, trades.c.quote)


class FillStoreError(RuntimeError):
    """Raised when a fill cannot be written or read back."""


def _millis(t: datetime) -> int:
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return int(t.timestamp() * 1000)


def _checked_float(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(value)


class FillStore:
    """Write fills for one trading pair and sum sold base volume by time window."""

    def __init__(
        self,
        base: str,
        quote: str,
        database_url: str = "sqlite:///fills.db",
        *,
        engine: Engine | None = None,
    ) -> None:
        self.base = base
        self.quote = quote
        try:
            self._engine = engine or create_engine(database_url, pool_pre_ping=True)
            metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise FillStoreError(
                f"could not prepare trades table at {database_url}: {exc}"
            ) from exc
        LOGGER.info("made fill store for %s/%s at %s", base, quote, self._engine.url)

    def handle_fill(self, trade: Trade) -> None:
        timestamp = trade.timestamp.astimezone(timezone.utc)
        row = {
            "txid": trade.transaction_id,
            "date_utc": timestamp.strftime(DATE_FORMAT),
            "timestamp_millis": trade.timestamp_millis,
            "base": trade.base,
            "quote": trade.quote,
            "action": trade.action,
            "type": trade.order_type,
            "counter_price": _checked_float(trade.price),
            "base_volume": _checked_float(trade.volume),
            "counter_cost": _checked_float(trade.cost),
            "fee": _checked_float(trade.fee),
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(trades.insert().values(row))
        except IntegrityError:
            LOGGER.info("trade (txid=%s) already in db; skipping", trade.transaction_id)
            return
        except SQLAlchemyError as exc:
            raise FillStoreError(
                f"could not insert trade (txid={trade.transaction_id}): {exc}"
            ) from exc
        LOGGER.info("wrote trade (txid=%s) to db", trade.transaction_id)

    def base_sold_between(self, start: datetime, end: datetime) -> Decimal:
        query = select(func.coalesce(func.sum(trades.c.base_volume), 0.0)).where(
            trades.c.base == self.base,
            trades.c.quote == self.quote,
            trades.c.action == "sell",
            trades.c.timestamp_millis >= _millis(start),
            trades.c.timestamp_millis < _millis(end),
        )
        try:
            with self._engine.connect() as conn:
                total = conn.execute(query).scalar_one()
        except SQLAlchemyError as exc:
            raise FillStoreError(f"could not read sold volume: {exc}") from exc
        return Decimal(str(total))

    def trades_on(self, day: datetime) -> list[dict[str, Any]]:
        """Return every stored trade for the pair on the UTC date of ``day``."""
        query = (
            select(trades)
            .where(
                trades.c.date_utc == day.astimezone(timezone.utc).strftime(DATE_FORMAT),
                trades.c.base == self.base,
                trades.c.quote == self.quote,
            )
            .order_by(trades.c.timestamp_millis)
        )
        with self._engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(query)]

    def close(self) -> None:
        self._engine.dispose()


def build_fill_store(config: dict[str, Any], base: str, quote: str) -> FillStore | None:
    raw = config.get("fill_store")
    if not isinstance(raw, dict) or not raw.get("enabled", False):
        return None
    return FillStore(base, quote, str(raw["database_url"]))
