"""SQL-backed implementations of the controller's source interfaces.

Reads go straight to the database; change notifications come from the
process-wide change feed, which the ledger and the price watcher publish to.
"""

import logging
from decimal import Decimal

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from portfolio_service.engine.reconciler import ReconciliationController
from portfolio_service.engine.valuation import TradeRecord
from portfolio_service.models.baseline import Baseline
from portfolio_service.models.price_quote import PriceQuote
from portfolio_service.models.trade import Trade
from portfolio_service.services.change_feed import (
    PRICES_TOPIC,
    ChangeFeed,
    FeedSubscription,
    baseline_topic,
    change_feed,
    trades_topic,
)
from portfolio_service.utils.money import ZERO, to_decimal

logger = logging.getLogger(__name__)


def trade_to_record(trade: Trade) -> TradeRecord:
    """Detach a DB row into an immutable engine record."""
    return TradeRecord(
        id=trade.id,
        owner_id=trade.owner_id,
        symbol=trade.symbol,
        quantity=to_decimal(trade.quantity),
        entry_price=to_decimal(trade.entry_price),
        stop_loss=to_decimal(trade.stop_loss),
        take_profit=to_decimal(trade.take_profit),
        closed_price=to_decimal(trade.closed_price),
        created_at=trade.created_at,
        closed_at=trade.closed_at,
    )


class SqlTradeSource:
    def __init__(self, db_engine: Engine, feed: ChangeFeed = change_feed):
        self._engine = db_engine
        self._feed = feed

    async def list_trades(self, owner_id: str) -> list[TradeRecord]:
        with Session(self._engine) as session:
            rows = session.exec(select(Trade).where(Trade.owner_id == owner_id)).all()
            return [trade_to_record(row) for row in rows]

    def on_trade_change(self, owner_id: str, callback) -> FeedSubscription:
        return self._feed.subscribe(trades_topic(owner_id), callback)


class SqlPriceSource:
    def __init__(self, db_engine: Engine, feed: ChangeFeed = change_feed):
        self._engine = db_engine
        self._feed = feed

    async def list_quotes(self) -> dict[str, Decimal]:
        """Full quote set; the caller replaces its whole table with it."""
        with Session(self._engine) as session:
            rows = session.exec(select(PriceQuote)).all()
            return {row.symbol: to_decimal(row.price) for row in rows}

    def on_price_change(self, callback) -> FeedSubscription:
        return self._feed.subscribe(PRICES_TOPIC, callback)


class SqlBaselineSource:
    def __init__(self, db_engine: Engine, feed: ChangeFeed = change_feed):
        self._engine = db_engine
        self._feed = feed

    async def get_baseline(self, owner_id: str) -> Decimal:
        with Session(self._engine) as session:
            row = session.get(Baseline, owner_id)
            if row is None:
                return ZERO
            return to_decimal(row.initial_balance)

    def on_baseline_change(self, owner_id: str, callback) -> FeedSubscription:
        return self._feed.subscribe(baseline_topic(owner_id), callback)


def sql_controller_factory(db_engine: Engine, feed: ChangeFeed = change_feed):
    """Build a registry factory producing SQL-backed controllers."""
    trades = SqlTradeSource(db_engine, feed)
    prices = SqlPriceSource(db_engine, feed)
    baselines = SqlBaselineSource(db_engine, feed)

    def factory(owner_id: str) -> ReconciliationController:
        return ReconciliationController(owner_id, trades, prices, baselines)

    return factory
