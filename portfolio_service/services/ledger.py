"""Ledger writes: trades, price quotes and baselines.

Every write commits first and then announces itself on the change feed, so
a controller that re-fetches on the notification always sees the new row.
"""

import logging
from datetime import datetime, timezone

from sqlmodel import Session, select

from portfolio_service.models.baseline import Baseline
from portfolio_service.models.price_quote import PriceQuote
from portfolio_service.models.trade import Trade
from portfolio_service.schemas.trade import TradeCreate
from portfolio_service.services.change_feed import (
    PRICES_TOPIC,
    ChangeFeed,
    baseline_topic,
    change_feed,
    trades_topic,
)

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    pass


class TradeNotFoundError(LedgerError):
    def __init__(self, trade_id: int):
        self.trade_id = trade_id
        super().__init__(f"Trade {trade_id} not found")


class TradeAlreadyClosedError(LedgerError):
    def __init__(self, trade_id: int):
        self.trade_id = trade_id
        super().__init__(f"Trade {trade_id} is already closed")


# ---------------------------------------------------------------------------
# Trades
# ---------------------------------------------------------------------------

def list_trades(
    session: Session,
    owner_id: str | None = None,
    open_only: bool = False,
    limit: int = 200,
    offset: int = 0,
) -> list[Trade]:
    stmt = select(Trade).order_by(Trade.created_at.desc(), Trade.id.desc())
    if owner_id is not None:
        stmt = stmt.where(Trade.owner_id == owner_id)
    if open_only:
        stmt = stmt.where(Trade.closed_price == None)  # noqa: E711
    stmt = stmt.offset(offset).limit(limit)
    return list(session.exec(stmt).all())


def get_trade(session: Session, trade_id: int, owner_id: str | None = None) -> Trade:
    trade = session.get(Trade, trade_id)
    if trade is None or (owner_id is not None and trade.owner_id != owner_id):
        raise TradeNotFoundError(trade_id)
    return trade


def create_trade(session: Session, data: TradeCreate, feed: ChangeFeed = change_feed) -> Trade:
    trade = Trade(**data.model_dump())
    session.add(trade)
    session.commit()
    session.refresh(trade)
    logger.info(
        f"[{trade.owner_id}] Opened trade {trade.id}: {trade.symbol} "
        f"{trade.quantity} @ {trade.entry_price}"
    )
    feed.publish(trades_topic(trade.owner_id))
    return trade


def close_trade(
    session: Session,
    trade_id: int,
    closed_price: float,
    owner_id: str | None = None,
    feed: ChangeFeed = change_feed,
) -> Trade:
    """Record the exit price. The profit/loss classification is derived, not stored."""
    trade = get_trade(session, trade_id, owner_id)
    if trade.closed_price is not None:
        raise TradeAlreadyClosedError(trade_id)

    trade.closed_price = closed_price
    trade.closed_at = datetime.now(timezone.utc)
    session.add(trade)
    session.commit()
    session.refresh(trade)
    logger.info(f"[{trade.owner_id}] Closed trade {trade.id}: {trade.symbol} @ {closed_price}")
    feed.publish(trades_topic(trade.owner_id))
    return trade


def delete_trade(
    session: Session,
    trade_id: int,
    owner_id: str | None = None,
    feed: ChangeFeed = change_feed,
) -> None:
    trade = get_trade(session, trade_id, owner_id)
    owner = trade.owner_id
    session.delete(trade)
    session.commit()
    logger.info(f"[{owner}] Deleted trade {trade_id}")
    feed.publish(trades_topic(owner))


# ---------------------------------------------------------------------------
# Price cache
# ---------------------------------------------------------------------------

def list_quotes(session: Session) -> list[PriceQuote]:
    return list(session.exec(select(PriceQuote).order_by(PriceQuote.symbol)).all())


def upsert_quote(
    session: Session,
    symbol: str,
    price: float,
    feed: ChangeFeed = change_feed,
) -> PriceQuote:
    """Last write wins for a single symbol."""
    quote = session.get(PriceQuote, symbol)
    now = datetime.now(timezone.utc)
    if quote is None:
        quote = PriceQuote(symbol=symbol, price=price, updated_at=now)
    else:
        quote.price = price
        quote.updated_at = now
    session.add(quote)
    session.commit()
    session.refresh(quote)
    feed.publish(PRICES_TOPIC)
    return quote


def replace_quotes(
    session: Session,
    quotes: dict[str, float],
    feed: ChangeFeed = change_feed,
) -> int:
    """Replace the whole quote set in one transaction. Returns the new row count."""
    now = datetime.now(timezone.utc)
    existing = {q.symbol: q for q in session.exec(select(PriceQuote)).all()}

    for symbol, quote in existing.items():
        if symbol not in quotes:
            session.delete(quote)
    for symbol, price in quotes.items():
        quote = existing.get(symbol)
        if quote is None:
            quote = PriceQuote(symbol=symbol, price=price, updated_at=now)
        else:
            quote.price = price
            quote.updated_at = now
        session.add(quote)

    session.commit()
    logger.info(f"Price cache replaced: {len(quotes)} symbols")
    feed.publish(PRICES_TOPIC)
    return len(quotes)


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------

def get_baseline(session: Session, owner_id: str) -> Baseline | None:
    return session.get(Baseline, owner_id)


def set_baseline(
    session: Session,
    owner_id: str,
    initial_balance: float,
    feed: ChangeFeed = change_feed,
) -> Baseline:
    """Explicit user action; the engine never writes baselines."""
    baseline = session.get(Baseline, owner_id)
    now = datetime.now(timezone.utc)
    if baseline is None:
        baseline = Baseline(owner_id=owner_id, initial_balance=initial_balance, updated_at=now)
    else:
        baseline.initial_balance = initial_balance
        baseline.updated_at = now
    session.add(baseline)
    session.commit()
    session.refresh(baseline)
    logger.info(f"[{owner_id}] Baseline set to {initial_balance}")
    feed.publish(baseline_topic(owner_id))
    return baseline
