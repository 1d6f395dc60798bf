"""Tests for ledger writes, the SQL sources and a database-backed controller."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from portfolio_service.schemas.trade import TradeCreate
from portfolio_service.services import ledger
from portfolio_service.services.change_feed import ChangeFeed
from portfolio_service.services.sources import (
    SqlBaselineSource,
    SqlPriceSource,
    SqlTradeSource,
    sql_controller_factory,
)


@pytest.fixture
def feed():
    return ChangeFeed()


def _open(session, feed, owner="alice", symbol="aapl", quantity=10, entry=100.0, **kwargs):
    data = TradeCreate(owner_id=owner, symbol=symbol, quantity=quantity, entry_price=entry, **kwargs)
    return ledger.create_trade(session, data, feed=feed)


# ---------------------------------------------------------------------------
# 1. Ledger
# ---------------------------------------------------------------------------

class TestTrades:
    def test_create_normalizes_and_announces(self, session, feed):
        events = []
        feed.subscribe("trades.alice", lambda: events.append("trades"))

        trade = _open(session, feed, symbol=" aapl ", stop_loss=90)

        assert trade.id is not None
        assert trade.symbol == "AAPL"
        assert trade.closed_price is None
        assert events == ["trades"]

    def test_close_sets_price_and_timestamp(self, session, feed):
        trade = _open(session, feed)
        closed = ledger.close_trade(session, trade.id, 120.0, feed=feed)

        assert closed.closed_price == 120.0
        assert closed.closed_at is not None

    def test_close_twice_is_rejected(self, session, feed):
        trade = _open(session, feed)
        ledger.close_trade(session, trade.id, 120.0, feed=feed)

        with pytest.raises(ledger.TradeAlreadyClosedError):
            ledger.close_trade(session, trade.id, 130.0, feed=feed)

    def test_owner_mismatch_is_not_found(self, session, feed):
        trade = _open(session, feed, owner="alice")

        with pytest.raises(ledger.TradeNotFoundError):
            ledger.close_trade(session, trade.id, 120.0, owner_id="bob", feed=feed)
        with pytest.raises(ledger.TradeNotFoundError):
            ledger.delete_trade(session, 9999, feed=feed)

    def test_list_filters_by_owner_and_state(self, session, feed):
        a = _open(session, feed, owner="alice")
        _open(session, feed, owner="alice", symbol="msft")
        _open(session, feed, owner="community")
        ledger.close_trade(session, a.id, 110.0, feed=feed)

        assert len(ledger.list_trades(session, owner_id="alice")) == 2
        open_only = ledger.list_trades(session, owner_id="alice", open_only=True)
        assert [t.symbol for t in open_only] == ["MSFT"]
        assert len(ledger.list_trades(session)) == 3

    def test_delete_announces(self, session, feed):
        trade = _open(session, feed)
        events = []
        feed.subscribe("trades.alice", lambda: events.append(1))

        ledger.delete_trade(session, trade.id, feed=feed)

        assert events == [1]
        assert ledger.list_trades(session, owner_id="alice") == []


class TestTradeValidation:
    def test_stop_above_entry_rejected(self):
        with pytest.raises(ValidationError, match="stop_loss must be below entry_price"):
            TradeCreate(owner_id="alice", symbol="AAPL", quantity=1, entry_price=100, stop_loss=105)

    def test_target_below_entry_rejected(self):
        with pytest.raises(ValidationError, match="take_profit must be above entry_price"):
            TradeCreate(owner_id="alice", symbol="AAPL", quantity=1, entry_price=100, take_profit=95)

    @pytest.mark.parametrize("field, value", [("quantity", 0), ("entry_price", -1), ("symbol", "  ")])
    def test_non_positive_or_empty_rejected(self, field, value):
        kwargs = {"owner_id": "alice", "symbol": "AAPL", "quantity": 1, "entry_price": 100}
        kwargs[field] = value
        with pytest.raises(ValidationError):
            TradeCreate(**kwargs)


class TestQuotesAndBaselines:
    def test_upsert_quote_last_write_wins(self, session, feed):
        events = []
        feed.subscribe("prices", lambda: events.append(1))

        ledger.upsert_quote(session, "AAPL", 100.0, feed=feed)
        ledger.upsert_quote(session, "AAPL", 101.5, feed=feed)

        quotes = ledger.list_quotes(session)
        assert [(q.symbol, q.price) for q in quotes] == [("AAPL", 101.5)]
        assert events == [1, 1]

    def test_replace_quotes_drops_unlisted_symbols(self, session, feed):
        ledger.replace_quotes(session, {"AAPL": 100.0, "MSFT": 50.0}, feed=feed)
        count = ledger.replace_quotes(session, {"AAPL": 105.0, "TSLA": 200.0}, feed=feed)

        assert count == 2
        assert {q.symbol: q.price for q in ledger.list_quotes(session)} == {"AAPL": 105.0, "TSLA": 200.0}

    def test_set_baseline_is_per_owner(self, session, feed):
        events = []
        feed.subscribe("baseline.alice", lambda: events.append(1))

        ledger.set_baseline(session, "alice", 10000.0, feed=feed)
        ledger.set_baseline(session, "alice", 12000.0, feed=feed)

        assert ledger.get_baseline(session, "alice").initial_balance == 12000.0
        assert ledger.get_baseline(session, "community") is None
        assert events == [1, 1]


# ---------------------------------------------------------------------------
# 2. SQL sources
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sql_sources_read_decimal_records(db, session, feed):
    _open(session, feed, entry=0.1, quantity=3, stop_loss=0.05)
    ledger.upsert_quote(session, "AAPL", 0.2, feed=feed)

    records = await SqlTradeSource(db, feed).list_trades("alice")
    quotes = await SqlPriceSource(db, feed).list_quotes()

    assert len(records) == 1
    assert records[0].entry_price == Decimal("0.1")
    assert records[0].stop_loss == Decimal("0.05")
    assert records[0].symbol == "AAPL"
    assert quotes == {"AAPL": Decimal("0.2")}


@pytest.mark.asyncio
async def test_missing_baseline_reads_as_zero(db, feed):
    assert await SqlBaselineSource(db, feed).get_baseline("nobody") == 0


# ---------------------------------------------------------------------------
# 3. Database-backed controller
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_controller_follows_ledger_writes(db, session, feed):
    ledger.set_baseline(session, "alice", 10000.0, feed=feed)
    controller = sql_controller_factory(db, feed)("alice")
    views = []
    controller.subscribe(views.append)

    view = await controller.start()
    assert view.snapshot.current_equity == 10000

    trade = _open(session, feed, quantity=10, entry=100.0, stop_loss=90.0)
    await controller.wait_until_settled()
    assert controller.snapshot.open_count == 1
    assert controller.snapshot.price_missing_count == 1

    ledger.upsert_quote(session, "AAPL", 110.0, feed=feed)
    await controller.wait_until_settled()
    assert controller.snapshot.current_equity == 10100

    ledger.close_trade(session, trade.id, 130.0, feed=feed)
    await controller.wait_until_settled()
    snap = controller.snapshot
    assert snap.realized_profit == 300
    assert snap.current_equity == 10300
    assert snap.average_risk_reward == 3
    assert snap.win_rate == 100
    assert len(views) == 4

    await controller.close()
    assert feed.subscriber_count("prices") == 0


@pytest.mark.asyncio
async def test_controllers_are_isolated_by_owner(db, session, feed):
    factory = sql_controller_factory(db, feed)
    mine = factory("alice")
    community = factory("community")
    await mine.start()
    await community.start()

    _open(session, feed, owner="community", quantity=1, entry=50.0)
    await community.wait_until_settled()
    await mine.wait_until_settled()

    assert community.snapshot.open_count == 1
    assert mine.snapshot.open_count == 0
    assert mine.view.version == 1

    await mine.close()
    await community.close()
