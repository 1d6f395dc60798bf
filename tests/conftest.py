"""Shared fixtures: in-memory database, API client, fake collaborators."""

import os

# Must be set before portfolio_service.config is imported
os.environ["PV_DATABASE_URL"] = "sqlite://"
os.environ["PV_PRICE_POLL_SECONDS"] = "0"

import asyncio
from collections import Counter
from decimal import Decimal

import pytest
from sqlmodel import SQLModel, Session

from portfolio_service.database import engine
from portfolio_service.services.change_feed import ChangeFeed


@pytest.fixture
def db():
    """Fresh schema on the shared in-memory engine for every test."""
    import portfolio_service.models  # noqa: F401

    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(db):
    with Session(db) as s:
        yield s


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from portfolio_service.main import app

    with TestClient(app) as c:
        yield c


class FakeSources:
    """In-memory trade, price and baseline source.

    Fetches can be held open with ``gates`` and made to fail with ``fail``;
    data is read after the gate opens, like a real round trip.
    """

    def __init__(self):
        self.trades = []
        self.quotes: dict[str, Decimal] = {}
        self.baselines: dict[str, Decimal] = {}
        self.feed = ChangeFeed()
        self.gates: dict[str, asyncio.Event] = {}
        self.fail: dict[str, Exception] = {}
        self.fetch_counts = Counter()
        self.in_flight = Counter()
        self.max_in_flight = Counter()

    async def _round_trip(self, name: str):
        self.fetch_counts[name] += 1
        self.in_flight[name] += 1
        self.max_in_flight[name] = max(self.max_in_flight[name], self.in_flight[name])
        try:
            gate = self.gates.get(name)
            if gate is not None:
                await gate.wait()
            if name in self.fail:
                raise self.fail[name]
        finally:
            self.in_flight[name] -= 1

    async def list_trades(self, owner_id):
        await self._round_trip("trades")
        return [t for t in self.trades if t.owner_id == owner_id]

    async def list_quotes(self):
        await self._round_trip("quotes")
        return dict(self.quotes)

    async def get_baseline(self, owner_id):
        await self._round_trip("baseline")
        return self.baselines.get(owner_id, Decimal("0"))

    def on_trade_change(self, owner_id, callback):
        return self.feed.subscribe(f"trades.{owner_id}", callback)

    def on_price_change(self, callback):
        return self.feed.subscribe("prices", callback)

    def on_baseline_change(self, owner_id, callback):
        return self.feed.subscribe(f"baseline.{owner_id}", callback)


@pytest.fixture
def fake_sources():
    return FakeSources()
