"""Collaborator interfaces the reconciliation controller depends on.

Any trade ledger, price cache or baseline store can drive a controller as
long as it satisfies these protocols. ``on_*`` callbacks take no arguments
and may be invoked from any thread; they only signal "this source changed,
re-fetch it".
"""

from decimal import Decimal
from enum import Enum
from typing import Callable, Mapping, Protocol, Sequence

from portfolio_service.engine.valuation import TradeRecord

ChangeCallback = Callable[[], None]


class Source(str, Enum):
    TRADES = "trades"
    QUOTES = "quotes"
    BASELINE = "baseline"


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class TradeSource(Protocol):
    async def list_trades(self, owner_id: str) -> Sequence[TradeRecord]: ...

    def on_trade_change(self, owner_id: str, callback: ChangeCallback) -> Subscription: ...


class PriceSource(Protocol):
    async def list_quotes(self) -> Mapping[str, Decimal]: ...

    def on_price_change(self, callback: ChangeCallback) -> Subscription: ...


class BaselineSource(Protocol):
    async def get_baseline(self, owner_id: str) -> Decimal: ...

    def on_baseline_change(self, owner_id: str, callback: ChangeCallback) -> Subscription: ...


class ReconciliationError(Exception):
    """Base for recoverable failures reported by a reconciliation controller."""


class SourceFetchError(ReconciliationError):
    """A collaborator failed to deliver its data. Recoverable."""

    def __init__(self, source: Source, owner_id: str, cause: BaseException):
        self.source = source
        self.owner_id = owner_id
        self.cause = cause
        super().__init__(f"[{owner_id}] failed to fetch {source.value}: {cause}")


class SnapshotComputeError(ReconciliationError):
    """Valuation of the fetched data failed. Cleared by the next successful snapshot."""

    def __init__(self, owner_id: str, cause: BaseException):
        self.owner_id = owner_id
        self.cause = cause
        super().__init__(f"[{owner_id}] failed to compute snapshot: {cause}")
