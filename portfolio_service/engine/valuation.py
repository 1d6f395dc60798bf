"""Portfolio valuation engine.

``compute_snapshot`` turns an owner's trades, the latest quote set and the
owner's baseline into a ``ValuationSnapshot``:

    realized profit / loss   from closed trades
    unrealized PnL           from open trades with a known quote
    current equity           baseline + realized + unrealized
    percent change           vs. baseline (0 when the baseline is 0)
    win rate                 profitable closes / all closes
    average risk/reward      over closed trades with a usable stop

The function is pure and total: no I/O, no hidden state, never raises on
bad data. Malformed trades are excluded from every aggregate and flagged
in the per-trade breakdown; open trades without a quote contribute zero
and are flagged ``price_missing``. A trade whose PnL would push a total
outside the Decimal range is treated as malformed too.

Trades are processed in id order so the snapshot is identical for any
permutation of the input.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, DecimalException, localcontext
from enum import Enum
from typing import Any, Iterable, Mapping

from portfolio_service.engine.risk import realized_risk_reward
from portfolio_service.utils.money import HUNDRED, MONEY_CONTEXT, ZERO, positive_decimal, to_decimal


class TradeState(str, Enum):
    OPEN = "open"
    CLOSED_PROFIT = "closed_profit"
    CLOSED_LOSS = "closed_loss"

    @classmethod
    def classify(cls, entry_price: Decimal, closed_price: Decimal | None) -> "TradeState":
        """Derive a trade's state. A close at the entry price counts as profit."""
        if closed_price is None:
            return cls.OPEN
        if closed_price >= entry_price:
            return cls.CLOSED_PROFIT
        return cls.CLOSED_LOSS

    @property
    def is_closed(self) -> bool:
        return self is not TradeState.OPEN


def normalize_symbol(symbol: Any) -> str:
    return str(symbol or "").strip().upper()


@dataclass(frozen=True)
class TradeRecord:
    """Immutable engine-side copy of one trade.

    Numeric fields are expected to be Decimals but are not trusted: the
    engine re-validates every record before using it.
    """

    id: int | str
    owner_id: str
    symbol: str
    quantity: Decimal
    entry_price: Decimal
    stop_loss: Decimal | None = None
    take_profit: Decimal | None = None
    closed_price: Decimal | None = None
    created_at: datetime | None = None
    closed_at: datetime | None = None

    def __post_init__(self):
        object.__setattr__(self, "symbol", normalize_symbol(self.symbol))

    @property
    def is_open(self) -> bool:
        return self.closed_price is None

    @property
    def state(self) -> TradeState:
        """Derived state. Raises ValueError if a closed trade's prices are not numbers."""
        if self.closed_price is None:
            return TradeState.OPEN
        entry = positive_decimal(self.entry_price)
        closed = positive_decimal(self.closed_price)
        if entry is None or closed is None:
            raise ValueError(f"trade {self.id} has invalid prices")
        return TradeState.classify(entry, closed)


@dataclass(frozen=True)
class TradeValuation:
    """Per-trade line of a snapshot.

    ``current_price`` is the quote for open trades and the exit price for
    closed ones. ``pnl`` is realized for closed trades, unrealized for open
    trades with a quote, and None otherwise.
    """

    trade_id: int | str
    symbol: str
    state: TradeState | None
    quantity: Decimal | None = None
    entry_price: Decimal | None = None
    current_price: Decimal | None = None
    pnl: Decimal | None = None
    risk_reward: Decimal | None = None
    price_missing: bool = False
    malformed: str | None = None


@dataclass(frozen=True)
class ValuationSnapshot:
    baseline: Decimal = ZERO
    realized_profit: Decimal = ZERO  # always >= 0
    realized_loss: Decimal = ZERO  # always <= 0
    unrealized_pnl: Decimal = ZERO
    current_equity: Decimal = ZERO
    net_change: Decimal = ZERO
    percent_change: Decimal = ZERO
    win_rate: Decimal = ZERO
    average_risk_reward: Decimal = ZERO
    risk_reward_samples: int = 0
    open_count: int = 0
    closed_profit_count: int = 0
    closed_loss_count: int = 0
    trades: tuple[TradeValuation, ...] = field(default_factory=tuple)

    @property
    def closed_count(self) -> int:
        return self.closed_profit_count + self.closed_loss_count

    @property
    def has_risk_reward(self) -> bool:
        """False means "no data", not a 0 ratio."""
        return self.risk_reward_samples > 0

    @property
    def price_missing_count(self) -> int:
        return sum(1 for t in self.trades if t.price_missing)

    @property
    def malformed_count(self) -> int:
        return sum(1 for t in self.trades if t.malformed)


def _sort_key(trade: TradeRecord):
    # ints before strings so mixed id types still sort deterministically
    if isinstance(trade.id, int):
        return (0, trade.id, "")
    return (1, 0, str(trade.id))


def _normalize_quotes(quotes: Mapping[str, Any] | None) -> dict[str, Decimal]:
    """Uppercase symbols and drop quotes that are not positive numbers."""
    prices: dict[str, Decimal] = {}
    for symbol, price in (quotes or {}).items():
        value = positive_decimal(price)
        if value is not None:
            prices[normalize_symbol(symbol)] = value
    return prices


def _malformed(trade: TradeRecord, reason: str) -> TradeValuation:
    return TradeValuation(
        trade_id=trade.id,
        symbol=trade.symbol,
        state=None,
        quantity=to_decimal(trade.quantity),
        entry_price=to_decimal(trade.entry_price),
        malformed=reason,
    )


def value_trade(trade: TradeRecord, prices: Mapping[str, Decimal]) -> TradeValuation:
    """Value a single trade against an already-normalized quote table."""
    if not trade.symbol:
        return _malformed(trade, "symbol is empty")
    quantity = positive_decimal(trade.quantity)
    if quantity is None:
        return _malformed(trade, "quantity must be a positive number")
    entry = positive_decimal(trade.entry_price)
    if entry is None:
        return _malformed(trade, "entry_price must be a positive number")

    if trade.closed_price is not None:
        closed = positive_decimal(trade.closed_price)
        if closed is None:
            return _malformed(trade, "closed_price must be a positive number")
        try:
            with localcontext(MONEY_CONTEXT):
                pnl = (closed - entry) * quantity
        except DecimalException:
            return _malformed(trade, "pnl out of range")
        return TradeValuation(
            trade_id=trade.id,
            symbol=trade.symbol,
            state=TradeState.classify(entry, closed),
            quantity=quantity,
            entry_price=entry,
            current_price=closed,
            pnl=pnl,
            risk_reward=realized_risk_reward(entry, trade.stop_loss, closed),
        )

    price = prices.get(trade.symbol)
    if price is None:
        return TradeValuation(
            trade_id=trade.id,
            symbol=trade.symbol,
            state=TradeState.OPEN,
            quantity=quantity,
            entry_price=entry,
            price_missing=True,
        )
    try:
        with localcontext(MONEY_CONTEXT):
            pnl = (price - entry) * quantity
    except DecimalException:
        return _malformed(trade, "pnl out of range")
    return TradeValuation(
        trade_id=trade.id,
        symbol=trade.symbol,
        state=TradeState.OPEN,
        quantity=quantity,
        entry_price=entry,
        current_price=price,
        pnl=pnl,
    )


@dataclass(frozen=True)
class _Totals:
    realized_profit: Decimal = ZERO
    realized_loss: Decimal = ZERO
    unrealized: Decimal = ZERO
    open_count: int = 0
    profit_count: int = 0
    loss_count: int = 0
    ratio_sum: Decimal = ZERO
    ratio_count: int = 0

    def add(self, line: TradeValuation, base: Decimal) -> "_Totals":
        """Fold one trade line in.

        Raises DecimalException when a running total, the resulting equity
        or its change against ``base`` would leave the representable range;
        the caller then drops the line instead.
        """
        realized_profit, realized_loss, unrealized = self.realized_profit, self.realized_loss, self.unrealized
        open_count, profit_count, loss_count = self.open_count, self.profit_count, self.loss_count
        ratio_sum, ratio_count = self.ratio_sum, self.ratio_count

        with localcontext(MONEY_CONTEXT):
            if line.state is TradeState.OPEN:
                open_count += 1
                if line.pnl is not None:
                    unrealized += line.pnl
            elif line.state is TradeState.CLOSED_PROFIT:
                profit_count += 1
                realized_profit += line.pnl
            elif line.state is TradeState.CLOSED_LOSS:
                loss_count += 1
                realized_loss += line.pnl

            if line.risk_reward is not None:
                ratio_sum += line.risk_reward
                ratio_count += 1

            equity = base + realized_profit + realized_loss + unrealized
            _ = equity - base

        return _Totals(
            realized_profit, realized_loss, unrealized,
            open_count, profit_count, loss_count,
            ratio_sum, ratio_count,
        )


def compute_snapshot(
    trades: Iterable[TradeRecord],
    quotes: Mapping[str, Any] | None,
    baseline: Any,
) -> ValuationSnapshot:
    """Value a full trade set. See the module docstring for the rules."""
    base = to_decimal(baseline)
    if base is None or not base.is_finite():
        base = ZERO
    prices = _normalize_quotes(quotes)

    totals = _Totals()
    lines: list[TradeValuation] = []
    for trade in sorted(trades, key=_sort_key):
        line = value_trade(trade, prices)
        try:
            totals = totals.add(line, base)
        except DecimalException:
            line = _malformed(trade, "pnl out of range")
        lines.append(line)

    with localcontext(MONEY_CONTEXT):
        equity = base + totals.realized_profit + totals.realized_loss + totals.unrealized
        net_change = equity - base
        try:
            percent_change = ZERO if base == 0 else net_change / base * HUNDRED
        except DecimalException:
            # baseline too small for the change to be expressed as a percentage
            percent_change = ZERO

        closed_count = totals.profit_count + totals.loss_count
        win_rate = ZERO if closed_count == 0 else Decimal(totals.profit_count) / Decimal(closed_count) * HUNDRED
        average_rr = ZERO if not totals.ratio_count else totals.ratio_sum / Decimal(totals.ratio_count)

    return ValuationSnapshot(
        baseline=base,
        realized_profit=totals.realized_profit,
        realized_loss=totals.realized_loss,
        unrealized_pnl=totals.unrealized,
        current_equity=equity,
        net_change=net_change,
        percent_change=percent_change,
        win_rate=win_rate,
        average_risk_reward=average_rr,
        risk_reward_samples=totals.ratio_count,
        open_count=totals.open_count,
        closed_profit_count=totals.profit_count,
        closed_loss_count=totals.loss_count,
        trades=tuple(lines),
    )
