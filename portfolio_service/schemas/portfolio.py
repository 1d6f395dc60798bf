"""Pydantic schemas for reconciled portfolio views.

Money values are Decimals and serialize as JSON strings, so clients get
the exact figures the engine computed.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field

from portfolio_service.engine.reconciler import ControllerState, ReconciledView
from portfolio_service.engine.valuation import TradeState


class BaselineUpdate(BaseModel):
    initial_balance: float = Field(allow_inf_nan=False)


class BaselineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    owner_id: str
    initial_balance: float
    updated_at: datetime


class TradeValuationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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


class SnapshotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    baseline: Decimal
    realized_profit: Decimal
    realized_loss: Decimal
    unrealized_pnl: Decimal
    current_equity: Decimal
    net_change: Decimal
    percent_change: Decimal
    win_rate: Decimal
    average_risk_reward: Decimal
    risk_reward_samples: int
    has_risk_reward: bool
    open_count: int
    closed_profit_count: int
    closed_loss_count: int
    trades: list[TradeValuationRead]


class PortfolioViewRead(BaseModel):
    owner_id: str
    state: ControllerState
    version: int
    stale: bool
    error: str | None = None
    computed_at: datetime
    snapshot: SnapshotRead

    @classmethod
    def from_view(cls, view: ReconciledView, state: ControllerState) -> "PortfolioViewRead":
        return cls(
            owner_id=view.owner_id,
            state=state,
            version=view.version,
            stale=view.stale,
            error=view.error,
            computed_at=view.computed_at,
            snapshot=SnapshotRead.model_validate(view.snapshot),
        )
