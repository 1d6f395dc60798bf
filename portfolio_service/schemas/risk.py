"""Pydantic schemas for the risk calculator API."""

from decimal import Decimal
from pydantic import BaseModel, ConfigDict

from portfolio_service.engine.risk import Direction


class RiskRequest(BaseModel):
    # Values are not range-checked here: the calculator itself answers
    # "cannot size" with nulls.
    entry_price: Decimal
    stop_loss: Decimal
    risk_amount: Decimal
    direction: Direction = Direction.LONG
    take_profit: Decimal | None = None
    portfolio_size: Decimal | None = None


class RiskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sizable: bool
    shares: Decimal | None = None
    position_value: Decimal | None = None
    risk_per_unit: Decimal | None = None
    reward_risk_ratio: Decimal | None = None
    portfolio_risk_percent: Decimal | None = None
