"""Pydantic schemas for the trade ledger API."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from portfolio_service.engine.risk import Direction, reward_per_unit, risk_per_unit
from portfolio_service.engine.valuation import TradeState, normalize_symbol


class TradeCreate(BaseModel):
    owner_id: str = Field(min_length=1, max_length=64)
    symbol: str = Field(min_length=1, max_length=32)
    quantity: float = Field(gt=0, allow_inf_nan=False)
    entry_price: float = Field(gt=0, allow_inf_nan=False)
    stop_loss: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    take_profit: float | None = Field(default=None, gt=0, allow_inf_nan=False)

    @field_validator("owner_id")
    @classmethod
    def _trim_owner(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        symbol = normalize_symbol(value)
        if not symbol:
            raise ValueError("must not be empty")
        return symbol

    @model_validator(mode="after")
    def _validate_levels(self):
        # Ledger positions are long: the stop sits below the entry, the target above.
        if self.stop_loss is not None and risk_per_unit(self.entry_price, self.stop_loss, Direction.LONG) is None:
            raise ValueError("stop_loss must be below entry_price")
        if self.take_profit is not None and reward_per_unit(self.entry_price, self.take_profit, Direction.LONG) is None:
            raise ValueError("take_profit must be above entry_price")
        return self


class TradeClose(BaseModel):
    closed_price: float = Field(gt=0, allow_inf_nan=False)


class TradeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: str
    symbol: str
    quantity: float
    entry_price: float
    stop_loss: float | None = None
    take_profit: float | None = None
    closed_price: float | None = None
    created_at: datetime
    closed_at: datetime | None = None

    @computed_field
    @property
    def state(self) -> TradeState:
        return TradeState.classify(self.entry_price, self.closed_price)
