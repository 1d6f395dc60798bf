"""Trade model: one position in an owner's ledger.

Open/closed state is derived from ``closed_price``; there is no stored
status flag that could contradict it.
"""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)  # user id or the community pool id
    symbol: str = Field(index=True)  # uppercase
    quantity: float
    entry_price: float
    stop_loss: float | None = None
    take_profit: float | None = None
    closed_price: float | None = None  # set iff the trade is closed
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    closed_at: datetime | None = None
