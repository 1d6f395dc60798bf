"""PriceQuote model: latest known price per symbol."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class PriceQuote(SQLModel, table=True):
    __tablename__ = "price_quote"

    symbol: str = Field(primary_key=True)
    price: float
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
