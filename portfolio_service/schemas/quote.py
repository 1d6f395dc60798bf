"""Pydantic schemas for the price cache API."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from portfolio_service.engine.valuation import normalize_symbol


class QuoteUpdate(BaseModel):
    price: float = Field(gt=0, allow_inf_nan=False)


class QuoteSetReplace(BaseModel):
    """A complete quote set. Symbols not listed are removed from the cache."""

    quotes: dict[str, float]

    @field_validator("quotes")
    @classmethod
    def _validate_quotes(cls, value: dict[str, float]) -> dict[str, float]:
        cleaned: dict[str, float] = {}
        for symbol, price in value.items():
            key = normalize_symbol(symbol)
            if not key:
                raise ValueError("symbol must not be empty")
            if not price > 0 or price == float("inf"):
                raise ValueError(f"price for {key} must be a positive number")
            cleaned[key] = price
        return cleaned


class QuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    price: float
    updated_at: datetime
