"""Database models."""

from portfolio_service.models.trade import Trade
from portfolio_service.models.price_quote import PriceQuote
from portfolio_service.models.baseline import Baseline

__all__ = [
    "Trade",
    "PriceQuote",
    "Baseline",
]
