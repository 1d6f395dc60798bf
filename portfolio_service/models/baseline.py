"""Baseline model: starting capital per owner scope."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Baseline(SQLModel, table=True):
    __tablename__ = "baseline"

    owner_id: str = Field(primary_key=True)
    initial_balance: float = 0.0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
