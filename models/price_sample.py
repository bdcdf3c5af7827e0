"""
A quoted exchange rate observed at one point in time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field


class PriceSample(BaseModel):
    rate: Decimal
    observed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
