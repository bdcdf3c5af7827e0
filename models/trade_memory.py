"""
In-memory state of the trading loop and the per-cycle report.

Nothing here is persisted; a restart starts from a blank ``TradeMemory``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from enums.cycle_state import CycleState, TradeAction
from models.asset import Balances
from models.swap import SwapResult


class TradeMemory(BaseModel):
    """What the bot remembers between cycles.

    ``last_buy_price`` is only a profit baseline, never an inventory ledger:
    position sizes always come from live balance reads.
    """

    last_buy_price: Optional[Decimal] = None
    last_trade_at: Optional[datetime] = None


class TradeDecision(BaseModel):
    action: TradeAction
    amount: Decimal = Decimal("0")
    estimated_profit: Optional[Decimal] = None
    reason: str = ""


class CycleOutcome(BaseModel):
    """Report of one decision cycle, successful or not."""

    state: CycleState = CycleState.IDLE
    balances: Optional[Balances] = None
    rate: Optional[Decimal] = None
    short_ma: Optional[Decimal] = None
    long_ma: Optional[Decimal] = None
    decision: Optional[TradeDecision] = None
    swap_attempted: bool = False
    result: Optional[SwapResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
