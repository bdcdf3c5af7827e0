"""
Enumerations for the trade cycle.

A cycle walks ``IDLE -> FETCHING -> DECIDING -> HOLDING | SWAPPING ->
COOLDOWN -> IDLE`` and picks exactly one ``TradeAction``.
"""

from __future__ import annotations

from enum import Enum

from enums.swap_direction import SwapDirection


class CycleState(str, Enum):
    """States of the trade controller during one cycle."""

    IDLE = "idle"
    FETCHING = "fetching"
    DECIDING = "deciding"
    HOLDING = "holding"
    SWAPPING = "swapping"
    COOLDOWN = "cooldown"


class TradeAction(str, Enum):
    """Outcome of the decision step."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"

    @property
    def direction(self) -> SwapDirection | None:
        if self is TradeAction.SELL:
            return SwapDirection.A_TO_B
        if self is TradeAction.BUY:
            return SwapDirection.B_TO_A
        return None
