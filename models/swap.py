"""
Value objects exchanged with the swap controller and the chain client.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from enums.swap_direction import SwapDirection


class SwapRequest(BaseModel):
    """One swap intent. Built fresh for every call and never mutated."""

    model_config = ConfigDict(frozen=True)

    direction: SwapDirection
    input_amount: Decimal = Field(gt=0)
    slippage_bps: int = Field(ge=0, lt=10000)
    deadline_seconds: int = Field(gt=0)


class TxInclusion(BaseModel):
    """Receipt data of a transaction once it is included in a block."""

    tx_reference: str
    block_number: int
    gas_used: int = 0
    effective_gas_price: int = 0

    @property
    def gas_cost_wei(self) -> int:
        return self.gas_used * self.effective_gas_price


class SwapResult(BaseModel):
    direction: SwapDirection
    input_amount: Decimal
    expected_output: Decimal
    min_output: Decimal
    output_amount_realized: Decimal
    tx_reference: str
    block_of_inclusion: int
    approval_tx: str | None = None
