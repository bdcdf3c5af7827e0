"""
Assets of the traded pair and the wallet balances read for them.

Asset A is the native coin. It is quoted on the router through its wrapped
ERC-20, so ``Asset.address`` holds the wrapped address for it.
"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from enums.swap_direction import SwapDirection
from utils.web3_utils import from_raw, to_raw


class Asset(BaseModel):
    address: str
    symbol: str
    decimals: int
    is_native: bool = False

    def to_raw(self, amount: Decimal) -> int:
        return to_raw(amount, self.decimals)

    def from_raw(self, raw: int) -> Decimal:
        return from_raw(raw, self.decimals)


class AssetPair(BaseModel):
    native: Asset  # A
    token: Asset   # B

    def spent(self, direction: SwapDirection) -> Asset:
        return self.native if direction.spends_native else self.token

    def received(self, direction: SwapDirection) -> Asset:
        return self.token if direction.spends_native else self.native


class Balances(BaseModel):
    """Live balances in human units. Always read fresh, never accumulated."""

    native: Decimal
    token: Decimal
