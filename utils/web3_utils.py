"""
Small helpers shared by the chain client, the quote service and the swap
controller: unit conversion between human amounts and smallest units, and
router path construction.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_DOWN
from typing import List

from web3 import Web3


def to_raw(amount: Decimal, decimals: int) -> int:
    """Convert a human amount to smallest units, truncating dust below one unit."""
    scaled = (Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
    return int(scaled)


def from_raw(raw: int, decimals: int) -> Decimal:
    """Convert smallest units back to a human amount."""
    return Decimal(int(raw)) / (Decimal(10) ** decimals)


def same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def build_path(token_in: str, token_out: str, intermediate: str) -> List[str]:
    """Return the router path for a swap.

    Pairs that already contain the intermediate asset are routed directly,
    everything else goes through it in two hops.
    """
    if same_address(token_in, intermediate) or same_address(token_out, intermediate):
        hops = [token_in, token_out]
    else:
        hops = [token_in, intermediate, token_out]
    return [Web3.to_checksum_address(h) for h in hops]
