"""
Direction of a swap between the two traded assets.

Asset A is the chain's native coin, asset B the ERC-20 token it is paired
with on the router.
"""

from __future__ import annotations

from enum import Enum


class SwapDirection(str, Enum):
    """Which asset is spent and which one is received."""

    A_TO_B = "a_to_b"  # vende nativo, recibe token
    B_TO_A = "b_to_a"  # vende token, recibe nativo

    @property
    def spends_native(self) -> bool:
        return self is SwapDirection.A_TO_B
