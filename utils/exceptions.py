"""
Typed failures raised by the chain client, the swap executor and the
configuration loader.

Every per-cycle failure derives from ``TraderError`` so the trade controller
can contain them at its cycle boundary. ``ConfigurationInvalid`` is the only
one that is fatal, and only at startup.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class TraderError(Exception):
    """Base class for every failure the trading bot reports."""


class InsufficientBalance(TraderError):
    """Spending balance below the requested input; no chain call was made."""

    def __init__(self, symbol: str, have: Decimal, need: Decimal) -> None:
        super().__init__(f"Insufficient {symbol} balance. Have: {have}, Need: {need}")
        self.symbol = symbol
        self.have = have
        self.need = need


class ApprovalFailed(TraderError):
    """The spend approval for the router could not be included."""

    def __init__(self, token: str, reason: str, tx_reference: Optional[str] = None) -> None:
        super().__init__(f"Approval of {token} failed: {reason}")
        self.token = token
        self.reason = reason
        self.tx_reference = tx_reference


class TransactionReverted(TraderError):
    """The chain rejected a call or a transaction (slippage floor, deadline, liquidity)."""

    def __init__(
        self,
        operation: str,
        reason: str = "execution reverted",
        tx_reference: Optional[str] = None,
        block_number: Optional[int] = None,
    ) -> None:
        where = f" tx={tx_reference}" if tx_reference else ""
        super().__init__(f"{operation}: {reason}{where}")
        self.operation = operation
        self.reason = reason
        self.tx_reference = tx_reference
        self.block_number = block_number


class ChainUnavailable(TraderError):
    """Transport level failure talking to the RPC endpoint."""

    def __init__(self, operation: str, original: Optional[BaseException] = None) -> None:
        detail = f": {original}" if original else ""
        super().__init__(f"{operation} unavailable{detail}")
        self.operation = operation
        self.original = original


class ConfigurationInvalid(TraderError):
    """Missing or malformed configuration, detected at startup."""
