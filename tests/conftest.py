import os

# sin ficheros de log durante los tests
os.environ.setdefault("LOG_TO_FILE", "false")

from collections import Counter
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from web3 import Web3

from enums.swap_direction import SwapDirection
from models.asset import Asset, AssetPair
from models.swap import TxInclusion
from services.quote_service import QuoteService
from services.trend_tracker import TrendTracker
from services.wallet_service import WalletSession
from utils.config import TraderConfig
from utils.exceptions import ChainUnavailable, TransactionReverted
from utils.web3_utils import from_raw, same_address, to_raw

WALLET = Web3.to_checksum_address("0x" + "11" * 20)
ROUTER = Web3.to_checksum_address("0x" + "22" * 20)
TOKEN = Web3.to_checksum_address("0x" + "33" * 20)
WRAPPED = Web3.to_checksum_address("0x" + "aa" * 20)
PRIVATE_KEY = "0x" + "11" * 32
TOKEN_DECIMALS = 6


class FakeChain:
    """
    Cliente de cadena en memoria: un pool de precio constante (token por nativo),
    balances de una sola wallet y contadores de llamadas.
    Los swaps se liquidan al enviarse; await_inclusion solo informa del resultado.
    """

    def __init__(
        self,
        native: Decimal = Decimal("10"),
        token: Decimal = Decimal("0"),
        price: Decimal = Decimal("2"),
    ) -> None:
        self.address = WALLET
        self.router_address = ROUTER
        self.price = Decimal(price)
        self.native_raw = to_raw(Decimal(native), 18)
        self.token_raw = to_raw(Decimal(token), TOKEN_DECIMALS)
        self.allowances: Dict[str, int] = {}
        self.calls: Counter = Counter()
        self.swaps: List[dict] = []
        self.approvals: List[dict] = []
        self.block = 100
        self._pending: Dict[str, bool] = {}

        # inyección de fallos
        self.fill_ratio = Decimal("1")
        self.revert_swap = False
        self.revert_approval = False
        self.quote_error: Optional[Exception] = None
        self.gas_used = 0
        self.gas_price = 0

    # ---- helpers ----
    def set_balances(self, native: Decimal, token: Decimal) -> None:
        self.native_raw = to_raw(Decimal(native), 18)
        self.token_raw = to_raw(Decimal(token), TOKEN_DECIMALS)

    def _new_tx(self, reverted: bool) -> str:
        ref = "0x" + f"{len(self._pending) + 1:064x}"
        self._pending[ref] = reverted
        return ref

    def _out_for(self, path: List[str], amount_in: int) -> int:
        if same_address(path[0], WRAPPED):
            return to_raw(from_raw(amount_in, 18) * self.price, TOKEN_DECIMALS)
        return to_raw(from_raw(amount_in, TOKEN_DECIMALS) / self.price, 18)

    # ---- lecturas ----
    def get_native_balance(self, address: Optional[str] = None) -> int:
        self.calls["get_native_balance"] += 1
        return self.native_raw

    def get_token_balance(self, token_address: str, address: Optional[str] = None) -> int:
        self.calls["get_token_balance"] += 1
        return self.token_raw

    def get_decimals(self, token_address: str) -> int:
        return TOKEN_DECIMALS

    def get_symbol(self, token_address: str) -> str:
        return "USDC"

    def allowance(self, token_address: str, owner: str, spender: str) -> int:
        self.calls["allowance"] += 1
        return self.allowances.get(spender, 0)

    def quote_amounts_out(self, path: List[str], amount_in: int) -> List[int]:
        self.calls["quote_amounts_out"] += 1
        if self.quote_error is not None:
            raise self.quote_error
        out = self._out_for(path, amount_in)
        return [amount_in] + [out] * (len(path) - 1)

    # ---- escrituras ----
    def submit_approval(self, token_address: str, spender: str, amount: int) -> str:
        self.calls["submit_approval"] += 1
        self.approvals.append({"token": token_address, "spender": spender, "amount": amount})
        if self.revert_approval:
            return self._new_tx(reverted=True)
        self.allowances[spender] = amount
        return self._new_tx(reverted=False)

    def submit_swap(self, direction, amount_in, min_out, path, recipient, deadline) -> str:
        self.calls["submit_swap"] += 1
        self.swaps.append({
            "direction": direction,
            "amount_in": amount_in,
            "min_out": min_out,
            "path": list(path),
            "recipient": recipient,
            "deadline": deadline,
        })
        out = int(Decimal(self._out_for(path, amount_in)) * self.fill_ratio)
        if self.revert_swap or out < min_out:
            return self._new_tx(reverted=True)

        gas_cost = self.gas_used * self.gas_price
        if direction == SwapDirection.A_TO_B:
            self.native_raw -= amount_in + gas_cost
            self.token_raw += out
        else:
            self.token_raw -= amount_in
            self.allowances[self.router_address] = self.allowances.get(self.router_address, 0) - amount_in
            self.native_raw += out - gas_cost
        return self._new_tx(reverted=False)

    def await_inclusion(self, tx_hash: str) -> TxInclusion:
        self.calls["await_inclusion"] += 1
        if tx_hash not in self._pending:
            raise ChainUnavailable("await_inclusion")
        self.block += 1
        if self._pending[tx_hash]:
            raise TransactionReverted("await_inclusion", tx_reference=tx_hash, block_number=self.block)
        return TxInclusion(
            tx_reference=tx_hash,
            block_number=self.block,
            gas_used=self.gas_used,
            effective_gas_price=self.gas_price,
        )


@pytest.fixture
def make_config():
    def _make(**overrides) -> TraderConfig:
        values = dict(
            rpc_urls=["http://localhost:8545"],
            private_key=PRIVATE_KEY,
            router_address=ROUTER,
            token_address=TOKEN,
            wrapped_native_address=WRAPPED,
            gas_reserve=Decimal("1"),
            min_trade_native=Decimal("1"),
            min_trade_token=Decimal("0.01"),
            min_profit=Decimal("0"),
            slippage_bps=0,
            deadline_secs=600,
            trend_gated=False,
            cooldown_secs=15,
            gas_mode="legacy",
        )
        values.update(overrides)
        return TraderConfig(**values)
    return _make


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def pair():
    return AssetPair(
        native=Asset(address=WRAPPED, symbol="MON", decimals=18, is_native=True),
        token=Asset(address=TOKEN, symbol="USDC", decimals=TOKEN_DECIMALS),
    )


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def wallet(chain, pair):
    return WalletSession(chain, pair)


@pytest.fixture
def quotes(chain, pair):
    return QuoteService(chain, pair, intermediate=WRAPPED)


@pytest.fixture
def trend():
    return TrendTracker()
