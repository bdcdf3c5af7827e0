# controllers/swap_controller.py
from __future__ import annotations
import time
from typing import Callable, Optional

from models.asset import Asset
from models.swap import SwapRequest, SwapResult
from services.quote_service import QuoteService
from services.wallet_service import WalletSession
from utils.exceptions import ApprovalFailed, InsufficientBalance, TransactionReverted
from utils.logger import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

BPS_DENOMINATOR = 10_000


def compute_min_out(expected_out: int, slippage_bps: int) -> int:
    """floor(expected * (10000 - bps) / 10000) en enteros: sin deriva de coma flotante."""
    if not 0 <= slippage_bps < BPS_DENOMINATOR:
        raise ValueError(f"slippage_bps must be in [0, {BPS_DENOMINATOR}), got {slippage_bps}")
    if expected_out < 0:
        raise ValueError("expected_out must be non-negative")
    return int(expected_out) * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


class SwapController:
    """
    Ejecuta un swap completo nativo<->token:
      1) balance suficiente del activo que se gasta (si no, InsufficientBalance sin tocar la cadena)
      2) salida esperada vía QuoteService
      3) amountOutMin con el slippage (lo hace cumplir el router on-chain)
      4) approve si el activo gastado es el token y el allowance no llega
      5) deadline = ahora + horizonte
      6) envío y espera de inclusión
      7) salida real por delta de balance (pre/post), no por el valor de retorno de la tx
    Nunca reintenta: los fallos suben tipados y el siguiente ciclo decide.
    """

    def __init__(
        self,
        wallet: WalletSession,
        quotes: QuoteService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.wallet = wallet
        self.quotes = quotes
        self.clock = clock

    @property
    def chain(self):
        return self.wallet.chain

    # -------- approve --------
    def _ensure_allowance(self, token: Asset, amount_raw: int) -> Optional[str]:
        router = self.chain.router_address
        current = self.chain.allowance(token.address, self.wallet.address, router)
        if current >= amount_raw:
            logger.debug(f"Allowance suficiente de {token.symbol}: {token.from_raw(current)}")
            return None

        logger.info(f"Aprobando {token.from_raw(amount_raw)} {token.symbol} para el router...")
        try:
            approve_tx = self.chain.submit_approval(token.address, router, amount_raw)
            self.chain.await_inclusion(approve_tx)
        except TransactionReverted as e:
            raise ApprovalFailed(token.symbol, e.reason, e.tx_reference) from e
        logger.info(f"✅ Approve incluido ({approve_tx})")
        return approve_tx

    # -------- API --------
    @log_function
    def execute_swap(self, request: SwapRequest) -> SwapResult:
        pair = self.wallet.pair
        direction = request.direction
        spent = pair.spent(direction)
        received = pair.received(direction)

        amount_in = spent.to_raw(request.input_amount)
        if amount_in <= 0:
            raise ValueError(f"input amount {request.input_amount} {spent.symbol} is below one unit")

        logger.info(f"🔄 Swap {request.input_amount} {spent.symbol} -> {received.symbol}...")

        # 1) balance antes de cualquier escritura
        balance = self.wallet.balance_raw(spent)
        if balance < amount_in:
            raise InsufficientBalance(spent.symbol, spent.from_raw(balance), request.input_amount)

        # 2) salida esperada
        expected_out = self.quotes.amount_out(direction, amount_in)
        if expected_out <= 0:
            raise TransactionReverted("router.getAmountsOut", "router quoted zero output")
        logger.info(f"   Esperado: {received.from_raw(expected_out)} {received.symbol}")

        # 3) suelo de salida
        min_out = compute_min_out(expected_out, request.slippage_bps)
        logger.info(f"   Mínimo ({request.slippage_bps} bps): {received.from_raw(min_out)} {received.symbol}")

        # 4) approve (solo si se gasta el token)
        approval_tx = None
        if not spent.is_native:
            approval_tx = self._ensure_allowance(spent, amount_in)

        # 5) balance de referencia del activo recibido + deadline
        pre_raw = self.wallet.balance_raw(received)
        deadline = int(self.clock()) + request.deadline_seconds

        # 6) envío y confirmación
        tx_ref = self.chain.submit_swap(
            direction,
            amount_in,
            min_out,
            self.quotes.path_for(direction),
            self.wallet.address,
            deadline,
        )
        logger.info(f"   Tx: {tx_ref} | esperando confirmación...")
        inclusion = self.chain.await_inclusion(tx_ref)

        # 7) recibido real por delta; si se recibe nativo, el gas del swap se devuelve al bruto
        post_raw = self.wallet.balance_raw(received)
        realized_raw = post_raw - pre_raw
        if received.is_native:
            realized_raw += inclusion.gas_cost_wei
        realized = received.from_raw(realized_raw)

        logger.info(f"✅ Swap confirmado en bloque {inclusion.block_number}: {realized} {received.symbol}")
        return SwapResult(
            direction=direction,
            input_amount=request.input_amount,
            expected_output=received.from_raw(expected_out),
            min_output=received.from_raw(min_out),
            output_amount_realized=realized,
            tx_reference=inclusion.tx_reference,
            block_of_inclusion=inclusion.block_number,
            approval_tx=approval_tx,
        )
