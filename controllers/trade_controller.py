# controllers/trade_controller.py
from __future__ import annotations
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from controllers.swap_controller import SwapController
from enums.cycle_state import CycleState, TradeAction
from enums.swap_direction import SwapDirection
from models.asset import Balances
from models.price_sample import PriceSample
from models.swap import SwapRequest, SwapResult
from models.trade_memory import CycleOutcome, TradeDecision, TradeMemory
from services.quote_service import QuoteService
from services.trend_tracker import TrendTracker
from services.wallet_service import WalletSession
from utils.config import TraderConfig
from utils.exceptions import (
    ApprovalFailed,
    ChainUnavailable,
    InsufficientBalance,
    TraderError,
    TransactionReverted,
)
from utils.logger import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hint(err: TraderError) -> str:
    if isinstance(err, InsufficientBalance):
        return "revisa la reserva de gas y los mínimos de operación"
    if isinstance(err, (TransactionReverted, ApprovalFailed)):
        return "tx revertida (liquidez, precio fuera del mínimo o deadline vencido)"
    if isinstance(err, ChainUnavailable):
        return "RPC no disponible; se reintenta en el siguiente ciclo"
    return ""


class TradeController:
    """
    Motor de decisión de un ciclo:
      IDLE -> FETCHING -> DECIDING -> {HOLDING | SWAPPING} -> COOLDOWN -> IDLE

    - FETCHING: balances en vivo + cotización nativo->token + muestra en el histórico
    - DECIDING: regla de venta primero, compra después (nunca ambas en el mismo ciclo)
    - SWAPPING: un único swap, sin reintentos dentro del ciclo
    Cualquier fallo termina solo el ciclo actual: se registra y el ciclo acaba igual en COOLDOWN.
    """

    def __init__(
        self,
        wallet: WalletSession,
        quotes: QuoteService,
        executor: SwapController,
        trend: TrendTracker,
        config: TraderConfig,
        notifier=None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.wallet = wallet
        self.quotes = quotes
        self.executor = executor
        self.trend = trend
        self.config = config
        self.notifier = notifier
        self.clock = clock
        self.state = CycleState.IDLE

    def _set_state(self, state: CycleState) -> None:
        logger.debug(f"Estado {self.state.value} -> {state.value}")
        self.state = state

    # -------- regla de decisión (pura) --------
    def decide(
        self,
        balances: Balances,
        rate: Decimal,
        memory: TradeMemory,
        short_ma: Optional[Decimal] = None,
    ) -> TradeDecision:
        cfg = self.config
        tradable = balances.native - cfg.gas_reserve

        # rama de venta: se evalúa primero y, si aplica, excluye la compra
        if tradable > cfg.min_trade_native:
            baseline = memory.last_buy_price if memory.last_buy_price is not None else Decimal("0")
            profit = tradable * rate - tradable * baseline
            if profit < cfg.min_profit:
                return TradeDecision(
                    action=TradeAction.HOLD,
                    estimated_profit=profit,
                    reason=f"beneficio {profit} por debajo de {cfg.min_profit}",
                )
            if cfg.trend_gated and not (short_ma is not None and rate > short_ma):
                return TradeDecision(
                    action=TradeAction.HOLD,
                    estimated_profit=profit,
                    reason=f"precio {rate} no supera la media corta {short_ma}",
                )
            return TradeDecision(
                action=TradeAction.SELL,
                amount=tradable,
                estimated_profit=profit,
                reason="beneficio suficiente",
            )

        if balances.token > cfg.min_trade_token:
            if cfg.trend_gated and not (short_ma is not None and rate < short_ma):
                return TradeDecision(
                    action=TradeAction.HOLD,
                    reason=f"precio {rate} no está por debajo de la media corta {short_ma}",
                )
            return TradeDecision(action=TradeAction.BUY, amount=balances.token, reason="saldo de token disponible")

        return TradeDecision(action=TradeAction.HOLD, reason="ningún saldo supera los mínimos")

    # -------- memoria --------
    def _remember(self, memory: TradeMemory, decision: TradeDecision, rate: Decimal) -> None:
        memory.last_trade_at = self.clock()
        if decision.action == TradeAction.BUY:
            memory.last_buy_price = rate

    def _notify_trade(self, decision: TradeDecision, result: SwapResult) -> None:
        if self.notifier is None:
            return
        pair = self.wallet.pair
        self.notifier.notify_trade(
            decision.action,
            result,
            pair.spent(result.direction).symbol,
            pair.received(result.direction).symbol,
        )

    # -------- ciclo --------
    @log_function
    def run_cycle(self, memory: TradeMemory) -> CycleOutcome:
        outcome = CycleOutcome()
        pair = self.wallet.pair
        try:
            self._set_state(CycleState.FETCHING)
            outcome.state = self.state
            balances = self.wallet.balances()
            outcome.balances = balances
            rate = self.quotes.quote(SwapDirection.A_TO_B, self.config.quote_notional)
            outcome.rate = rate
            self.trend.record(PriceSample(rate=rate))
            outcome.short_ma = self.trend.short_average()
            outcome.long_ma = self.trend.long_average()
            logger.info(
                f"{pair.native.symbol}: {balances.native:.4f} | {pair.token.symbol}: {balances.token:.6f} | "
                f"Precio: {rate:.6f} | MA{self.trend.short_period}: {outcome.short_ma:.6f} | "
                f"MA{self.trend.long_period}: {outcome.long_ma:.6f}"
            )

            self._set_state(CycleState.DECIDING)
            outcome.state = self.state
            decision = self.decide(balances, rate, memory, outcome.short_ma)
            outcome.decision = decision

            if decision.action == TradeAction.HOLD:
                self._set_state(CycleState.HOLDING)
                outcome.state = self.state
                logger.info(f"⏸️ HOLD: {decision.reason}")
                return outcome

            self._set_state(CycleState.SWAPPING)
            outcome.state = self.state
            logger.info(f"▶️ {decision.action.value.upper()} {decision.amount}: {decision.reason}")
            outcome.swap_attempted = True
            request = SwapRequest(
                direction=decision.action.direction,
                input_amount=decision.amount,
                slippage_bps=self.config.slippage_bps,
                deadline_seconds=self.config.deadline_secs,
            )
            result = self.executor.execute_swap(request)
            outcome.result = result
            self._remember(memory, decision, rate)

            if decision.action == TradeAction.SELL:
                logger.info(
                    f"🔼 Vendidos {decision.amount:.4f} {pair.native.symbol} -> "
                    f"{result.output_amount_realized:.6f} {pair.token.symbol} | "
                    f"Beneficio: {decision.estimated_profit:.6f} | TX: {result.tx_reference[:10]}..."
                )
            else:
                logger.info(
                    f"🔽 Comprados {result.output_amount_realized:.4f} {pair.native.symbol} con "
                    f"{decision.amount:.6f} {pair.token.symbol} | TX: {result.tx_reference[:10]}..."
                )
            self._notify_trade(decision, result)
        except TraderError as e:
            outcome.error = str(e)
            hint = _hint(e)
            logger.error(f"❌ Ciclo fallido en {self.state.value}: {e}" + (f" → {hint}" if hint else ""))
            if outcome.swap_attempted and self.notifier is not None:
                self.notifier.notify_error(f"Swap fallido: {e}")
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
            logger.exception(f"❌ Error inesperado en {self.state.value}: {e}")
        finally:
            self._set_state(CycleState.COOLDOWN)
            self._set_state(CycleState.IDLE)
        return outcome
