# orchestrators/trade_orchestrator.py
from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from controllers.swap_controller import SwapController
from controllers.trade_controller import TradeController
from models.trade_memory import CycleOutcome, TradeMemory
from services.quote_service import QuoteService
from services.telegram_service import TelegramService
from services.trend_tracker import TrendTracker
from services.wallet_service import WalletSession
from services.web3_service import Web3Service
from utils.config import TraderConfig
from utils.logger import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class CycleGuard:
    """
    Barrera de un solo vuelo + enfriamiento tras operar.
    - try_acquire no bloquea: si hay un ciclo en curso, el tick se descarta (sin cola).
    - el enfriamiento se arma al soltar un ciclo que intentó un swap (haya salido bien o mal).
    """

    def __init__(self, cooldown_secs: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.cooldown_secs = float(cooldown_secs)
        self.clock = clock
        self._lock = threading.Lock()
        self.last_trade_at: Optional[float] = None

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def cooldown_remaining(self) -> float:
        if self.last_trade_at is None:
            return 0.0
        return max(0.0, self.cooldown_secs - (self.clock() - self.last_trade_at))

    def release(self, swap_attempted: bool = False) -> None:
        if swap_attempted:
            now = self.clock()
            # nunca retrocede
            self.last_trade_at = now if self.last_trade_at is None else max(self.last_trade_at, now)
        self._lock.release()


class TradeOrchestrator:
    """
    Dispara un ciclo del TradeController cada ``interval_secs``.
    Cada ciclo admitido corre en su propio hilo y suelta la barrera al terminar,
    así el temporizador sigue viendo ticks mientras un swap espera confirmación.
    """

    def __init__(
        self,
        controller: TradeController,
        guard: CycleGuard,
        memory: Optional[TradeMemory] = None,
        interval_secs: float = 5.0,
    ) -> None:
        self.controller = controller
        self.guard = guard
        self.memory = memory or TradeMemory()
        self.interval_secs = interval_secs
        self.last_outcome: Optional[CycleOutcome] = None
        self.ticks_dropped = 0

        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._run_loop, name="TradeOrchestrator", daemon=True)
        self._thread.start()
        logger.info("TradeOrchestrator iniciado.")

    def stop(self) -> None:
        self._stop_evt.set()
        logger.info("TradeOrchestrator detenido (orden enviada).")

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def join(self, timeout: Optional[float] = None) -> None:
        """Espera al bucle y al ciclo en curso (un swap enviado debe resolverse antes de salir)."""
        if self._thread is not None:
            self._thread.join(timeout)
        worker = self._worker
        if worker is not None:
            worker.join(timeout)

    @log_function
    def _run_loop(self) -> None:
        while not self._stop_evt.is_set():
            try:
                self.trigger()
            except Exception as e:
                logger.exception(f"Error disparando ciclo: {e}")
            self._stop_evt.wait(self.interval_secs)

    def trigger(self, wait: bool = False) -> bool:
        """Intenta arrancar un ciclo. Devuelve False si el tick se descarta."""
        if not self.guard.try_acquire():
            self.ticks_dropped += 1
            logger.debug("[tick] descartado: hay un ciclo en curso.")
            return False

        remaining = self.guard.cooldown_remaining()
        if remaining > 0:
            self.guard.release()
            logger.debug(f"[tick] en enfriamiento, faltan {remaining:.1f}s.")
            return False

        worker = threading.Thread(target=self._run_guarded, name="TradeCycle")
        self._worker = worker
        worker.start()
        if wait:
            worker.join()
        return True

    def run_once(self) -> Optional[CycleOutcome]:
        """Un único ciclo protegido por la barrera, esperando a que termine."""
        if not self.trigger(wait=True):
            return None
        return self.last_outcome

    def _run_guarded(self) -> None:
        attempted = False
        try:
            outcome = self.controller.run_cycle(self.memory)
            self.last_outcome = outcome
            attempted = outcome.swap_attempted
        except Exception as e:
            logger.exception(f"Error inesperado en el ciclo: {e}")
        finally:
            self.guard.release(swap_attempted=attempted)


@dataclass
class TradingRuntime:
    chain: Web3Service
    wallet: WalletSession
    quotes: QuoteService
    executor: SwapController
    controller: TradeController
    orchestrator: TradeOrchestrator
    notifier: TelegramService


def build_runtime(config: TraderConfig, chain: Optional[Web3Service] = None) -> TradingRuntime:
    """Monta todas las piezas a partir de la configuración validada."""
    chain = chain or Web3Service(config)
    wallet = WalletSession.open(chain, config)
    quotes = QuoteService(chain, wallet.pair, intermediate=config.wrapped_native_address)
    executor = SwapController(wallet, quotes)
    trend = TrendTracker(
        capacity=config.price_history_size,
        short_period=config.ma_short_period,
        long_period=config.ma_long_period,
    )
    notifier = TelegramService(config.telegram_token, config.telegram_chat_id)
    controller = TradeController(wallet, quotes, executor, trend, config, notifier=notifier)
    orchestrator = TradeOrchestrator(
        controller,
        CycleGuard(config.cooldown_secs),
        interval_secs=config.poll_interval_secs,
    )
    return TradingRuntime(
        chain=chain,
        wallet=wallet,
        quotes=quotes,
        executor=executor,
        controller=controller,
        orchestrator=orchestrator,
        notifier=notifier,
    )
