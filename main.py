# main.py
from __future__ import annotations
import argparse
import signal
import sys
import threading
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from dotenv import load_dotenv

# ---- carga .env antes de leer configuración ----
load_dotenv()

from enums.swap_direction import SwapDirection
from models.swap import SwapRequest
from orchestrators.trade_orchestrator import TradingRuntime, build_runtime
from utils.config import TraderConfig, load_config
from utils.exceptions import ConfigurationInvalid, TraderError
from utils.logger import logger_manager

logger = logger_manager.setup_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

DIRECTIONS = {
    "sell": SwapDirection.A_TO_B,
    "buy": SwapDirection.B_TO_A,
}


def _decimal(value: str) -> Decimal:
    try:
        d = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if d <= 0:
        raise argparse.ArgumentTypeError("must be positive")
    return d


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bot de trading nativo/stablecoin sobre un router Uniswap V2")
    parser.add_argument("--config", default=None, help="Ruta a un YAML de configuración (por defecto config.yaml)")
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Bucle de trading periódico")
    run.add_argument("--once", action="store_true", help="Ejecuta un solo ciclo y sale")

    sub.add_parser("balances", help="Muestra los balances de la wallet")

    price = sub.add_parser("price", help="Cotiza el par en ambas direcciones")
    price.add_argument("--amount", type=_decimal, default=None, help="Nocional a cotizar (por defecto QUOTE_NOTIONAL)")

    swap = sub.add_parser("swap", help="Swap manual puntual")
    swap.add_argument("--direction", choices=sorted(DIRECTIONS), required=True,
                      help="sell: nativo -> token, buy: token -> nativo")
    swap.add_argument("--amount", type=_decimal, required=True, help="Cantidad a entregar")
    return parser


# ------------------------------
# Comandos
# ------------------------------
def print_banner(runtime: TradingRuntime, config: TraderConfig) -> None:
    pair = runtime.wallet.pair
    logger.info("🚀 Iniciando bot de trading...")
    logger.info(f"✅ Wallet: {runtime.wallet.address} | Router: {runtime.chain.router_address}")
    logger.info(
        f"⚙️ Reserva de gas: {config.gas_reserve} {pair.native.symbol} | "
        f"Beneficio mínimo: {config.min_profit} {pair.token.symbol} | "
        f"Intervalo: {config.poll_interval_secs}s | Slippage: {config.slippage_bps} bps | "
        f"Enfriamiento: {config.cooldown_secs}s | Filtro de tendencia: {'sí' if config.trend_gated else 'no'}"
    )


def cmd_balances(runtime: TradingRuntime) -> int:
    pair = runtime.wallet.pair
    balances = runtime.wallet.balances()
    logger.info(f"Wallet: {runtime.wallet.address}")
    logger.info(f"{pair.native.symbol}: {balances.native}")
    logger.info(f"{pair.token.symbol} (decimals={pair.token.decimals}): {balances.token}")
    return EXIT_OK


def cmd_price(runtime: TradingRuntime, amount: Decimal) -> int:
    pair = runtime.wallet.pair
    sell_rate = runtime.quotes.quote(SwapDirection.A_TO_B, amount)
    buy_rate = runtime.quotes.quote(SwapDirection.B_TO_A, amount)
    logger.info(f"{amount} {pair.native.symbol} = {sell_rate * amount} {pair.token.symbol}")
    logger.info(f"{amount} {pair.token.symbol} = {buy_rate * amount} {pair.native.symbol}")
    return EXIT_OK


def cmd_swap(runtime: TradingRuntime, config: TraderConfig, direction: SwapDirection, amount: Decimal) -> int:
    pair = runtime.wallet.pair
    request = SwapRequest(
        direction=direction,
        input_amount=amount,
        slippage_bps=config.slippage_bps,
        deadline_seconds=config.deadline_secs,
    )
    result = runtime.executor.execute_swap(request)
    logger.info(
        f"Swap {result.input_amount} {pair.spent(direction).symbol} -> "
        f"{result.output_amount_realized} {pair.received(direction).symbol} | "
        f"bloque {result.block_of_inclusion} | TX: {result.tx_reference}"
    )
    return EXIT_OK


def cmd_run(runtime: TradingRuntime, config: TraderConfig, once: bool) -> int:
    print_banner(runtime, config)
    orch = runtime.orchestrator
    if once:
        outcome = orch.run_once()
        return EXIT_OK if outcome is None or outcome.ok else EXIT_FAILED

    stop_evt = threading.Event()

    def shutdown(*_):
        logger.info("🛑 Señal de apagado recibida, deteniendo el bucle...")
        stop_evt.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    orch.start()
    while not stop_evt.is_set() and orch.running:
        stop_evt.wait(0.5)
    orch.stop()
    # un swap enviado tiene que resolverse antes de salir
    orch.join()
    logger.info("✅ Apagado completado.")
    return EXIT_OK


# ------------------------------
# Main
# ------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "run"

    try:
        config = load_config(args.config)
    except ConfigurationInvalid as e:
        logger.error(f"❌ Configuración inválida: {e}")
        return EXIT_CONFIG

    try:
        runtime = build_runtime(config)
        if command == "balances":
            return cmd_balances(runtime)
        if command == "price":
            return cmd_price(runtime, args.amount or config.quote_notional)
        if command == "swap":
            return cmd_swap(runtime, config, DIRECTIONS[args.direction], args.amount)
        return cmd_run(runtime, config, once=getattr(args, "once", False))
    except (TraderError, ValueError) as e:
        logger.error(f"❌ {e}")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
