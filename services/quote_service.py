from __future__ import annotations
from decimal import Decimal
from typing import List

from enums.swap_direction import SwapDirection
from models.asset import AssetPair
from utils.logger import logger_manager, log_function
from utils.web3_utils import build_path

logger = logger_manager.setup_logger(__name__)


class QuoteService:
    """
    Cotizaciones del router (getAmountsOut) en cualquiera de las dos direcciones.
    Sin caché: el estado on-chain cambia en cada bloque, así que cada llamada es una lectura nueva.
    Los errores del cliente de cadena se propagan tal cual.
    """

    def __init__(self, chain, pair: AssetPair, intermediate: str) -> None:
        self.chain = chain
        self.pair = pair
        self.intermediate = intermediate

    def path_for(self, direction: SwapDirection) -> List[str]:
        spent = self.pair.spent(direction)
        received = self.pair.received(direction)
        return build_path(spent.address, received.address, self.intermediate)

    def amount_out(self, direction: SwapDirection, amount_in_raw: int) -> int:
        """Salida esperada (unidades mínimas) del último salto para una entrada en unidades mínimas."""
        amounts = self.chain.quote_amounts_out(self.path_for(direction), int(amount_in_raw))
        return int(amounts[-1])

    @log_function
    def quote(self, direction: SwapDirection, notional: Decimal) -> Decimal:
        """Tipo unitario implícito: cuánto se recibe por unidad entregada."""
        notional = Decimal(notional)
        if notional <= 0:
            raise ValueError(f"notional must be positive, got {notional}")
        spent = self.pair.spent(direction)
        received = self.pair.received(direction)
        out_raw = self.amount_out(direction, spent.to_raw(notional))
        rate = received.from_raw(out_raw) / notional
        logger.debug(f"{notional} {spent.symbol} -> {received.from_raw(out_raw)} {received.symbol} (rate={rate})")
        return rate
