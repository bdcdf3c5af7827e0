from __future__ import annotations

from models.asset import Asset, AssetPair, Balances
from utils.config import TraderConfig
from utils.logger import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

NATIVE_DECIMALS = 18


class WalletSession:
    """
    Identidad firmante + cliente de cadena + el par operado.
    Se crea una vez al arrancar y vive lo que vive el proceso.
    Los balances se leen siempre en vivo; no hay libro interno.
    """

    def __init__(self, chain, pair: AssetPair) -> None:
        self.chain = chain
        self.pair = pair

    @classmethod
    def open(cls, chain, config: TraderConfig) -> "WalletSession":
        """Lee decimales y símbolo del token (solo para mostrar/convertir) y monta el par."""
        token_addr = config.token_address
        decimals = chain.get_decimals(token_addr)
        symbol = chain.get_symbol(token_addr)
        pair = AssetPair(
            native=Asset(
                address=config.wrapped_native_address,
                symbol=config.native_symbol,
                decimals=NATIVE_DECIMALS,
                is_native=True,
            ),
            token=Asset(address=token_addr, symbol=symbol, decimals=decimals),
        )
        logger.debug(f"Par montado: {pair.native.symbol}/{pair.token.symbol} (decimals={decimals})")
        return cls(chain, pair)

    @property
    def address(self) -> str:
        return self.chain.address

    def balance_raw(self, asset: Asset) -> int:
        if asset.is_native:
            return self.chain.get_native_balance(self.address)
        return self.chain.get_token_balance(asset.address, self.address)

    def balance(self, asset: Asset):
        return asset.from_raw(self.balance_raw(asset))

    @log_function
    def balances(self) -> Balances:
        return Balances(
            native=self.balance(self.pair.native),
            token=self.balance(self.pair.token),
        )
