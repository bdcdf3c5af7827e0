from __future__ import annotations
import requests

from enums.cycle_state import TradeAction
from models.swap import SwapResult
from utils.logger import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

API_BASE = "https://api.telegram.org/bot{token}"


def _esc(s: str) -> str:
    # escapado mínimo para Markdown
    return (s or "").replace("\\", "\\\\").replace("_", "\\_").replace("*", "\\*").replace("`", "\\`").replace("[", "\\[").replace("]", "\\]")


class TelegramService:
    """
    Avisos salientes por Telegram (solo informativo: el bot no recibe órdenes).
    Sin TOKEN o CHAT_ID queda desactivado y los avisos no hacen nada.
    Un fallo enviando se registra y no interrumpe el ciclo de trading.
    """

    def __init__(self, token: str | None = None, chat_id: str | None = None, timeout: float = 10.0) -> None:
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout
        if not self.enabled:
            logger.info("TelegramService sin TOKEN o CHAT_ID; se desactivan envíos.")

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    def _send(self, text: str) -> bool:
        if not self.enabled:
            return False
        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"}
        try:
            url = f"{API_BASE.format(token=self.token)}/sendMessage"
            requests.post(url, json=payload, timeout=self.timeout).raise_for_status()
            return True
        except requests.RequestException as e:
            logger.error(f"❌ Error enviando Telegram: {e}")
            return False

    @log_function
    def notify_trade(self, action: TradeAction, result: SwapResult, spent_symbol: str, received_symbol: str) -> bool:
        emoji = "🟢" if action == TradeAction.BUY else "🔴"
        msg = (
            f"{emoji} *{action.value.upper()}*\n\n"
            f"*Entregado:* {result.input_amount} {_esc(spent_symbol)}\n"
            f"*Recibido:* {result.output_amount_realized} {_esc(received_symbol)}\n"
            f"*Mínimo:* {result.min_output} {_esc(received_symbol)}\n"
            f"*Bloque:* {result.block_of_inclusion}\n"
            f"*Tx:* `{result.tx_reference}`"
        )
        return self._send(msg)

    @log_function
    def notify_error(self, mensaje: str) -> bool:
        return self._send(f"🚨 *ERROR*: {_esc(mensaje)}")
