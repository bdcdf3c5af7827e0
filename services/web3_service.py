from __future__ import annotations
import time
from typing import Any, Callable, List, Optional

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound
from hexbytes import HexBytes
from eth_account import Account

from enums.swap_direction import SwapDirection
from models.swap import TxInclusion
from utils.config import TraderConfig
from utils.exceptions import ChainUnavailable, TransactionReverted
from utils.load_abi import load_erc20_abi, load_router_abi
from utils.logger import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class Web3Service:
    """
    Cliente de cadena sobre web3.py. Es la única pieza que habla con el nodo:
      - lecturas: balance nativo, balance/decimales/símbolo ERC-20, allowance, getAmountsOut
      - escrituras: approve y swap (firmadas con la clave del operador)
      - espera de inclusión con receipt

    Errores:
      - revert en lectura o en estimate_gas  -> TransactionReverted (sin tx)
      - receipt con status 0                 -> TransactionReverted (con tx y bloque)
      - transporte / reintentos agotados     -> ChainUnavailable
      - tx descartada por el nodo            -> ChainUnavailable (un corte mientras se espera el receipt no)
    Las escrituras nunca se reintentan.
    """

    def __init__(self, config: TraderConfig, w3: Optional[Web3] = None) -> None:
        self.config = config
        self._rpc_urls: List[str] = list(config.rpc_urls)
        self._current_rpc_idx = -1

        if w3 is not None:
            self._w3 = w3
            self._active_rpc = "injected"
        else:
            self._connect_first_ok()

        self._account = Account.from_key(config.private_key)
        self._router_addr = Web3.to_checksum_address(config.router_address)
        self._router_abi = load_router_abi()
        self._erc20_abi = load_erc20_abi()
        self._bind_contracts()

        self._chain_id = int(self._rpc_call("chain_id", lambda: self._w3.eth.chain_id))
        self._gas_mode = self._detect_gas_mode()
        logger.debug(f"Conectado a {self._active_rpc}; chain_id={self._chain_id}; gas_mode={self._gas_mode}")

    # ---------- conexión / failover ----------
    def _connect(self, url: str) -> Web3:
        w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": self.config.rpc_timeout_secs}))
        # cadenas estilo PoA (en mainnet no molesta)
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise ConnectionError(f"No conectado al nodo: {url}")
        return w3

    def _connect_first_ok(self) -> None:
        last_err: Optional[Exception] = None
        for idx, url in enumerate(self._rpc_urls):
            try:
                self._w3 = self._connect(url)
                self._current_rpc_idx = idx
                self._active_rpc = url
                return
            except Exception as e:
                last_err = e
                logger.warning(f"RPC fallida {url}: {e}")
        raise ChainUnavailable("connect", last_err)

    def _rotate_and_reconnect(self) -> None:
        if len(self._rpc_urls) < 2:
            return
        self._current_rpc_idx = (self._current_rpc_idx + 1) % len(self._rpc_urls)
        url = self._rpc_urls[self._current_rpc_idx]
        logger.info(f"Cambiando a RPC: {url}")
        self._w3 = self._connect(url)
        self._active_rpc = url
        # los contratos van ligados a la instancia Web3 anterior
        self._bind_contracts()

    def _bind_contracts(self) -> None:
        self._router = self._w3.eth.contract(address=self._router_addr, abi=self._router_abi)

    def _rpc_call(self, label: str, fn: Callable[[], Any]) -> Any:
        """
        Ejecuta una lectura RPC. Con RPC_RETRIES > 1 reintenta rotando de proveedor;
        un revert del contrato no se reintenta.
        """
        retries = self.config.rpc_retries
        last_exc: Optional[Exception] = None
        for attempt in range(1, retries + 1):
            try:
                return fn()
            except ContractLogicError as e:
                raise TransactionReverted(label, str(e)) from e
            except Exception as e:
                last_exc = e
                logger.warning(f"[RPC:{label}] intento {attempt}/{retries} falló: {e}")
                if attempt < retries:
                    try:
                        self._rotate_and_reconnect()
                    except Exception as e2:
                        logger.warning(f"[RPC:{label}] fallo al rotar RPC: {e2}")
        raise ChainUnavailable(label, last_exc)

    # ---------- util ----------
    @property
    def address(self) -> str:
        return self._account.address

    @property
    def router_address(self) -> str:
        return self._router_addr

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def checksum(self, address: str) -> str:
        return Web3.to_checksum_address(address)

    @staticmethod
    def _tx_ref(tx_hash: str | HexBytes) -> str:
        return tx_hash if isinstance(tx_hash, str) else Web3.to_hex(tx_hash)

    def load_erc20(self, address: str):
        return self._w3.eth.contract(address=self.checksum(address), abi=self._erc20_abi)

    # ---------- detección gas ----------
    def _detect_gas_mode(self) -> str:
        if self.config.gas_mode in ("legacy", "1559"):
            return self.config.gas_mode
        try:
            latest = self._rpc_call("get_block_latest", lambda: self._w3.eth.get_block("latest"))
            if latest.get("baseFeePerGas", None) is not None:
                return "1559"
        except ChainUnavailable as e:
            logger.warning(f"No se pudo detectar el modo de gas, uso legacy: {e}")
        return "legacy"

    def _apply_gas_fields(self, tx: dict) -> dict:
        """
        Aplica **solo** los campos del modo activo; mezclar gasPrice con
        maxFeePerGas hace que el nodo rechace la tx.
        """
        for k in ("gasPrice", "maxFeePerGas", "maxPriorityFeePerGas", "accessList"):
            tx.pop(k, None)

        if self._gas_mode == "1559":
            tx["type"] = 2
            latest = self._rpc_call("get_block_latest", lambda: self._w3.eth.get_block("latest"))
            base_fee = latest.get("baseFeePerGas")
            if base_fee is None:
                base_fee = self._rpc_call("gas_price", lambda: self._w3.eth.gas_price)
            try:
                priority = int(self._rpc_call("max_priority_fee", lambda: self._w3.eth.max_priority_fee))
            except ChainUnavailable:
                priority = int(Web3.to_wei(self.config.priority_fee_gwei, "gwei"))
            tx["maxPriorityFeePerGas"] = priority
            tx["maxFeePerGas"] = int(int(base_fee) * self.config.max_fee_multiplier + priority)
        else:
            tx["type"] = 0
            tx["gasPrice"] = int(self._rpc_call("gas_price", lambda: self._w3.eth.gas_price))
        return tx

    # ---------- lecturas ----------
    @log_function
    def get_native_balance(self, address: Optional[str] = None) -> int:
        addr = self.checksum(address or self.address)
        return int(self._rpc_call("get_balance", lambda: self._w3.eth.get_balance(addr)))

    @log_function
    def get_token_balance(self, token_address: str, address: Optional[str] = None) -> int:
        wallet = self.checksum(address or self.address)
        # el contrato se crea en cada intento: tras rotar de RPC debe ir ligado al Web3 nuevo
        return int(self._rpc_call(
            "balanceOf",
            lambda: self.load_erc20(token_address).functions.balanceOf(wallet).call()
        ))

    def get_decimals(self, token_address: str) -> int:
        return int(self._rpc_call("decimals", lambda: self.load_erc20(token_address).functions.decimals().call()))

    def get_symbol(self, token_address: str) -> str:
        return str(self._rpc_call("symbol", lambda: self.load_erc20(token_address).functions.symbol().call()))

    def allowance(self, token_address: str, owner: str, spender: str) -> int:
        owner_cs, spender_cs = self.checksum(owner), self.checksum(spender)
        return int(self._rpc_call(
            "allowance",
            lambda: self.load_erc20(token_address).functions.allowance(owner_cs, spender_cs).call()
        ))

    @log_function
    def quote_amounts_out(self, path: List[str], amount_in: int) -> List[int]:
        path_cs = [self.checksum(p) for p in path]
        amounts = self._rpc_call(
            "router.getAmountsOut",
            lambda: self._router.functions.getAmountsOut(int(amount_in), path_cs).call()
        )
        return [int(x) for x in amounts]

    # ---------- escrituras ----------
    def _send(self, label: str, build_func: Callable[[], Any], value: int = 0) -> str:
        """
        Construye, estima, firma y envía. Sin reintentos: un reenvío podría duplicar la operación.
        ``build_func`` devuelve la función del contrato; se invoca en cada intento de
        build_transaction para que, si se rota de RPC, vaya ligada al Web3 activo.
        """
        nonce = self._rpc_call("get_transaction_count", lambda: self._w3.eth.get_transaction_count(self.address))
        # build_transaction estima gas por su cuenta: un revert aquí sale como TransactionReverted
        tx = self._rpc_call(f"build_{label}", lambda: build_func().build_transaction({
            "from": self.address,
            "value": int(value),
            "nonce": nonce,
            "chainId": self._chain_id,
        }))
        tx = self._apply_gas_fields(dict(tx))

        estimated_gas = int(self._rpc_call(f"estimate_gas_{label}", lambda: self._w3.eth.estimate_gas(tx)))
        tx["gas"] = int(estimated_gas * self.config.gas_limit_multiplier)

        signed = self._account.sign_transaction(tx)
        try:
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise TransactionReverted(f"send_{label}", str(e)) from e
        except Exception as e:
            raise ChainUnavailable(f"send_{label}", e) from e
        tx_ref = Web3.to_hex(tx_hash)
        logger.info(f"[{label}] tx enviada {tx_ref}")
        return tx_ref

    @log_function
    def submit_approval(self, token_address: str, spender: str, amount: int) -> str:
        spender_cs = self.checksum(spender)
        return self._send(
            "approve",
            lambda: self.load_erc20(token_address).functions.approve(spender_cs, int(amount)),
        )

    @log_function
    def submit_swap(
        self,
        direction: SwapDirection,
        amount_in: int,
        min_out: int,
        path: List[str],
        recipient: str,
        deadline: int,
    ) -> str:
        path_cs = [self.checksum(p) for p in path]
        to = self.checksum(recipient)
        if direction.spends_native:
            return self._send(
                "swap",
                lambda: self._router.functions.swapExactETHForTokens(int(min_out), path_cs, to, int(deadline)),
                value=int(amount_in),
            )
        return self._send(
            "swap",
            lambda: self._router.functions.swapExactTokensForETH(int(amount_in), int(min_out), path_cs, to, int(deadline)),
        )

    def _recover_polling(self) -> None:
        time.sleep(self.config.receipt_poll_secs)
        try:
            self._rotate_and_reconnect()
        except Exception as e:
            logger.warning(f"[await_inclusion] fallo al rotar RPC: {e}")

    def await_inclusion(self, tx_hash: str | HexBytes) -> TxInclusion:
        """
        Bloquea hasta que la tx entra en bloque (web3 consulta el receipt con pausas).
        Si vence el timeout pero el nodo aún conoce la tx, seguimos esperando:
        una tx enviada tiene que resolverse antes de soltar el ciclo.
        Un error de transporte tampoco la resuelve: se registra, se rota de RPC y se sigue.
        Solo TransactionNotFound tras el timeout significa que el nodo la ha descartado.
        """
        tx_ref = self._tx_ref(tx_hash)
        while True:
            try:
                receipt = self._w3.eth.wait_for_transaction_receipt(
                    tx_hash,
                    timeout=self.config.receipt_timeout_secs,
                    poll_latency=self.config.receipt_poll_secs,
                )
                break
            except TimeExhausted:
                try:
                    self._w3.eth.get_transaction(tx_hash)
                except TransactionNotFound as e:
                    raise ChainUnavailable("await_inclusion", e) from e
                except Exception as e:
                    logger.warning(f"tx {tx_ref}: no se pudo consultar el mempool ({e}); reintentando...")
                    self._recover_polling()
                    continue
                logger.warning(f"tx {tx_ref} sigue pendiente tras "
                               f"{self.config.receipt_timeout_secs}s; esperando...")
            except Exception as e:
                logger.warning(f"tx {tx_ref}: error consultando el receipt ({e}); reintentando...")
                self._recover_polling()

        block = int(receipt["blockNumber"])
        if int(receipt["status"]) != 1:
            raise TransactionReverted("await_inclusion", "execution reverted", tx_reference=tx_ref, block_number=block)
        return TxInclusion(
            tx_reference=tx_ref,
            block_number=block,
            gas_used=int(receipt.get("gasUsed", 0)),
            effective_gas_price=int(receipt.get("effectiveGasPrice", 0) or 0),
        )
