"""
Configuration loading for the trader.

Values come from three layers, later ones winning: the defaults declared on
``TraderConfig``, an optional YAML file (``config.yaml`` next to ``main.py``
or the path in ``TRADER_CONFIG``) and the process environment, which
``main.py`` fills from ``.env`` through python-dotenv.
"""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml  # type: ignore
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from web3 import Web3

from utils.exceptions import ConfigurationInvalid

PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Monad mainnet: Uniswap V2 Router02, USDC oficial y WMON
DEFAULT_ROUTER_ADDRESS = "0x4b2ab38dbf28d31d467aa8993f6c2585981d6804"
DEFAULT_TOKEN_ADDRESS = "0x754704bc059f8c67012fed69bc8a327a5aafb603"
DEFAULT_WRAPPED_NATIVE_ADDRESS = "0x3bd359C1119dA7Da1D913D1C4D2B7c461115433A"

# field -> variable de entorno
ENV_KEYS: Dict[str, str] = {
    "private_key": "PRIVATE_KEY",
    "router_address": "ROUTER_ADDRESS",
    "token_address": "TOKEN_ADDRESS",
    "wrapped_native_address": "WRAPPED_NATIVE_ADDRESS",
    "native_symbol": "NATIVE_SYMBOL",
    "poll_interval_secs": "POLL_INTERVAL_SECS",
    "gas_reserve": "GAS_RESERVE",
    "min_trade_native": "MIN_TRADE_NATIVE",
    "min_trade_token": "MIN_TRADE_TOKEN",
    "min_profit": "MIN_PROFIT",
    "slippage_bps": "SLIPPAGE_BPS",
    "deadline_secs": "DEADLINE_SECS",
    "ma_short_period": "MA_SHORT_PERIOD",
    "ma_long_period": "MA_LONG_PERIOD",
    "price_history_size": "PRICE_HISTORY_SIZE",
    "cooldown_secs": "COOLDOWN_SECS",
    "trend_gated": "TREND_GATED",
    "quote_notional": "QUOTE_NOTIONAL",
    "rpc_timeout_secs": "RPC_TIMEOUT_SECS",
    "rpc_retries": "RPC_RETRIES",
    "receipt_timeout_secs": "RECEIPT_TIMEOUT_SECS",
    "receipt_poll_secs": "RECEIPT_POLL_SECS",
    "gas_mode": "GAS_MODE",
    "gas_limit_multiplier": "GAS_LIMIT_MULTIPLIER",
    "priority_fee_gwei": "PRIORITY_FEE_GWEI",
    "max_fee_multiplier": "MAX_FEE_MULTIPLIER",
    "telegram_token": "TELEGRAM_TOKEN",
    "telegram_chat_id": "TELEGRAM_CHAT_ID",
}
RPC_ENV_KEYS = ("RPC_URLS", "RPC_URL", "MONAD_RPC_URL")


class TraderConfig(BaseModel):
    """Validated settings for one operator wallet trading one native/token pair."""

    rpc_urls: List[str]
    private_key: str = Field(repr=False)
    router_address: str = DEFAULT_ROUTER_ADDRESS
    token_address: str = DEFAULT_TOKEN_ADDRESS
    wrapped_native_address: str = DEFAULT_WRAPPED_NATIVE_ADDRESS
    native_symbol: str = "MON"

    poll_interval_secs: float = Field(5.0, gt=0)
    gas_reserve: Decimal = Field(Decimal("0.5"), ge=0)
    min_trade_native: Decimal = Field(Decimal("1"), ge=0)
    min_trade_token: Decimal = Field(Decimal("0.01"), ge=0)
    min_profit: Decimal = Decimal("0.02")
    slippage_bps: int = Field(200, ge=0, lt=10000)
    deadline_secs: int = Field(600, gt=0)

    ma_short_period: int = Field(5, gt=0)
    ma_long_period: int = Field(15, gt=0)
    price_history_size: int = Field(20, gt=0)
    cooldown_secs: float = Field(15.0, ge=0)
    trend_gated: bool = True
    quote_notional: Decimal = Field(Decimal("1"), gt=0)

    rpc_timeout_secs: float = Field(30.0, gt=0)
    rpc_retries: int = Field(1, ge=1)
    receipt_timeout_secs: float = Field(180.0, gt=0)
    receipt_poll_secs: float = Field(1.0, gt=0)
    gas_mode: str = "auto"
    gas_limit_multiplier: float = Field(1.2, ge=1.0)
    priority_fee_gwei: float = Field(1.5, ge=0)
    max_fee_multiplier: float = Field(2.0, ge=1.0)

    telegram_token: Optional[str] = Field(None, repr=False)
    telegram_chat_id: Optional[str] = None

    @field_validator("rpc_urls", mode="before")
    @classmethod
    def _split_urls(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (list, tuple)):
            return [str(u).strip().rstrip("/") for u in v if str(u).strip()]
        return v

    @field_validator("rpc_urls")
    @classmethod
    def _require_urls(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one RPC endpoint is required")
        return v

    @field_validator("private_key")
    @classmethod
    def _require_key(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("signing key is required")
        return v

    @field_validator("router_address", "token_address", "wrapped_native_address")
    @classmethod
    def _check_address(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError(f"invalid address: {v!r}")
        return Web3.to_checksum_address(v)

    @field_validator("gas_mode")
    @classmethod
    def _check_gas_mode(cls, v: str) -> str:
        v = v.lower()
        if v not in ("auto", "legacy", "1559"):
            raise ValueError("gas_mode must be auto, legacy or 1559")
        return v

    @model_validator(mode="after")
    def _check_periods(self) -> "TraderConfig":
        if self.ma_short_period > self.price_history_size:
            raise ValueError("ma_short_period cannot exceed price_history_size")
        if self.ma_long_period > self.price_history_size:
            raise ValueError("ma_long_period cannot exceed price_history_size")
        if self.ma_short_period > self.ma_long_period:
            raise ValueError("ma_short_period cannot exceed ma_long_period")
        return self


def load_yaml(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML layer.

    :returns: A dictionary with the file contents. A missing default file
        yields an empty dictionary; an explicit path that does not exist is
        a configuration error.
    """
    explicit = path or os.getenv("TRADER_CONFIG")
    config_path = Path(explicit) if explicit else PROJECT_ROOT / "config.yaml"
    if not config_path.exists():
        if explicit:
            raise ConfigurationInvalid(f"config file not found: {config_path}")
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationInvalid(f"invalid YAML in {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationInvalid(f"{config_path} must contain a mapping")
    return data


def _from_env(env: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key in RPC_ENV_KEYS:
        if env.get(key):
            values["rpc_urls"] = env[key]
            break
    for field, var in ENV_KEYS.items():
        raw = env.get(var)
        if raw is not None and raw != "":
            values[field] = raw
    return values


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> TraderConfig:
    """Build the validated configuration or raise ``ConfigurationInvalid``."""
    values = load_yaml(path)
    values.update(_from_env(os.environ if env is None else env))
    values.setdefault("rpc_urls", [])
    values.setdefault("private_key", "")
    try:
        return TraderConfig(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationInvalid(problems) from e
