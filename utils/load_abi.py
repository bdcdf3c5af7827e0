import json
import os
from pathlib import Path

# abis/ vive en la raíz del proyecto; ABI_DIR permite moverlo
ABI_DIR = Path(os.getenv("ABI_DIR") or Path(__file__).resolve().parents[1] / "abis")

def _load_abi(name: str) -> list:
    path = ABI_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"ABI no encontrado: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

def load_erc20_abi() -> list:
    return _load_abi("erc20_abi.json")

def load_router_abi() -> list:
    return _load_abi("uniswap_v2_router_abi.json")
