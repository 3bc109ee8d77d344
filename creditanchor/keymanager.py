import json
from pathlib import Path
from typing import Dict

from . import crypto

DEFAULT_KEYS_DIR = Path("keys")


def _ensure_dir(base_dir: Path) -> None:
    base_dir.mkdir(parents=True, exist_ok=True)


def generate_dummy_account(name: str, base_dir: Path | str = DEFAULT_KEYS_DIR) -> Dict[str, str]:
    """
    Generate a secp256k1 account for local testing and store it as JSON.
    Stands in for a wallet; real recipients sign with their own wallet.
    """
    base_dir = Path(base_dir)
    _ensure_dir(base_dir)
    private_key, address = crypto.generate_account()
    data = {"name": name, "address": address, "private_key": crypto.hexe(private_key)}
    (base_dir / f"{name}.json").write_text(json.dumps(data, indent=2))
    return data


def load_account(name: str, base_dir: Path | str = DEFAULT_KEYS_DIR) -> Dict:
    """Returns name, checksum address and raw private key bytes."""
    base_dir = Path(base_dir)
    path = base_dir / f"{name}.json"
    if not path.exists():
        raise FileNotFoundError(f"No keys for {name} in {path}")
    raw = json.loads(path.read_text())
    return {
        "name": raw["name"],
        "address": raw["address"],
        "private_key": crypto.hexd(raw["private_key"], "private_key"),
    }


def list_accounts(base_dir: Path | str = DEFAULT_KEYS_DIR) -> list[str]:
    base_dir = Path(base_dir)
    if not base_dir.exists():
        return []
    return sorted(p.stem for p in base_dir.glob("*.json"))


def sign_approval(name: str, message: str, base_dir: Path | str = DEFAULT_KEYS_DIR) -> str:
    """personal_sign ``message`` with a stored account; returns 0x-prefixed hex."""
    account = load_account(name, base_dir=base_dir)
    return crypto.hexe(crypto.sign_message(account["private_key"], message))
