import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .errors import InvalidParameters

DEFAULT_GATEWAYS: Tuple[str, ...] = (
    "https://w3s.link/ipfs/",
    "https://ipfs.io/ipfs/",
    "https://dweb.link/ipfs/",
)


def _split(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _timeout(value: str) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise InvalidParameters(f"CREDITANCHOR_GATEWAY_TIMEOUT must be a number of seconds, got {value!r}") from exc


@dataclass(frozen=True)
class Settings:
    """
    Explicit configuration handed to every entry point.
    Nothing in the library reads the environment on its own; ``from_env`` is the
    only place that does.
    """

    gateways: Tuple[str, ...] = DEFAULT_GATEWAYS
    gateway_timeout: Optional[float] = 30.0
    rpc_url: Optional[str] = None
    anchor_address: Optional[str] = None
    sender_private_key: Optional[str] = field(default=None, repr=False)
    registry_url: Optional[str] = None
    keys_dir: Path = Path("keys")
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        gateways = _split(env.get("CREDITANCHOR_GATEWAYS", "")) or DEFAULT_GATEWAYS
        timeout = env.get("CREDITANCHOR_GATEWAY_TIMEOUT", "30")
        return cls(
            gateways=gateways,
            gateway_timeout=_timeout(timeout),
            rpc_url=env.get("CREDITANCHOR_RPC_URL") or None,
            anchor_address=env.get("CREDITANCHOR_ANCHOR_ADDR") or None,
            sender_private_key=env.get("CREDITANCHOR_PRIVATE_KEY") or None,
            registry_url=env.get("CREDITANCHOR_REGISTRY_URL") or None,
            keys_dir=Path(env.get("CREDITANCHOR_KEYS_DIR", "keys")),
            log_level=env.get("CREDITANCHOR_LOG_LEVEL", "WARNING").upper(),
        )
