"""
Anchor binding: the key that ties a token identity to off-chain content, and the
stores that hold {locator, content hash} records under that key.

The key is keccak256(abi.encodePacked(address nftContract, uint256 tokenId)),
i.e. the 20 address bytes followed by the 32-byte big-endian token id. The anchor
contract derives it the same way, so both sides agree without a round trip. No
chain id is mixed in; callers scope addresses to a chain.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests
from eth_utils import is_hex_address, to_canonical_address
from web3 import Web3

from . import crypto
from .config import Settings
from .errors import AnchorStoreError, InvalidParameters
from .models import AnchorRecord

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1

_RECORD_COMPONENTS = [
    {"name": "cid", "type": "string"},
    {"name": "pieceCid", "type": "string"},
    {"name": "dealId", "type": "uint64"},
    {"name": "encHash", "type": "bytes32"},
]

ANCHOR_ABI = [
    {
        "type": "function",
        "name": "set",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "key", "type": "bytes32"},
            {"name": "r", "type": "tuple", "components": _RECORD_COMPONENTS},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "get",
        "stateMutability": "view",
        "inputs": [{"name": "key", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "tuple", "components": _RECORD_COMPONENTS}],
    },
    {
        "type": "function",
        "name": "deriveKey",
        "stateMutability": "pure",
        "inputs": [
            {"name": "nftContract", "type": "address"},
            {"name": "tokenId", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
]


def parse_token_id(value) -> int:
    """Accept an int, a decimal string or a 0x hex string."""
    if isinstance(value, bool):
        raise InvalidParameters("token id must be an integer")
    if isinstance(value, str):
        try:
            value = int(value, 16) if value[:2].lower() == "0x" else int(value, 10)
        except ValueError as exc:
            raise InvalidParameters(f"token id {value!r} is not an integer") from exc
    if not isinstance(value, int) or not 0 <= value <= UINT256_MAX:
        raise InvalidParameters("token id must be an unsigned 256-bit integer")
    return value


def derive_key(token_contract: str, token_id) -> bytes:
    """Anchor key for (contract address, token id). Pure and deterministic."""
    if not isinstance(token_contract, str) or not is_hex_address(token_contract):
        raise InvalidParameters(f"{token_contract!r} is not a 20-byte hex address")
    token_id = parse_token_id(token_id)
    return crypto.keccak256(to_canonical_address(token_contract) + token_id.to_bytes(32, "big"))


def parse_anchor_key(value: str | bytes) -> bytes:
    key = crypto.hexd(value, "anchor key") if isinstance(value, str) else bytes(value)
    if len(key) != 32:
        raise InvalidParameters(f"anchor key must be 32 bytes, got {len(key)}")
    return key


class AnchorStore(ABC):
    """Key/value store of AnchorRecords. Last write wins."""

    @abstractmethod
    def set(self, key: bytes, record: AnchorRecord) -> Optional[str]:
        """Write or overwrite ``record``. Returns a store reference (tx hash) when there is one."""

    @abstractmethod
    def get(self, key: bytes) -> Optional[AnchorRecord]:
        """Return the record under ``key`` or None."""

    def close(self) -> None:
        """Release connections held by the store."""

    def __enter__(self) -> "AnchorStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MemoryAnchorStore(AnchorStore):
    def __init__(self):
        self._records: Dict[bytes, AnchorRecord] = {}

    def set(self, key: bytes, record: AnchorRecord) -> Optional[str]:
        self._records[parse_anchor_key(key)] = record
        return None

    def get(self, key: bytes) -> Optional[AnchorRecord]:
        return self._records.get(parse_anchor_key(key))


class RegistryAnchorStore(AnchorStore):
    """Client for the anchor registry HTTP service in ``app/``."""

    def __init__(self, base_url: str, session=None, timeout: Optional[float] = 10):
        self.base_url = base_url.rstrip("/")
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def _url(self, key: bytes) -> str:
        return f"{self.base_url}/anchors/{crypto.hexe(parse_anchor_key(key))}"

    def set(self, key: bytes, record: AnchorRecord) -> Optional[str]:
        try:
            res = self.session.put(self._url(key), json=record.to_dict(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise AnchorStoreError(f"registry unreachable: {exc}") from exc
        if res.status_code != 200:
            raise AnchorStoreError(f"registry returned {res.status_code}: {res.text}")
        logger.info("Anchored %s in registry %s", crypto.hexe(key), self.base_url)
        return None

    def get(self, key: bytes) -> Optional[AnchorRecord]:
        try:
            res = self.session.get(self._url(key), timeout=self.timeout)
        except requests.RequestException as exc:
            raise AnchorStoreError(f"registry unreachable: {exc}") from exc
        if res.status_code == 404:
            return None
        if res.status_code != 200:
            raise AnchorStoreError(f"registry returned {res.status_code}: {res.text}")
        return AnchorRecord.from_dict(res.json())


class ContractAnchorStore(AnchorStore):
    """
    Anchor contract accessed through web3. ``set`` is signed locally with
    ``private_key`` when given, otherwise sent from the node's default account.
    """

    def __init__(self, w3: Web3, contract, private_key: Optional[str] = None):
        self.w3 = w3
        self.contract = contract
        self.account = w3.eth.account.from_key(private_key) if private_key else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContractAnchorStore":
        if not settings.rpc_url or not settings.anchor_address:
            raise InvalidParameters("CREDITANCHOR_RPC_URL and CREDITANCHOR_ANCHOR_ADDR are required")
        w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        contract = w3.eth.contract(address=Web3.to_checksum_address(settings.anchor_address), abi=ANCHOR_ABI)
        return cls(w3, contract, private_key=settings.sender_private_key)

    def set(self, key: bytes, record: AnchorRecord) -> Optional[str]:
        fn = self.contract.functions.set(parse_anchor_key(key), record.as_tuple())
        try:
            if self.account is None:
                tx_hash = fn.transact()
            else:
                tx = fn.build_transaction(
                    {
                        "from": self.account.address,
                        "nonce": self.w3.eth.get_transaction_count(self.account.address),
                    }
                )
                signed = self.account.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as exc:  # pylint: disable=broad-except
            raise AnchorStoreError(f"set transaction failed: {exc}") from exc
        if receipt["status"] != 1:
            raise AnchorStoreError(f"set transaction reverted: {crypto.hexe(bytes(tx_hash))}")
        tx_ref = crypto.hexe(bytes(receipt["transactionHash"]))
        logger.info("Anchored %s in tx %s", crypto.hexe(key), tx_ref)
        return tx_ref

    def get(self, key: bytes) -> Optional[AnchorRecord]:
        try:
            cid, piece_cid, deal_id, enc_hash = self.contract.functions.get(parse_anchor_key(key)).call()
        except Exception as exc:  # pylint: disable=broad-except
            raise AnchorStoreError(f"get call failed: {exc}") from exc
        if not cid:
            return None
        return AnchorRecord(locator=cid, content_hash=bytes(enc_hash), piece_locator=piece_cid, deal_reference=deal_id)

    def derive_key_onchain(self, token_contract: str, token_id) -> bytes:
        """The contract's own derivation, for cross-checking ``derive_key``."""
        return bytes(
            self.contract.functions.deriveKey(Web3.to_checksum_address(token_contract), parse_token_id(token_id)).call()
        )


class AnchorBinder:
    """Builds anchor keys and records and hands them to a store."""

    def __init__(self, store: AnchorStore):
        self.store = store

    def derive_key(self, token_contract: str, token_id) -> bytes:
        return derive_key(token_contract, token_id)

    def bind(self, token_contract: str, token_id, record: AnchorRecord) -> Optional[str]:
        return self.store.set(self.derive_key(token_contract, token_id), record)

    def lookup(self, token_contract: str, token_id) -> Optional[AnchorRecord]:
        return self.store.get(self.derive_key(token_contract, token_id))


def store_from_settings(settings: Settings) -> AnchorStore:
    """Registry service when configured, otherwise the anchor contract."""
    if settings.registry_url:
        return RegistryAnchorStore(settings.registry_url)
    return ContractAnchorStore.from_settings(settings)
