"""
Wire types: the encrypted envelope, the wrapped-key envelope and the anchor record.
Parsing validates field presence, encodings and fixed lengths and fails with
InvalidParameters before any cryptographic work happens.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from . import crypto
from .errors import InvalidParameters

CIPHER_ALG = "AES-256-GCM"
WRAP_ALG = "ECIES-secp256k1"
UINT64_MAX = 2**64 - 1


def _require(data: Dict[str, Any], field: str, kind: str, allow_empty: bool = False) -> str:
    if not isinstance(data, dict):
        raise InvalidParameters(f"{kind} must be a JSON object")
    value = data.get(field)
    if not isinstance(value, str) or not (value or allow_empty):
        raise InvalidParameters(f"{kind} field '{field}' is missing or not a string")
    return value


def _load(raw: str | bytes, kind: str) -> Dict[str, Any]:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidParameters(f"{kind} is not valid JSON") from exc


@dataclass(frozen=True)
class Envelope:
    algorithm: str
    nonce: bytes
    auth_tag: bytes
    ciphertext: bytes

    def validate(self) -> None:
        if self.algorithm != CIPHER_ALG:
            raise InvalidParameters(f"unsupported envelope algorithm {self.algorithm!r}, expected {CIPHER_ALG}")
        if len(self.nonce) != crypto.NONCE_SIZE:
            raise InvalidParameters(f"nonce must be {crypto.NONCE_SIZE} bytes, got {len(self.nonce)}")
        if len(self.auth_tag) != crypto.TAG_SIZE:
            raise InvalidParameters(f"auth tag must be {crypto.TAG_SIZE} bytes, got {len(self.auth_tag)}")

    def to_dict(self) -> Dict[str, str]:
        return {
            "alg": self.algorithm,
            "iv": crypto.b64e(self.nonce),
            "tag": crypto.b64e(self.auth_tag),
            "ciphertext": crypto.b64e(self.ciphertext),
        }

    def to_bytes(self) -> bytes:
        """Compact JSON, the exact bytes that get stored and hashed."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Envelope":
        env = cls(
            algorithm=_require(data, "alg", "envelope"),
            nonce=crypto.b64d(_require(data, "iv", "envelope"), "iv"),
            auth_tag=crypto.b64d(_require(data, "tag", "envelope"), "tag"),
            ciphertext=crypto.b64d(_require(data, "ciphertext", "envelope", allow_empty=True), "ciphertext"),
        )
        env.validate()
        return env

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Envelope":
        return cls.from_dict(_load(raw, "envelope"))


@dataclass(frozen=True)
class KeyEnvelope:
    approval_message: str
    signature: bytes
    algorithm: str
    wrapped_key: bytes

    def to_dict(self) -> Dict[str, str]:
        return {
            "forMessage": self.approval_message,
            "signature": crypto.hexe(self.signature),
            "alg": self.algorithm,
            "key_b64_enc": crypto.b64e(self.wrapped_key),
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyEnvelope":
        algorithm = _require(data, "alg", "key envelope")
        if algorithm != WRAP_ALG:
            raise InvalidParameters(f"unsupported key envelope algorithm {algorithm!r}, expected {WRAP_ALG}")
        return cls(
            approval_message=_require(data, "forMessage", "key envelope"),
            signature=crypto.hexd(_require(data, "signature", "key envelope"), "signature"),
            algorithm=algorithm,
            wrapped_key=crypto.b64d(_require(data, "key_b64_enc", "key envelope"), "key_b64_enc"),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "KeyEnvelope":
        return cls.from_dict(_load(raw, "key envelope"))


@dataclass(frozen=True)
class AnchorRecord:
    locator: str
    content_hash: bytes
    piece_locator: str = ""
    deal_reference: int = 0

    def __post_init__(self):
        if not self.locator:
            raise InvalidParameters("anchor record locator is required")
        if len(self.content_hash) != 32:
            raise InvalidParameters(f"content hash must be 32 bytes, got {len(self.content_hash)}")
        if not 0 <= self.deal_reference <= UINT64_MAX:
            raise InvalidParameters("deal id must fit in uint64")

    def as_tuple(self):
        """Field order of the on-chain record struct (cid, pieceCid, dealId, encHash)."""
        return (self.locator, self.piece_locator, self.deal_reference, self.content_hash)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cid": self.locator,
            "pieceCid": self.piece_locator,
            "dealId": self.deal_reference,
            "encHash": crypto.hexe(self.content_hash),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnchorRecord":
        piece = data.get("pieceCid") or ""
        if not isinstance(piece, str):
            raise InvalidParameters("anchor record pieceCid must be a string")
        deal = data.get("dealId", 0)
        if not isinstance(deal, int) or isinstance(deal, bool):
            raise InvalidParameters("anchor record dealId must be an integer")
        return cls(
            locator=_require(data, "cid", "anchor record"),
            content_hash=crypto.hexd(_require(data, "encHash", "anchor record"), "encHash"),
            piece_locator=piece,
            deal_reference=deal,
        )
