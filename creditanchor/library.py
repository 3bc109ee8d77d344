import json
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from cryptography.exceptions import InvalidTag

from . import crypto, hashing
from .anchor import AnchorBinder
from .errors import AuthenticationFailure, DecryptionFailure, InvalidParameters, RecoveryFailure
from .models import CIPHER_ALG, WRAP_ALG, AnchorRecord, Envelope, KeyEnvelope
from .retriever import Retriever

logger = logging.getLogger(__name__)

SCORE_SCHEMA = "zkredit-v1"
SCORE_TRAIT = "ZKreditScore"


def _check_key(key: bytes) -> bytes:
    if not isinstance(key, (bytes, bytearray)) or len(key) != crypto.KEY_SIZE:
        size = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
        raise InvalidParameters(f"key must be {crypto.KEY_SIZE} bytes, got {size}")
    return bytes(key)


def _as_bytes(value: str | bytes, field: str) -> bytes:
    return crypto.hexd(value, field) if isinstance(value, str) else bytes(value)


def encrypt(payload: bytes, key: Optional[bytes] = None) -> Tuple[Envelope, bytes]:
    """
    Encrypt ``payload`` into an AES-256-GCM envelope.
    A fresh random key is generated when none is given. Returns (envelope, key).
    """
    key = crypto.generate_key() if key is None else _check_key(key)
    ciphertext, tag, nonce = crypto.encrypt_aes_gcm(key, payload)
    return Envelope(algorithm=CIPHER_ALG, nonce=nonce, auth_tag=tag, ciphertext=ciphertext), key


def decrypt(envelope: Envelope, key: bytes) -> bytes:
    """Verify the tag and return the plaintext. Nothing is returned if the tag fails."""
    envelope.validate()
    key = _check_key(key)
    try:
        return crypto.decrypt_aes_gcm(key, envelope.ciphertext, envelope.auth_tag, envelope.nonce)
    except InvalidTag as exc:
        raise AuthenticationFailure() from exc


def _signature_bytes(signature: str | bytes) -> bytes:
    try:
        return _as_bytes(signature, "signature")
    except InvalidParameters as exc:
        raise RecoveryFailure("signature is not valid hex") from exc


def recover_signer(approval_message: str, signature: str | bytes):
    digest = crypto.personal_message_digest(approval_message)
    return crypto.recover_public_key(digest, _signature_bytes(signature))


def recover_signer_address(approval_message: str, signature: str | bytes) -> str:
    """
    Checksum address of whoever signed ``approval_message``.
    ``wrap`` does not check this against anyone; callers compare it with the
    expected token owner before treating a disclosure as authorized.
    """
    return recover_signer(approval_message, signature).to_checksum_address()


def wrap(raw_key: bytes, approval_message: str, signature: str | bytes) -> KeyEnvelope:
    """Wrap ``raw_key`` for the public key recovered from ``signature`` over ``approval_message``."""
    raw_key = _check_key(raw_key)
    if not isinstance(approval_message, str) or not approval_message:
        raise InvalidParameters("approval message is required")
    sig = _signature_bytes(signature)
    public_key = recover_signer(approval_message, sig)
    wrapped = crypto.ecies_wrap(public_key, raw_key)
    logger.debug("Wrapped key for %s", public_key.to_checksum_address())
    return KeyEnvelope(approval_message=approval_message, signature=sig, algorithm=WRAP_ALG, wrapped_key=wrapped)


def unwrap(key_envelope: KeyEnvelope, private_key: str | bytes) -> bytes:
    """
    Open a key envelope with the recipient's private key.
    A wrong private key is only detected by the ECIES cipher's own authentication.
    """
    priv = _as_bytes(private_key, "private key")
    if len(priv) != 32:
        raise InvalidParameters(f"private key must be 32 bytes, got {len(priv)}")
    try:
        raw_key = crypto.ecies_unwrap(priv, key_envelope.wrapped_key)
    except Exception as exc:  # pylint: disable=broad-except
        raise DecryptionFailure(str(exc)) from exc
    if len(raw_key) != crypto.KEY_SIZE:
        raise DecryptionFailure(f"unwrapped key has {len(raw_key)} bytes")
    return raw_key


def approval_message(token_id: int, anchor_key: Optional[bytes] = None) -> str:
    """
    Message a recipient signs to request disclosure. Passing ``anchor_key`` ties
    the approval to one anchored record instead of only to the token.
    """
    message = f"Approve decrypt for token #{token_id}"
    if anchor_key is not None:
        message += f" (anchor {crypto.hexe(anchor_key)})"
    return message


def build_score_metadata(name: str, score: int, encrypted_at: Optional[str] = None) -> Dict:
    return {
        "name": name,
        "description": "ZKredit score (encrypted)",
        "attributes": [{"trait_type": SCORE_TRAIT, "value": score}],
        "schema": SCORE_SCHEMA,
        "encryptedAt": encrypted_at or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


def score_summary(payload: bytes) -> Optional[str]:
    """``Name: ... | Score: ...`` for score metadata payloads, None for anything else."""
    try:
        meta = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(meta, dict) or meta.get("schema") != SCORE_SCHEMA:
        return None
    attributes = meta.get("attributes") or [{}]
    return f"Name: {meta.get('name')} | Score: {attributes[0].get('value')}"


def anchor_envelope(
    binder: AnchorBinder,
    token_contract: str,
    token_id,
    envelope_bytes: bytes,
    locator: str,
    piece_locator: str = "",
    deal_reference: int = 0,
) -> Tuple[bytes, AnchorRecord, Optional[str]]:
    """Hash stored envelope bytes and bind {locator, hash} to the token. Returns (key, record, tx)."""
    record = AnchorRecord(
        locator=locator,
        content_hash=hashing.digest(envelope_bytes),
        piece_locator=piece_locator,
        deal_reference=deal_reference,
    )
    key = binder.derive_key(token_contract, token_id)
    tx_ref = binder.store.set(key, record)
    return key, record, tx_ref


def open_anchor(binder: AnchorBinder, retriever: Retriever, token_contract: str, token_id, key: bytes) -> bytes:
    """Anchor lookup, fetch, hash check and decrypt for one token."""
    record = binder.lookup(token_contract, token_id)
    if record is None:
        raise InvalidParameters(f"no anchor record for {token_contract} #{token_id}")
    envelope = retriever.fetch(record.locator, expected_hash=record.content_hash)
    return decrypt(envelope, key)
