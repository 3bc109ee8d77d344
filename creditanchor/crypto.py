import base64
import binascii
import os
from typing import Tuple

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from ecies import decrypt as ecies_decrypt
from ecies import encrypt as ecies_encrypt
from eth_account import Account
from eth_account.messages import defunct_hash_message, encode_defunct
from eth_keys import keys
from eth_utils import keccak

from .errors import InvalidParameters, RecoveryFailure

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
SIGNATURE_SIZE = 65


def b64e(data: bytes) -> str:
    """Standard base64 encoding without newlines."""
    return base64.b64encode(data).decode("ascii")


def b64d(data: str, field: str = "value") -> bytes:
    """Strict standard base64 decoding; malformed input is InvalidParameters."""
    try:
        return base64.b64decode(data.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, AttributeError) as exc:
        raise InvalidParameters(f"{field} is not valid base64") from exc


def hexd(data: str, field: str = "value") -> bytes:
    """Decode hex with or without a 0x prefix. Whitespace is not allowed."""
    if not isinstance(data, str):
        raise InvalidParameters(f"{field} must be a hex string")
    body = data[2:] if data[:2].lower() == "0x" else data
    try:
        return binascii.unhexlify(body)
    except ValueError as exc:
        raise InvalidParameters(f"{field} is not valid hex") from exc


def hexe(data: bytes) -> str:
    return "0x" + data.hex()


def generate_key() -> bytes:
    return os.urandom(KEY_SIZE)


def encrypt_aes_gcm(key: bytes, plaintext: bytes, nonce: bytes | None = None) -> Tuple[bytes, bytes, bytes]:
    """Encrypt using AES-GCM. Returns (ciphertext, tag, nonce)."""
    nonce = nonce or os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(key)
    ct_with_tag = aesgcm.encrypt(nonce, plaintext, None)
    ciphertext, tag = ct_with_tag[:-TAG_SIZE], ct_with_tag[-TAG_SIZE:]
    return ciphertext, tag, nonce


def decrypt_aes_gcm(key: bytes, ciphertext: bytes, tag: bytes, nonce: bytes) -> bytes:
    """Decrypt using AES-GCM and verify tag. Raises cryptography's InvalidTag."""
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext + tag, None)


def keccak256(data: bytes) -> bytes:
    return keccak(data)


def personal_message_digest(message: str) -> bytes:
    """EIP-191 version 0x45 digest, the one wallets sign for personal_sign."""
    return bytes(defunct_hash_message(text=message))


def recover_public_key(digest: bytes, signature: bytes) -> keys.PublicKey:
    """
    Recover the secp256k1 public key from a 65-byte r||s||v signature.
    Accepts v as 0/1 or the Ethereum 27/28 form.
    """
    if len(signature) != SIGNATURE_SIZE:
        raise RecoveryFailure(f"signature must be {SIGNATURE_SIZE} bytes, got {len(signature)}")
    sig = bytearray(signature)
    if sig[64] >= 27:
        sig[64] -= 27
    try:
        return keys.Signature(signature_bytes=bytes(sig)).recover_public_key_from_msg_hash(digest)
    except Exception as exc:  # pylint: disable=broad-except
        raise RecoveryFailure(str(exc) or type(exc).__name__) from exc


def ecies_wrap(public_key: keys.PublicKey, data: bytes) -> bytes:
    """ECIES-secp256k1 encrypt to an uncompressed public key."""
    return ecies_encrypt(b"\x04" + public_key.to_bytes(), data)


def ecies_unwrap(private_key: bytes, blob: bytes) -> bytes:
    return ecies_decrypt(private_key, blob)


def generate_account() -> Tuple[bytes, str]:
    """Generate a secp256k1 account. Returns (private key bytes, checksum address)."""
    acct = Account.create()
    return bytes(acct.key), acct.address


def address_from_private_key(private_key: bytes) -> str:
    return Account.from_key(private_key).address


def sign_message(private_key: bytes, message: str) -> bytes:
    """personal_sign over ``message``; 65 bytes with v in {27, 28}."""
    signed = Account.sign_message(encode_defunct(text=message), private_key=private_key)
    return bytes(signed.signature)
