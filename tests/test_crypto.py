import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for direct `python tests/test_crypto.py` runs.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eth_account import Account  # noqa: E402
from eth_account.messages import encode_defunct  # noqa: E402

from creditanchor import crypto  # noqa: E402
from creditanchor.errors import InvalidParameters, RecoveryFailure  # noqa: E402

GREEN = "\033[92m"
CYAN = "\033[96m"
YELLOW = "\033[93m"
RESET = "\033[0m"


def heading(name: str, color: str = CYAN):
    print(f"\n{color}--- {name} ---{RESET}")


def test_b64_roundtrip_and_strictness():
    heading("test_b64_roundtrip_and_strictness", color=YELLOW)
    raw = b"\x00\xffhello world"
    encoded = crypto.b64e(raw)
    assert isinstance(encoded, str)
    assert crypto.b64d(encoded) == raw
    with pytest.raises(InvalidParameters):
        crypto.b64d("not base64!!")


def test_hex_accepts_prefix():
    heading("test_hex_accepts_prefix", color=YELLOW)
    assert crypto.hexd("0xdeadbeef") == b"\xde\xad\xbe\xef"
    assert crypto.hexd("DEADBEEF") == b"\xde\xad\xbe\xef"
    assert crypto.hexe(b"\x01\x02") == "0x0102"
    with pytest.raises(InvalidParameters):
        crypto.hexd("0xzz")
    with pytest.raises(InvalidParameters):
        crypto.hexd("de ad")
    with pytest.raises(InvalidParameters):
        crypto.hexd("0xabc")


def test_encrypt_decrypt_aes_gcm():
    heading("test_encrypt_decrypt_aes_gcm", color=GREEN)
    key = crypto.generate_key()
    ciphertext, tag, nonce = crypto.encrypt_aes_gcm(key, b"confidential payload")
    assert len(nonce) == crypto.NONCE_SIZE
    assert len(tag) == crypto.TAG_SIZE
    assert crypto.decrypt_aes_gcm(key, ciphertext, tag, nonce) == b"confidential payload"
    with pytest.raises(Exception):
        crypto.decrypt_aes_gcm(crypto.generate_key(), ciphertext, tag, nonce)


def test_fresh_nonce_per_encryption():
    heading("test_fresh_nonce_per_encryption", color=YELLOW)
    key = crypto.generate_key()
    nonces = {crypto.encrypt_aes_gcm(key, b"same")[2] for _ in range(20)}
    assert len(nonces) == 20


def test_keccak_known_vector():
    heading("test_keccak_known_vector", color=YELLOW)
    # keccak256 of the empty string, not SHA3-256.
    assert crypto.keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_recover_public_key_matches_signer():
    heading("test_recover_public_key_matches_signer", color=GREEN)
    priv, address = crypto.generate_account()
    message = "Approve decrypt for token #1"
    sig = crypto.sign_message(priv, message)
    assert len(sig) == 65 and sig[64] in (27, 28)
    pub = crypto.recover_public_key(crypto.personal_message_digest(message), sig)
    assert pub.to_checksum_address() == address


def test_recover_accepts_zero_one_v():
    heading("test_recover_accepts_zero_one_v", color=GREEN)
    priv, address = crypto.generate_account()
    sig = bytearray(crypto.sign_message(priv, "hello"))
    sig[64] -= 27
    pub = crypto.recover_public_key(crypto.personal_message_digest("hello"), bytes(sig))
    assert pub.to_checksum_address() == address


def test_personal_digest_matches_eth_account():
    heading("test_personal_digest_matches_eth_account", color=CYAN)
    acct = Account.create()
    signed = Account.sign_message(encode_defunct(text="abc"), private_key=acct.key)
    assert crypto.personal_message_digest("abc") == bytes(signed.message_hash)
    assert crypto.personal_message_digest("abc") == crypto.keccak256(b"\x19Ethereum Signed Message:\n3abc")


def test_recover_rejects_malformed_signatures():
    heading("test_recover_rejects_malformed_signatures", color=YELLOW)
    digest = crypto.personal_message_digest("msg")
    with pytest.raises(RecoveryFailure):
        crypto.recover_public_key(digest, b"\x01" * 64)
    with pytest.raises(RecoveryFailure):
        crypto.recover_public_key(digest, b"\x01" * 64 + b"\x05")


def test_ecies_wrap_unwrap():
    heading("test_ecies_wrap_unwrap", color=GREEN)
    priv, _ = crypto.generate_account()
    sig = crypto.sign_message(priv, "m")
    pub = crypto.recover_public_key(crypto.personal_message_digest("m"), sig)
    secret = crypto.generate_key()
    blob = crypto.ecies_wrap(pub, secret)
    assert crypto.ecies_unwrap(priv, blob) == secret
    other, _ = crypto.generate_account()
    with pytest.raises(Exception):
        crypto.ecies_unwrap(other, blob)


if __name__ == "__main__":
    # Running as a script shows verbose pytest output in the terminal.
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
