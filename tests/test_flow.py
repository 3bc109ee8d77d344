import sys
from pathlib import Path
import json
import tempfile
from pprint import pprint

import pytest

# Ensure project root on path for direct execution.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from creditanchor import crypto, hashing, keymanager, library  # noqa: E402
from creditanchor.anchor import AnchorBinder, MemoryAnchorStore  # noqa: E402
from creditanchor.errors import AuthenticationFailure, IntegrityMismatch  # noqa: E402
from creditanchor.models import Envelope, KeyEnvelope  # noqa: E402
from creditanchor.retriever import Retriever  # noqa: E402

GREEN = "\033[92m"
CYAN = "\033[96m"
YELLOW = "\033[93m"
RESET = "\033[0m"

NFT = "0x749777126B405832d92520Ec94D22B9685595027"
GATEWAY = "https://gw.test/ipfs/"
LOCATOR = "bafy-demo/zkredit.enc.json"


def banner(text: str, color: str = CYAN):
    print(f"{color}{'-'*30}\n{text}\n{'-'*30}{RESET}")


class _Response:
    def __init__(self, status_code, content=b""):
        self.status_code = status_code
        self.content = content


class _Gateway:
    """In-memory stand-in for an IPFS gateway."""

    def __init__(self):
        self.files = {}

    def get(self, url, timeout=None, allow_redirects=True):
        if url in self.files:
            return _Response(200, self.files[url])
        return _Response(404)


def test_alice_demo_disclosure_scenario():
    banner("Alice Demo: encrypt, wrap for verifier, unwrap, decrypt")
    payload = b'{"name":"Alice Demo","score":735}'
    message = "Approve decrypt for token #1"

    with tempfile.TemporaryDirectory() as tmp:
        keymanager.generate_dummy_account("verifier", base_dir=tmp)
        verifier = keymanager.load_account("verifier", base_dir=tmp)
        signature = keymanager.sign_approval("verifier", message, base_dir=tmp)

        envelope, raw_key = library.encrypt(payload)
        key_env = library.wrap(raw_key, message, signature)
        banner("Key envelope", color=YELLOW)
        print(key_env.to_json())

        # The key envelope travels as JSON.
        received = KeyEnvelope.from_json(key_env.to_json())
        opened_key = library.unwrap(received, verifier["private_key"])
        assert opened_key == raw_key
        assert library.decrypt(Envelope.from_json(envelope.to_bytes()), opened_key) == payload
        banner("Verifier decrypted payload successfully.", color=GREEN)


def test_owner_anchor_and_verifier_open():
    banner("Owner anchors envelope, verifier opens it by token id")
    meta = library.build_score_metadata("Alice Demo", 735)
    payload = json.dumps(meta, separators=(",", ":")).encode("utf-8")

    # Owner side.
    envelope, raw_key = library.encrypt(payload)
    stored = envelope.to_bytes()
    gateway = _Gateway()
    gateway.files[GATEWAY + LOCATOR] = stored
    binder = AnchorBinder(MemoryAnchorStore())
    key, record, tx_ref = library.anchor_envelope(binder, NFT, 1, stored, LOCATOR, deal_reference=7)
    assert tx_ref is None
    assert record.content_hash == hashing.digest(stored)
    banner("Anchor record", color=YELLOW)
    pprint({"key": crypto.hexe(key), **record.to_dict()})

    # Verifier side.
    retriever = Retriever([GATEWAY], session=gateway)
    plaintext = library.open_anchor(binder, retriever, NFT, 1, raw_key)
    assert json.loads(plaintext) == meta
    assert library.score_summary(plaintext) == "Name: Alice Demo | Score: 735"
    banner("Anchored envelope opened and verified.", color=GREEN)

    # Wrong key: tampering and wrong keys are reported differently.
    with pytest.raises(AuthenticationFailure):
        library.open_anchor(binder, retriever, NFT, 1, crypto.generate_key())

    # Gateway content replaced after anchoring.
    forged, _ = library.encrypt(payload, raw_key)
    gateway.files[GATEWAY + LOCATOR] = forged.to_bytes()
    with pytest.raises(IntegrityMismatch):
        library.open_anchor(binder, retriever, NFT, 1, raw_key)


if __name__ == "__main__":
    # -s/--capture=no ensures print output is visible when run directly.
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
