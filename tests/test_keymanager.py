import sys
from pathlib import Path
import tempfile

import pytest

# Ensure project root on sys.path for direct execution.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from creditanchor import crypto, keymanager, library  # noqa: E402


def test_generate_load_and_list():
    with tempfile.TemporaryDirectory() as tmp:
        data = keymanager.generate_dummy_account("alice", base_dir=tmp)
        assert data["name"] == "alice"
        assert data["address"].startswith("0x")
        account = keymanager.load_account("alice", base_dir=tmp)
        assert len(account["private_key"]) == 32
        assert crypto.address_from_private_key(account["private_key"]) == data["address"]
        assert keymanager.list_accounts(base_dir=tmp) == ["alice"]


def test_sign_approval_recovers_to_account():
    with tempfile.TemporaryDirectory() as tmp:
        data = keymanager.generate_dummy_account("verifier", base_dir=tmp)
        message = library.approval_message(7)
        sig_hex = keymanager.sign_approval("verifier", message, base_dir=tmp)
        assert library.recover_signer_address(message, sig_hex) == data["address"]


def test_missing_account_raises():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(FileNotFoundError):
            keymanager.load_account("missing", base_dir=tmp)
        assert keymanager.list_accounts(base_dir=Path(tmp) / "nope") == []


if __name__ == "__main__":
    raise SystemExit(pytest.main([__file__, "-vv", "-s", "--capture=no"]))
