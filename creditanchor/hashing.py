"""
Content hashing for envelopes.

keccak256 is used so the hash can be compared with the ``encHash`` stored by the
anchor contract without conversion.
"""

from . import crypto
from .errors import IntegrityMismatch, InvalidParameters


def digest(data: bytes) -> bytes:
    """32-byte keccak256 of ``data``."""
    return crypto.keccak256(data)


def digest_hex(data: bytes) -> str:
    """0x-prefixed hex form, as printed and as passed to ``set-anchor``."""
    return crypto.hexe(digest(data))


def parse_hash(value: str | bytes) -> bytes:
    raw = crypto.hexd(value, "content hash") if isinstance(value, str) else bytes(value)
    if len(raw) != 32:
        raise InvalidParameters(f"content hash must be 32 bytes, got {len(raw)}")
    return raw


def verify_digest(data: bytes, expected: str | bytes) -> bytes:
    """Recompute the hash of ``data`` and compare with ``expected``."""
    want = parse_hash(expected)
    got = digest(data)
    if got != want:
        raise IntegrityMismatch(crypto.hexe(want), crypto.hexe(got))
    return got
