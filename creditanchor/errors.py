"""Failure kinds surfaced by creditanchor operations."""


class CreditAnchorError(Exception):
    """Base class. ``exit_code`` is what the CLI returns for this kind."""

    exit_code = 1
    label = "error"

    def __str__(self) -> str:
        detail = super().__str__()
        return f"{self.label}: {detail}" if detail else self.label


class InvalidParameters(CreditAnchorError, ValueError):
    exit_code = 2
    label = "invalid parameters"


class AuthenticationFailure(CreditAnchorError):
    """Envelope tag did not verify: tampered content, wrong key or wrong nonce."""

    exit_code = 3
    label = "authentication failed (wrong key or tampered envelope)"


class RecoveryFailure(CreditAnchorError):
    exit_code = 4
    label = "signature does not recover to a public key"


class DecryptionFailure(CreditAnchorError):
    """Key envelope could not be opened, usually a private key mismatch."""

    exit_code = 5
    label = "key envelope decryption failed (private key does not match recipient)"


class IntegrityMismatch(CreditAnchorError):
    exit_code = 6
    label = "content hash does not match anchored hash"

    def __init__(self, expected: str, actual: str):
        super().__init__(f"expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class AnchorStoreError(CreditAnchorError):
    """The anchor store rejected a call or could not be reached."""

    exit_code = 8
    label = "anchor store call failed"


class RetrievalFailure(CreditAnchorError):
    """Every gateway failed. ``last_error`` is the final underlying failure."""

    exit_code = 7
    label = "retrieval failed on all gateways"

    def __init__(self, locator: str, attempts, last_error: Exception | None = None):
        super().__init__(f"{locator} after {len(attempts)} attempt(s); last error: {last_error}")
        self.locator = locator
        self.attempts = list(attempts)
        self.last_error = last_error
