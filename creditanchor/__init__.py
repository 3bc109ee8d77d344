"""
creditanchor package.
Encrypts score records into envelopes, wraps envelope keys for signature-identified
recipients, and anchors {locator, hash} records to token identities.
"""

__all__ = ["anchor", "config", "crypto", "errors", "hashing", "keymanager", "library", "models", "retriever"]
