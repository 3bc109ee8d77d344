"""
Envelope retrieval from content-addressed storage.

Gateways are tried one at a time in the configured order. A failed gateway
(network error, non-2xx status, body that is not an envelope, body whose hash
does not match) is logged and the next one is tried. There is exactly one
request per gateway per call.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import requests

from . import hashing
from .config import Settings
from .errors import CreditAnchorError, IntegrityMismatch, RetrievalFailure
from .models import Envelope

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A single gateway attempt failed."""


@dataclass(frozen=True)
class FetchResult:
    envelope: Envelope
    raw: bytes
    url: str


class Gateway:
    """An HTTP gateway that serves content at ``<base_url><locator>``."""

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout

    def url_for(self, locator: str) -> str:
        return self.base_url + locator.lstrip("/")

    def fetch(self, session: requests.Session, locator: str) -> FetchResult:
        url = self.url_for(locator)
        try:
            res = session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as exc:
            raise GatewayError(f"{url}: {exc}") from exc
        if not 200 <= res.status_code < 300:
            raise GatewayError(f"HTTP {res.status_code} {url}")
        raw = res.content
        try:
            envelope = Envelope.from_json(raw)
        except CreditAnchorError as exc:
            raise GatewayError(f"{url}: {exc}") from exc
        return FetchResult(envelope=envelope, raw=raw, url=url)

    def __repr__(self) -> str:
        return f"Gateway({self.base_url!r})"


class Retriever:
    def __init__(
        self,
        gateways: Sequence[Gateway | str],
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        if not gateways:
            raise ValueError("at least one gateway is required")
        self.gateways: List[Gateway] = [g if isinstance(g, Gateway) else Gateway(g, timeout=timeout) for g in gateways]
        self._owns_session = session is None
        self.session = session or requests.Session()

    def close(self) -> None:
        """Close the HTTP session if this retriever opened it."""
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "Retriever":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "Retriever":
        return cls(settings.gateways, session=session, timeout=settings.gateway_timeout)

    def retrieve(self, locator: str, expected_hash: str | bytes | None = None) -> FetchResult:
        """
        Return the first gateway response that parses as an envelope and, when
        ``expected_hash`` is given, hashes to it.

        Raises IntegrityMismatch when no gateway produced a matching body and at
        least one produced a mismatching one, otherwise RetrievalFailure.
        """
        want = hashing.parse_hash(expected_hash) if expected_hash is not None else None
        attempts: List[str] = []
        last_error: Optional[Exception] = None
        mismatch: Optional[IntegrityMismatch] = None
        for gateway in self.gateways:
            attempts.append(gateway.url_for(locator))
            try:
                result = gateway.fetch(self.session, locator)
                if want is not None:
                    hashing.verify_digest(result.raw, want)
            except IntegrityMismatch as exc:
                logger.warning("Hash mismatch from %s: %s", gateway.base_url, exc)
                mismatch = last_error = exc
                continue
            except GatewayError as exc:
                logger.warning("Gateway failed, trying next: %s", exc)
                last_error = exc
                continue
            logger.info("Fetched %s from %s", locator, result.url)
            return result
        if mismatch is not None:
            raise mismatch
        raise RetrievalFailure(locator, attempts, last_error)

    def fetch(self, locator: str, expected_hash: str | bytes | None = None) -> Envelope:
        return self.retrieve(locator, expected_hash=expected_hash).envelope
