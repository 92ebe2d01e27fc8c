"""
OIDC discovery document and signing-key cache.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import DiscoveryError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..config import TrustConfig


@dataclass(frozen=True)
class DiscoveryDocument:
    """Issuer and signing keys published by the identity provider."""

    issuer: str
    jwks_uri: str
    signing_keys: Tuple[Mapping[str, Any], ...]
    fetched_at: float = 0.0

    def find_key(self, kid: str) -> Optional[Mapping[str, Any]]:
        for key in self.signing_keys:
            if key.get("kid") == kid:
                return key
        return None

    @property
    def key_ids(self) -> Tuple[str, ...]:
        return tuple(str(key["kid"]) for key in self.signing_keys if "kid" in key)


class DiscoveryCache:
    """Fetches and caches the discovery document and JWKS.

    The document is refreshed lazily once it is older than ``cache_ttl``.
    Concurrent callers that find the cache cold or stale wait on a single
    in-flight fetch. When a refresh fails and an older document exists it
    keeps being served (``serve_stale_on_error``) until the provider
    recovers.
    """

    def __init__(
        self,
        config: TrustConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        cache_ttl: float = 3600.0,
        min_refresh_interval: float = 300.0,
        http_timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        serve_stale_on_error: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.cache_ttl = cache_ttl
        self.min_refresh_interval = min_refresh_interval
        self.serve_stale_on_error = serve_stale_on_error
        self.retry_config = retry_config or RetryConfig()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="identity-discovery")
        self.logger = get_logger("identity.discovery")

        self._clock = clock
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=http_timeout)
        self._document: Optional[DiscoveryDocument] = None
        self._lock = asyncio.Lock()
        # Bumped after every completed fetch attempt, successful or not.
        self._attempts = 0
        self._last_error: Optional[DiscoveryError] = None

    @property
    def well_known_endpoint(self) -> str:
        return self.config.well_known_endpoint

    @property
    def document(self) -> Optional[DiscoveryDocument]:
        """Currently cached document, without triggering a fetch."""
        return self._document

    async def get(self) -> DiscoveryDocument:
        """Return a fresh document, fetching it if missing or expired."""
        document = self._document
        if document is not None and not self._is_stale(document):
            return document

        attempts = self._attempts
        async with self._lock:
            # Another caller may have refreshed while we waited.
            document = self._document
            if document is not None and not self._is_stale(document):
                return document
            if self._attempted_since(attempts):
                return self._last_outcome()
            return await self._refresh_locked()

    async def request_refresh(self) -> DiscoveryDocument:
        """Force a re-fetch, e.g. after seeing an unknown key id.

        Refreshes are rate limited by ``min_refresh_interval`` so tokens
        carrying made-up key ids cannot hammer the provider.
        """
        attempts = self._attempts
        async with self._lock:
            if self._attempted_since(attempts):
                return self._last_outcome()
            document = self._document
            if document is not None and (self._clock() - document.fetched_at) < self.min_refresh_interval:
                self.logger.debug("Skipping discovery refresh, document is recent")
                return document
            return await self._refresh_locked()

    def invalidate(self) -> None:
        self._document = None
        self._last_error = None
        self.logger.info("Discovery cache cleared")

    async def warmup(self) -> None:
        """Eagerly load discovery data so the first request does not pay the cost."""
        try:
            await self.get()
        except DiscoveryError as exc:
            self.logger.warning("Discovery warmup failed", error=str(exc))

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _is_stale(self, document: DiscoveryDocument) -> bool:
        return (self._clock() - document.fetched_at) >= self.cache_ttl

    def _attempted_since(self, attempts: int) -> bool:
        """Whether a fetch completed after the caller read ``attempts``."""
        return self._attempts != attempts and (self._document is not None or self._last_error is not None)

    def _last_outcome(self) -> DiscoveryDocument:
        """Outcome of the fetch that finished while the caller waited for the lock."""
        if self._last_error is None or (self._document is not None and self.serve_stale_on_error):
            self.logger.debug("Sharing result of concurrent discovery fetch")
            return self._document
        raise DiscoveryError(self._last_error.message, details=self._last_error.details) from self._last_error

    async def _refresh_locked(self) -> DiscoveryDocument:
        try:
            document = await self._fetch_guarded()
        except DiscoveryError as exc:
            self._attempts += 1
            self._last_error = exc
            if self._document is not None and self.serve_stale_on_error:
                self.logger.warning(
                    "Using stale discovery document due to fetch failure",
                    error=str(exc),
                    endpoint=self.well_known_endpoint,
                )
                return self._document
            self.logger.error(
                "Failed to fetch discovery document",
                error=str(exc),
                endpoint=self.well_known_endpoint,
            )
            raise

        self._document = document
        self._attempts += 1
        self._last_error = None
        self.logger.info(
            "Discovery document refreshed",
            issuer=document.issuer,
            keys_count=len(document.signing_keys),
        )
        return document

    async def _fetch_guarded(self) -> DiscoveryDocument:
        fetch = retry_on_exception((httpx.HTTPError,), self.retry_config)(self._fetch)
        try:
            return await self.circuit_breaker.call(fetch)
        except CircuitBreakerOpenException as exc:
            raise DiscoveryError(str(exc)) from exc
        except RetryError as exc:
            raise DiscoveryError(
                f"Identity provider unreachable: {exc.last_exception}",
                details={"attempts": exc.attempts},
            ) from exc
        except httpx.InvalidURL as exc:
            raise DiscoveryError(f"Invalid discovery URL: {exc}") from exc

    async def _fetch(self) -> DiscoveryDocument:
        self.logger.debug("Get OIDC well known endpoints", endpoint=self.well_known_endpoint)
        metadata = await self._get_json(self.well_known_endpoint)

        issuer = metadata.get("issuer")
        jwks_uri = metadata.get("jwks_uri")
        if not isinstance(issuer, str) or not issuer:
            raise DiscoveryError("Discovery document missing 'issuer'")
        if not isinstance(jwks_uri, str) or not jwks_uri:
            raise DiscoveryError("Discovery document missing 'jwks_uri'")

        jwks = await self._get_json(jwks_uri)
        keys = jwks.get("keys")
        if not isinstance(keys, list):
            raise DiscoveryError("JWKS response missing 'keys' array")

        signing_keys = tuple(
            key for key in keys
            if isinstance(key, dict) and key.get("kty") and key.get("use", "sig") == "sig"
        )
        if not signing_keys:
            raise DiscoveryError("JWKS response contains no signing keys")

        return DiscoveryDocument(
            issuer=issuer,
            jwks_uri=jwks_uri,
            signing_keys=signing_keys,
            fetched_at=self._clock(),
        )

    async def _get_json(self, url: str) -> Dict[str, Any]:
        response = await self._client.get(url)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as exc:
            raise DiscoveryError(f"Invalid JSON from {url}") from exc
        if not isinstance(payload, dict):
            raise DiscoveryError(f"Expected a JSON object from {url}")
        return payload
