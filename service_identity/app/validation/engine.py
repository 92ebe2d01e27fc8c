"""
Token validation engine: the public entry point for bearer validation.
"""

from typing import Optional, Tuple

from shared.circuit_breaker import CircuitBreaker
from shared.errors import DiscoveryError, SignatureError, UnknownSigningKeyError
from shared.logging import get_logger
from shared.retry import RetryConfig

from ..config import IdentitySettings, TrustConfig
from ..discovery import DiscoveryCache, DiscoveryDocument
from .claims import ClaimsValidator
from .models import Principal, RejectionReason, ValidationOutcome, get_preferred_username
from .signature import SignatureVerifier, VerifiedToken

BEARER_PREFIX = "Bearer "


class TokenValidationEngine:
    """Validates ``Authorization`` header values.

    One instance is shared by all requests. Results are returned to the
    caller and never kept on the engine.
    """

    get_preferred_username = staticmethod(get_preferred_username)

    def __init__(
        self,
        config: TrustConfig,
        discovery: Optional[DiscoveryCache] = None,
        verifier: Optional[SignatureVerifier] = None,
        claims_validator: Optional[ClaimsValidator] = None,
    ):
        self.config = config
        self.discovery = discovery or DiscoveryCache(config)
        self.verifier = verifier or SignatureVerifier(config.allowed_algorithms)
        self.claims_validator = claims_validator or ClaimsValidator(config)
        self.logger = get_logger("identity.engine")

    @classmethod
    def from_settings(cls, settings: IdentitySettings) -> "TokenValidationEngine":
        """Build an engine and its collaborators from service settings."""
        config = settings.to_trust_config()
        discovery = DiscoveryCache(
            config,
            cache_ttl=settings.discovery_ttl_seconds,
            min_refresh_interval=settings.discovery_min_refresh_seconds,
            http_timeout=settings.http_timeout,
            retry_config=RetryConfig(max_attempts=settings.discovery_max_attempts),
            circuit_breaker=CircuitBreaker(name="identity-discovery"),
            serve_stale_on_error=settings.serve_stale_on_error,
        )
        return cls(config, discovery=discovery)

    async def validate(self, authorization_header: Optional[str]) -> ValidationOutcome:
        """Validate a raw ``Authorization`` header value.

        Never raises for token problems: every failure becomes a rejected
        outcome whose reason is logged but not meant for the client.
        """
        token = self._extract_token(authorization_header)
        if token is None:
            self.logger.debug("Authorization header is not a bearer token")
            return ValidationOutcome.reject(RejectionReason.MALFORMED_HEADER)

        try:
            document = await self.discovery.get()
            verified, document = await self._verify_signature(token, document)
        except DiscoveryError as exc:
            self.logger.error("Identity provider metadata unavailable", error=exc.message)
            return ValidationOutcome.reject(RejectionReason.DISCOVERY_ERROR, exc.message)
        except SignatureError as exc:
            self.logger.warning("Token signature rejected", error=exc.message, details=exc.details)
            return ValidationOutcome.reject(RejectionReason.SIGNATURE_ERROR, exc.message)
        except Exception as exc:
            self.logger.exception("Unexpected error during token validation")
            return ValidationOutcome.reject(RejectionReason.VALIDATION_ERROR, str(exc))

        try:
            rejection = self.claims_validator.validate(verified.claims, document.issuer)
        except Exception as exc:
            self.logger.exception("Unexpected error during claim validation")
            return ValidationOutcome.reject(RejectionReason.VALIDATION_ERROR, str(exc))

        if rejection is not None:
            return ValidationOutcome(rejection=rejection)

        principal = Principal(claims=verified.claims, header=verified.header)
        self.logger.info("Token validated", sub=principal.subject)
        return ValidationOutcome.accept(principal)

    async def close(self) -> None:
        await self.discovery.close()

    async def _verify_signature(
        self, token: str, document: DiscoveryDocument
    ) -> Tuple[VerifiedToken, DiscoveryDocument]:
        """Verify the signature, refreshing keys once on an unknown ``kid``."""
        try:
            return self.verifier.verify(token, document.signing_keys), document
        except UnknownSigningKeyError as exc:
            self.logger.info("Unknown signing key, refreshing discovery", kid=exc.kid)
            refreshed = await self.discovery.request_refresh()
            if refreshed is document:
                raise
            return self.verifier.verify(token, refreshed.signing_keys), refreshed

    @staticmethod
    def _extract_token(authorization_header: Optional[str]) -> Optional[str]:
        if not isinstance(authorization_header, str):
            return None
        if not authorization_header.startswith(BEARER_PREFIX):
            return None
        token = authorization_header[len(BEARER_PREFIX):].strip()
        return token or None
