"""
Token validation package.

Validates bearer JWTs issued by the configured identity provider:

- Verifying the JWS signature against the published signing keys.
- Checking issuer, audience, lifetime and the required scope, in that order.
- Shaping the verified claims into a request-scoped ``Principal``.

Failures never escape ``TokenValidationEngine.validate``; they come back
as a rejected ``ValidationOutcome`` whose reason is only meant for logs.
"""

from .claims import ClaimsValidator
from .engine import TokenValidationEngine
from .models import (
    Claim,
    ClaimSet,
    Principal,
    Rejection,
    RejectionReason,
    TokenVerificationResponse,
    ValidationOutcome,
    get_preferred_username,
)
from .signature import SignatureVerifier, VerifiedToken

__all__ = [
    "Claim",
    "ClaimSet",
    "ClaimsValidator",
    "Principal",
    "Rejection",
    "RejectionReason",
    "SignatureVerifier",
    "TokenValidationEngine",
    "TokenVerificationResponse",
    "ValidationOutcome",
    "VerifiedToken",
    "get_preferred_username",
]
