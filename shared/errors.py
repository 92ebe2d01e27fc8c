"""
Shared error handling for the identity validation service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessError(Exception):
    """Base exception for token validation failures."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(AccessError):
    """Required validation settings are missing or invalid."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class DiscoveryError(AccessError):
    """The discovery document or JWKS could not be fetched or parsed."""

    def __init__(self, message: str = "Discovery failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("DISCOVERY_ERROR", message, details)


class SignatureError(AccessError):
    """Token is malformed or its signature does not verify."""

    def __init__(self, message: str = "Signature verification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SIGNATURE_ERROR", message, details)


class UnknownSigningKeyError(SignatureError):
    """Token references a key id absent from the current key set."""

    def __init__(self, kid: str):
        super().__init__(f"Signing key not found: {kid}", details={"kid": kid})
        self.kid = kid


class ClaimValidationError(AccessError):
    """Issuer, audience or lifetime check failed."""

    def __init__(self, message: str = "Claim validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CLAIM_VALIDATION_ERROR", message, details)


class ScopeRejected(AccessError):
    """Authenticated token lacks the required scope."""

    def __init__(self, message: str = "Required scope missing", details: Optional[Dict[str, Any]] = None):
        super().__init__("SCOPE_REJECTED", message, details)
