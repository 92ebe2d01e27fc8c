"""
FastAPI dependencies that guard routes with bearer token validation.
"""

from typing import Callable, Awaitable, Optional

from fastapi import Header, HTTPException, status

from shared.logging import set_user_context

from .validation import Principal, RejectionReason, TokenValidationEngine

_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def require_principal(engine: TokenValidationEngine) -> Callable[..., Awaitable[Principal]]:
    """Build a dependency returning the validated caller or raising 401/403/503.

    The response body never says why a token failed.
    """

    async def dependency(authorization: Optional[str] = Header(default=None)) -> Principal:
        outcome = await engine.validate(authorization)
        if outcome.principal is not None:
            set_user_context(outcome.principal.subject)
            return outcome.principal

        if outcome.reason == RejectionReason.SCOPE_REJECTED:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        if outcome.reason == RejectionReason.DISCOVERY_ERROR:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication temporarily unavailable",
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers=_CHALLENGE,
        )

    return dependency
