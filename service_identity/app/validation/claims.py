"""
Issuer, audience, lifetime and scope checks on verified claims.
"""

import math
import time
from typing import Callable, Optional

from shared.errors import ClaimValidationError, ScopeRejected
from shared.logging import get_logger

from ..config import TrustConfig
from .models import SCOPE_CLAIM_TYPES, ClaimSet, Rejection, RejectionReason


class ClaimsValidator:
    """Enforces the trust policy on an already verified claim set.

    Checks run in a fixed order: issuer, audience, lifetime, scope. The
    first failure wins.
    """

    def __init__(self, config: TrustConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.logger = get_logger("identity.claims")
        self._clock = clock

    def check(self, claims: ClaimSet, expected_issuer: str) -> None:
        """Raise on the first failed check."""
        self._check_issuer(claims, expected_issuer)
        self._check_audience(claims)
        self._check_lifetime(claims)
        self._check_scope(claims)

    def validate(self, claims: ClaimSet, expected_issuer: str) -> Optional[Rejection]:
        """Like :meth:`check`, but returns a rejection instead of raising."""
        try:
            self.check(claims, expected_issuer)
        except ScopeRejected as exc:
            self.logger.warning("Scope invalid", scope=self.config.required_scope, error=exc.message)
            return Rejection(RejectionReason.SCOPE_REJECTED, exc.message)
        except ClaimValidationError as exc:
            self.logger.warning("Claim validation failed", error=exc.message, details=exc.details)
            return Rejection(RejectionReason.CLAIM_VALIDATION_ERROR, exc.message)

        self.logger.debug("Scope valid", scope=self.config.required_scope)
        return None

    def _check_issuer(self, claims: ClaimSet, expected_issuer: str) -> None:
        issuer = claims.find_first("iss")
        if issuer is None:
            raise ClaimValidationError("Token missing issuer")
        # Exact, case-sensitive match; no trailing-slash normalization.
        if issuer.value != expected_issuer:
            raise ClaimValidationError("Issuer mismatch", details={"issuer": issuer.value})

    def _check_audience(self, claims: ClaimSet) -> None:
        audiences = [claim.value for claim in claims.find_all("aud")]
        if not audiences:
            raise ClaimValidationError("Token missing audience")
        if self.config.audience not in audiences:
            raise ClaimValidationError("Audience mismatch", details={"audience": audiences})

    def _check_lifetime(self, claims: ClaimSet) -> None:
        now = self._clock()
        skew = self.config.clock_skew_seconds

        expires = self._numeric_claim(claims, "exp")
        if expires is None:
            raise ClaimValidationError("Token missing expiration")
        if now > expires + skew:
            raise ClaimValidationError("Token expired", details={"exp": expires})

        not_before = self._numeric_claim(claims, "nbf")
        if not_before is not None and now < not_before - skew:
            raise ClaimValidationError("Token not yet valid", details={"nbf": not_before})

    def _check_scope(self, claims: ClaimSet) -> None:
        required = self.config.required_scope
        scope = ""
        for claim_type in SCOPE_CLAIM_TYPES:
            claim = claims.find_first(claim_type)
            if claim is not None:
                scope = claim.value
                break

        if not scope:
            raise ScopeRejected("Token has no scope claim")
        if scope.casefold() != required.casefold():
            raise ScopeRejected("Token scope does not grant access")

    @staticmethod
    def _numeric_claim(claims: ClaimSet, claim_type: str) -> Optional[float]:
        claim = claims.find_first(claim_type)
        if claim is None:
            return None
        try:
            value = float(claim.value)
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            raise ClaimValidationError(f"Claim '{claim_type}' is not a timestamp")
        return value
