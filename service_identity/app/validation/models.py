"""
Value types produced by token validation.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple

from pydantic import BaseModel

PREFERRED_USERNAME_CLAIM = "preferred_username"
SCOPE_CLAIM_TYPES = ("scp", "http://schemas.microsoft.com/identity/claims/scope")


class Claim(NamedTuple):
    """A single typed assertion from a token."""
    type: str
    value: str


def _claim_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


class ClaimSet:
    """Ordered, immutable sequence of claims; types may repeat."""

    __slots__ = ("_claims",)

    def __init__(self, claims: Tuple[Claim, ...] = ()):
        self._claims = tuple(Claim(*claim) for claim in claims)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClaimSet":
        """Flatten a decoded JWT payload; list values yield one claim each."""
        claims: List[Claim] = []
        for claim_type, value in payload.items():
            if isinstance(value, list):
                claims.extend(Claim(claim_type, _claim_value(item)) for item in value)
            elif value is not None:
                claims.append(Claim(claim_type, _claim_value(value)))
        return cls(tuple(claims))

    def find_first(self, claim_type: str) -> Optional[Claim]:
        for claim in self._claims:
            if claim.type == claim_type:
                return claim
        return None

    def find_all(self, claim_type: str) -> List[Claim]:
        return [claim for claim in self._claims if claim.type == claim_type]

    def has_claim(self, claim_type: str) -> bool:
        return self.find_first(claim_type) is not None

    def value_of(self, claim_type: str, default: str = "") -> str:
        claim = self.find_first(claim_type)
        return claim.value if claim is not None else default

    def to_dict(self) -> Dict[str, Any]:
        """Group claims by type; repeated types become lists."""
        grouped: Dict[str, Any] = {}
        for claim in self._claims:
            if claim.type not in grouped:
                grouped[claim.type] = claim.value
            elif isinstance(grouped[claim.type], list):
                grouped[claim.type].append(claim.value)
            else:
                grouped[claim.type] = [grouped[claim.type], claim.value]
        return grouped

    def __iter__(self) -> Iterator[Claim]:
        return iter(self._claims)

    def __len__(self) -> int:
        return len(self._claims)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClaimSet):
            return NotImplemented
        return self._claims == other._claims

    def __hash__(self) -> int:
        return hash(self._claims)

    def __repr__(self) -> str:
        return f"ClaimSet({list(self._claims)!r})"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller; lives only as long as one validation call."""

    claims: ClaimSet
    header: Dict[str, Any] = field(default_factory=dict)

    @property
    def subject(self) -> str:
        return self.claims.value_of("sub")

    @property
    def preferred_username(self) -> str:
        return self.claims.value_of(PREFERRED_USERNAME_CLAIM)

    @property
    def scope(self) -> str:
        for claim_type in SCOPE_CLAIM_TYPES:
            claim = self.claims.find_first(claim_type)
            if claim is not None:
                return claim.value
        return ""


def get_preferred_username(principal: Principal) -> str:
    """Return the ``preferred_username`` claim, or an empty string."""
    return principal.claims.value_of(PREFERRED_USERNAME_CLAIM)


class RejectionReason(str, Enum):
    """Why a token was turned away. Logged, never sent to clients."""
    MALFORMED_HEADER = "malformed_header"
    DISCOVERY_ERROR = "discovery_error"
    SIGNATURE_ERROR = "signature_error"
    CLAIM_VALIDATION_ERROR = "claim_validation_error"
    SCOPE_REJECTED = "scope_rejected"
    VALIDATION_ERROR = "validation_error"


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    detail: str = ""


class TokenVerificationResponse(BaseModel):
    """Uniform view of an outcome, safe to hand to clients."""
    valid: bool
    claims: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ValidationOutcome:
    """Either an accepted principal or a rejection, never both."""

    principal: Optional[Principal] = None
    rejection: Optional[Rejection] = None

    def __post_init__(self) -> None:
        if (self.principal is None) == (self.rejection is None):
            raise ValueError("outcome needs exactly one of principal or rejection")

    @classmethod
    def accept(cls, principal: Principal) -> "ValidationOutcome":
        return cls(principal=principal)

    @classmethod
    def reject(cls, reason: RejectionReason, detail: str = "") -> "ValidationOutcome":
        return cls(rejection=Rejection(reason, detail))

    @property
    def accepted(self) -> bool:
        return self.principal is not None

    @property
    def reason(self) -> Optional[RejectionReason]:
        return self.rejection.reason if self.rejection is not None else None

    def __bool__(self) -> bool:
        return self.accepted

    def to_response(self) -> TokenVerificationResponse:
        if self.principal is None:
            return TokenVerificationResponse(valid=False)
        return TokenVerificationResponse(valid=True, claims=self.principal.claims.to_dict())
