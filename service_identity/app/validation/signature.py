"""
JWS signature verification against the provider's signing keys.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from jose import jwk, jwt
from jose.exceptions import JOSEError

from shared.errors import SignatureError, UnknownSigningKeyError
from shared.logging import get_logger

from .models import ClaimSet

# Claims are checked by ClaimsValidator, in a fixed order; the library only
# verifies the signature.
_SIGNATURE_ONLY = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}

_KEY_TYPES = {"RS": "RSA", "PS": "RSA", "ES": "EC", "HS": "oct"}


@dataclass(frozen=True)
class VerifiedToken:
    """Header and claims of a token whose signature checked out."""

    header: Dict[str, Any]
    claims: ClaimSet
    payload: Dict[str, Any] = field(default_factory=dict)


class SignatureVerifier:
    """Verifies that a token was signed by one of the published keys."""

    def __init__(self, allowed_algorithms: Sequence[str] = ("RS256",)):
        self.allowed_algorithms = tuple(alg for alg in allowed_algorithms if alg.lower() != "none")
        self.logger = get_logger("identity.signature")

    def verify(self, token: str, signing_keys: Iterable[Mapping[str, Any]]) -> VerifiedToken:
        """Verify ``token`` and return its header and claims.

        Raises :class:`SignatureError` for malformed tokens, disallowed or
        mismatched algorithms and bad signatures, and
        :class:`UnknownSigningKeyError` when the ``kid`` is not published.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as exc:
            raise SignatureError("Malformed token", details={"error": str(exc)}) from exc

        alg = header.get("alg")
        if not isinstance(alg, str) or not alg or alg.lower() == "none":
            raise SignatureError("Unsigned tokens are not accepted")
        if alg not in self.allowed_algorithms:
            raise SignatureError("Token algorithm not allowed", details={"alg": alg})

        candidates = self._candidate_keys(header, alg, list(signing_keys))

        last_error: Optional[Exception] = None
        for key_data in candidates:
            try:
                key = jwk.construct(dict(key_data), algorithm=alg)
                payload = jwt.decode(token, key, algorithms=[alg], options=_SIGNATURE_ONLY)
            except JOSEError as exc:
                last_error = exc
                continue

            self.logger.debug("Token signature verified", kid=key_data.get("kid"), alg=alg)
            return VerifiedToken(
                header=dict(header),
                claims=ClaimSet.from_payload(payload),
                payload=payload,
            )

        raise SignatureError(
            "Signature verification failed",
            details={"error": str(last_error) if last_error else "no usable key"},
        )

    def _candidate_keys(
        self,
        header: Mapping[str, Any],
        alg: str,
        signing_keys: List[Mapping[str, Any]],
    ) -> List[Mapping[str, Any]]:
        kid = header.get("kid")
        if kid is not None:
            for key_data in signing_keys:
                if key_data.get("kid") == kid:
                    key_alg = key_data.get("alg")
                    if key_alg and key_alg != alg:
                        raise SignatureError(
                            "Token algorithm does not match signing key",
                            details={"kid": kid, "alg": alg, "key_alg": key_alg},
                        )
                    return [key_data]
            raise UnknownSigningKeyError(str(kid))

        # No key id: try every key of the right type.
        kty = _KEY_TYPES.get(alg[:2])
        candidates = [
            key_data for key_data in signing_keys
            if key_data.get("kty") == kty and key_data.get("alg") in (None, alg)
        ]
        if not candidates:
            raise SignatureError("No signing key matches the token algorithm", details={"alg": alg})
        return candidates
