"""
Unit tests for claim sets, principals and outcomes.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_identity.app.validation import (
    Claim,
    ClaimSet,
    Principal,
    RejectionReason,
    TokenValidationEngine,
    ValidationOutcome,
    get_preferred_username,
)


class TestClaimSet:
    """Test cases for ClaimSet."""

    def test_from_payload_flattens_lists(self):
        """Test list claims become repeated claim types."""
        claims = ClaimSet.from_payload({"aud": ["a", "b"], "sub": "user1"})

        assert list(claims) == [Claim("aud", "a"), Claim("aud", "b"), Claim("sub", "user1")]
        assert [claim.value for claim in claims.find_all("aud")] == ["a", "b"]

    def test_from_payload_stringifies_values(self):
        """Test non-string claim values are rendered as strings."""
        claims = ClaimSet.from_payload({
            "exp": 1700000000,
            "email_verified": True,
            "address": {"country": "NZ"},
            "ignored": None,
        })

        assert claims.value_of("exp") == "1700000000"
        assert claims.value_of("email_verified") == "true"
        assert claims.value_of("address") == '{"country":"NZ"}'
        assert not claims.has_claim("ignored")

    def test_to_dict_groups_repeated_types(self):
        """Test grouping back into a mapping."""
        claims = ClaimSet.from_payload({"roles": ["reader", "writer"], "sub": "user1"})

        assert claims.to_dict() == {"roles": ["reader", "writer"], "sub": "user1"}

    def test_value_of_default(self):
        """Test missing claim lookup."""
        assert ClaimSet().value_of("sub") == ""
        assert ClaimSet().find_first("sub") is None
        assert len(ClaimSet()) == 0


class TestPrincipal:
    """Test cases for Principal accessors."""

    def test_accessors(self):
        """Test derived accessors."""
        principal = Principal(ClaimSet.from_payload({
            "sub": "user1",
            "preferred_username": "john.doe@example.com",
            "scp": "access_as_user",
        }))

        assert principal.subject == "user1"
        assert principal.preferred_username == "john.doe@example.com"
        assert principal.scope == "access_as_user"

    def test_get_preferred_username(self):
        """Test preferred user name lookup."""
        principal = Principal(ClaimSet.from_payload({"preferred_username": "jane"}))

        assert get_preferred_username(principal) == "jane"
        assert TokenValidationEngine.get_preferred_username(principal) == "jane"

    def test_get_preferred_username_missing(self):
        """Test missing preferred_username yields an empty string."""
        principal = Principal(ClaimSet.from_payload({"sub": "user1"}))

        assert get_preferred_username(principal) == ""


class TestValidationOutcome:
    """Test cases for ValidationOutcome."""

    def test_accepted(self):
        """Test accepted outcome."""
        principal = Principal(ClaimSet.from_payload({"sub": "user1"}))
        outcome = ValidationOutcome.accept(principal)

        assert outcome.accepted
        assert outcome
        assert outcome.reason is None
        assert outcome.to_response().model_dump() == {"valid": True, "claims": {"sub": "user1"}}

    def test_rejected_response_hides_reason(self):
        """Test rejection details stay out of the client view."""
        outcome = ValidationOutcome.reject(RejectionReason.SIGNATURE_ERROR, "kid rogue unknown")

        assert not outcome
        assert outcome.reason == RejectionReason.SIGNATURE_ERROR
        assert outcome.to_response().model_dump() == {"valid": False, "claims": None}

    def test_requires_exactly_one_side(self):
        """Test an outcome cannot be both or neither."""
        with pytest.raises(ValueError):
            ValidationOutcome()
