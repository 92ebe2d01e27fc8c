"""
Unit tests for TrustConfig and IdentitySettings.
"""

import dataclasses

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_identity.app.config import IdentitySettings, TrustConfig
from shared.errors import ConfigurationError

REQUIRED = {
    "instance": "https://login.example.com/",
    "tenant_id": "tenant",
    "audience": "api://identity-tests",
}

SETTINGS_ENV = (
    "AZUREAD__TENANTID", "AZUREAD__CLIENTID", "AZUREAD__INSTANCE", "AZUREAD__SCOPE",
    "IDENTITY_TENANT_ID", "IDENTITY_CLIENT_ID", "IDENTITY_INSTANCE", "IDENTITY_REQUIRED_SCOPE",
    "IDENTITY_ALLOWED_ALGORITHMS", "IDENTITY_SERVE_STALE_ON_ERROR",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove identity settings from the environment."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestTrustConfig:
    """Test cases for TrustConfig."""

    def test_all_fields_present(self):
        """Test construction with every required field."""
        config = TrustConfig(**REQUIRED)

        assert config.required_scope == "access_as_user"
        assert config.clock_skew_seconds == 0
        assert config.allowed_algorithms == ("RS256",)

    def test_well_known_endpoint(self):
        """Test discovery URL composition."""
        config = TrustConfig(**REQUIRED)

        assert config.authority == "https://login.example.com/tenant/v2.0"
        assert config.well_known_endpoint == (
            "https://login.example.com/tenant/v2.0/.well-known/openid-configuration"
        )

    @pytest.mark.parametrize("missing", sorted(REQUIRED))
    def test_missing_field_fails(self, missing):
        """Test that omitting any identifier fails construction."""
        values = {key: value for key, value in REQUIRED.items() if key != missing}

        with pytest.raises(ConfigurationError) as exc_info:
            TrustConfig(**values)

        assert exc_info.value.details["missing"] == [missing]

    @pytest.mark.parametrize("missing", sorted(REQUIRED))
    @pytest.mark.parametrize("blank", ["", "   ", None])
    def test_blank_field_fails(self, missing, blank):
        """Test that blank identifiers raise ConfigurationError."""
        values = dict(REQUIRED, **{missing: blank})

        with pytest.raises(ConfigurationError) as exc_info:
            TrustConfig(**values)

        assert exc_info.value.details["missing"] == [missing]

    def test_empty_scope_fails(self):
        """Test that an empty required scope is rejected."""
        with pytest.raises(ConfigurationError):
            TrustConfig(**REQUIRED, required_scope="")

    def test_negative_skew_fails(self):
        """Test that negative clock skew is rejected."""
        with pytest.raises(ConfigurationError):
            TrustConfig(**REQUIRED, clock_skew_seconds=-1)

    @pytest.mark.parametrize("algorithms", [(), ("none",), ("RS256", "NONE")])
    def test_unsigned_algorithms_fail(self, algorithms):
        """Test that unsigned or empty algorithm lists are rejected."""
        with pytest.raises(ConfigurationError):
            TrustConfig(**REQUIRED, allowed_algorithms=algorithms)

    @pytest.mark.parametrize("algorithms, expected", [
        ("RS256", ("RS256",)),
        ("RS256, RS384", ("RS256", "RS384")),
        (["RS256", "RS384"], ("RS256", "RS384")),
    ])
    def test_algorithms_normalized(self, algorithms, expected):
        """Test a single name or comma separated string is not split into characters."""
        config = TrustConfig(**REQUIRED, allowed_algorithms=algorithms)

        assert config.allowed_algorithms == expected

    @pytest.mark.parametrize("algorithms", ["", " , ", "RS256,none"])
    def test_invalid_algorithm_string_fails(self, algorithms):
        """Test empty or unsigned algorithm strings are rejected."""
        with pytest.raises(ConfigurationError):
            TrustConfig(**REQUIRED, allowed_algorithms=algorithms)

    def test_immutable(self):
        """Test that the config cannot be changed after construction."""
        config = TrustConfig(**REQUIRED)

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.audience = "other"


class TestIdentitySettings:
    """Test cases for IdentitySettings."""

    def test_dotnet_style_environment(self, clean_env):
        """Test loading AzureAd__* style variables."""
        clean_env.setenv("AZUREAD__TENANTID", "tenant")
        clean_env.setenv("AZUREAD__CLIENTID", "api://identity-tests")
        clean_env.setenv("AZUREAD__INSTANCE", "https://login.example.com/")

        config = IdentitySettings().to_trust_config()

        assert config == TrustConfig(**REQUIRED)

    def test_identity_prefixed_environment(self, clean_env):
        """Test loading IDENTITY_* variables, including scope and skew."""
        clean_env.setenv("IDENTITY_TENANT_ID", "tenant")
        clean_env.setenv("IDENTITY_CLIENT_ID", "api://identity-tests")
        clean_env.setenv("IDENTITY_INSTANCE", "https://login.example.com/")
        clean_env.setenv("IDENTITY_REQUIRED_SCOPE", "files.read")
        clean_env.setenv("IDENTITY_CLOCK_SKEW_SECONDS", "30")

        config = IdentitySettings().to_trust_config()

        assert config.required_scope == "files.read"
        assert config.clock_skew_seconds == 30

    def test_missing_configuration_fails_fast(self, clean_env):
        """Test that missing identifiers raise ConfigurationError."""
        clean_env.setenv("AZUREAD__TENANTID", "tenant")

        with pytest.raises(ConfigurationError) as exc_info:
            IdentitySettings().to_trust_config()

        assert exc_info.value.details["missing"] == ["instance", "audience"]

    def test_algorithms_and_stale_policy_from_environment(self, clean_env):
        """Test allowed algorithms and stale fallback are configurable."""
        clean_env.setenv("IDENTITY_TENANT_ID", "tenant")
        clean_env.setenv("IDENTITY_CLIENT_ID", "api://identity-tests")
        clean_env.setenv("IDENTITY_INSTANCE", "https://login.example.com/")
        clean_env.setenv("IDENTITY_ALLOWED_ALGORITHMS", "RS256,RS384")
        clean_env.setenv("IDENTITY_SERVE_STALE_ON_ERROR", "false")

        settings = IdentitySettings()

        assert settings.to_trust_config().allowed_algorithms == ("RS256", "RS384")
        assert settings.serve_stale_on_error is False
