"""
Trust configuration for bearer token validation.

``TrustConfig`` is the immutable object handed to the validation engine.
``IdentitySettings`` loads it from the environment (or a ``.env`` file) and
accepts both the ``AZUREAD__TENANTID`` style names used by .NET hosts and
the ``IDENTITY_TENANT_ID`` style names used by the rest of this service.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import AliasChoices, Field

from shared.config import BaseConfig
from shared.errors import ConfigurationError

DEFAULT_REQUIRED_SCOPE = "access_as_user"


@dataclass(frozen=True)
class TrustConfig:
    """Validation settings for a single tenant."""

    instance: Optional[str] = None
    tenant_id: Optional[str] = None
    audience: Optional[str] = None
    required_scope: str = DEFAULT_REQUIRED_SCOPE
    clock_skew_seconds: float = 0.0
    allowed_algorithms: Tuple[str, ...] = ("RS256",)

    def __post_init__(self) -> None:
        missing = [
            name for name in ("instance", "tenant_id", "audience")
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]
        if missing:
            raise ConfigurationError(
                "missing API configuration",
                details={"missing": missing},
            )
        if not isinstance(self.required_scope, str) or not self.required_scope.strip():
            raise ConfigurationError("required scope must not be empty")
        if self.clock_skew_seconds < 0:
            raise ConfigurationError("clock skew must not be negative")

        algorithms = self.allowed_algorithms
        if isinstance(algorithms, str):
            # Comma separated, as read from the environment.
            algorithms = [alg.strip() for alg in algorithms.split(",") if alg.strip()]
        algorithms = tuple(algorithms)
        if not algorithms:
            raise ConfigurationError("at least one signing algorithm must be allowed")
        if any(alg.lower() == "none" for alg in algorithms):
            raise ConfigurationError("unsigned tokens cannot be allowed")
        object.__setattr__(self, "allowed_algorithms", algorithms)

    @property
    def authority(self) -> str:
        """Issuer template for the configured tenant."""
        return f"{self.instance}{self.tenant_id}/v2.0"

    @property
    def well_known_endpoint(self) -> str:
        return f"{self.authority}/.well-known/openid-configuration"


class IdentitySettings(BaseConfig):
    """Environment-backed configuration for the identity service."""

    tenant_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AZUREAD__TENANTID", "IDENTITY_TENANT_ID"),
    )
    client_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AZUREAD__CLIENTID", "IDENTITY_CLIENT_ID"),
    )
    instance: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AZUREAD__INSTANCE", "IDENTITY_INSTANCE"),
    )
    required_scope: str = Field(
        default=DEFAULT_REQUIRED_SCOPE,
        validation_alias=AliasChoices("AZUREAD__SCOPE", "IDENTITY_REQUIRED_SCOPE"),
    )

    clock_skew_seconds: float = Field(default=0.0)
    discovery_ttl_seconds: float = Field(default=3600.0)
    discovery_min_refresh_seconds: float = Field(default=300.0)
    discovery_max_attempts: int = Field(default=3)
    http_timeout: float = Field(default=10.0)
    serve_stale_on_error: bool = Field(default=True)
    # Comma separated, e.g. "RS256,RS384".
    allowed_algorithms: str = Field(default="RS256")

    def to_trust_config(self) -> TrustConfig:
        """Build the immutable validation config, failing fast on gaps."""
        return TrustConfig(
            instance=self.instance or "",
            tenant_id=self.tenant_id or "",
            audience=self.client_id or "",
            required_scope=self.required_scope,
            clock_skew_seconds=self.clock_skew_seconds,
            allowed_algorithms=self.allowed_algorithms,
        )


def get_settings() -> IdentitySettings:
    """Load identity settings from the environment."""
    return IdentitySettings()
