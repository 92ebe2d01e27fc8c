"""
Identity service: a small API protected by bearer token validation.
"""

from typing import Dict, Optional

from fastapi import Depends

from shared.base_service import BaseService
from shared.errors import DiscoveryError

from .config import IdentitySettings, get_settings
from .dependencies import require_principal
from .validation import Principal, TokenValidationEngine


class IdentityService(BaseService):
    """Identity service implementation."""

    def __init__(
        self,
        settings: Optional[IdentitySettings] = None,
        engine: Optional[TokenValidationEngine] = None,
    ):
        settings = settings or get_settings()
        # Fails fast with ConfigurationError before any route exists.
        self.engine = engine or TokenValidationEngine.from_settings(settings)
        super().__init__(settings)
        self._setup_identity_routes()

    def _setup_identity_routes(self):
        """Set up identity-specific routes."""
        current_principal = require_principal(self.engine)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Bearer token protected API",
                "version": "1.0.0"
            }

        @self.app.get("/api/user")
        async def current_user(principal: Principal = Depends(current_principal)):
            """Return the caller's preferred user name."""
            return {
                "preferred_username": TokenValidationEngine.get_preferred_username(principal),
                "subject": principal.subject,
            }

    async def startup(self) -> None:
        await self.engine.discovery.warmup()

    async def shutdown(self) -> None:
        await self.engine.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        try:
            await self.engine.discovery.get()
        except DiscoveryError as exc:
            self.logger.error("Discovery health check failed", error=exc.message)
            return {"identity_provider": "error"}
        return {"identity_provider": "ok"}


def create_app(
    settings: Optional[IdentitySettings] = None,
    engine: Optional[TokenValidationEngine] = None,
):
    """Create the FastAPI application."""
    return IdentityService(settings, engine).app


if __name__ == "__main__":
    IdentityService().run()
