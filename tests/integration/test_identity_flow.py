"""
Integration tests for the bearer token flow through the identity service.
"""

import asyncio

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_identity.app.config import IdentitySettings, TrustConfig
from service_identity.app.discovery import DiscoveryCache
from service_identity.app.main import create_app
from service_identity.app.validation import TokenValidationEngine
from shared.retry import RetryConfig
from shared.test_helpers import (
    TEST_AUDIENCE,
    TEST_INSTANCE,
    TEST_TENANT_ID,
    MockIdentityProvider,
    MockTokenGenerator,
    TestSigningKey,
)


class TestIdentityFlow:
    """Integration tests for complete bearer token flow."""

    @pytest.fixture
    def signing_key(self):
        """Create the published signing key."""
        return TestSigningKey.generate("flow-key")

    @pytest.fixture
    def provider(self, signing_key):
        """Create mock identity provider."""
        return MockIdentityProvider(keys=[signing_key], latency=0.02)

    @pytest.fixture
    def tokens(self, signing_key):
        """Create token generator."""
        return MockTokenGenerator(signing_key)

    @pytest.fixture
    def app(self, provider):
        """Create the application wired to the mock provider."""
        config = TrustConfig(instance=TEST_INSTANCE, tenant_id=TEST_TENANT_ID, audience=TEST_AUDIENCE)
        discovery = DiscoveryCache(
            config,
            http_client=provider.client(),
            retry_config=RetryConfig(max_attempts=1),
        )
        settings = IdentitySettings(
            tenant_id=TEST_TENANT_ID,
            client_id=TEST_AUDIENCE,
            instance=TEST_INSTANCE,
            env="test",
        )
        return create_app(settings, TokenValidationEngine(config, discovery=discovery))

    @pytest.mark.asyncio
    async def test_complete_identity_flow(self, app, provider, tokens):
        """Test first request, cached requests and rejection handling."""
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            # 1. First request fetches discovery lazily
            response = await client.get("/api/user", headers={"Authorization": tokens.bearer()})
            assert response.status_code == 200
            assert response.json()["preferred_username"] == "john.doe@example.com"
            assert provider.discovery_calls == 1

            # 2. Later requests reuse cached keys
            response = await client.get("/api/user", headers={"Authorization": tokens.bearer(sub="user2")})
            assert response.status_code == 200
            assert response.json()["subject"] == "user2"
            assert provider.discovery_calls == 1

            # 3. Wrong scope is forbidden, bad signature is unauthorized
            response = await client.get("/api/user", headers={"Authorization": tokens.bearer(scp="other")})
            assert response.status_code == 403

            rogue = TestSigningKey.generate("rogue")
            response = await client.get(
                "/api/user",
                headers={"Authorization": tokens.bearer(signing_key=rogue)},
            )
            assert response.status_code == 401
            assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_concurrent_first_requests(self, app, provider, tokens):
        """Test a burst of first requests triggers one discovery fetch."""
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            responses = await asyncio.gather(*(
                client.get("/api/user", headers={"Authorization": tokens.bearer(sub=f"user{i}")})
                for i in range(10)
            ))

        assert [response.status_code for response in responses] == [200] * 10
        assert sorted(response.json()["subject"] for response in responses) == sorted(
            f"user{i}" for i in range(10)
        )
        assert provider.discovery_calls == 1
        assert provider.jwks_calls == 1
