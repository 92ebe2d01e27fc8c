"""
Discovery package.

Retrieves the identity provider's OpenID Connect metadata (issuer and
``jwks_uri``) plus the JSON Web Key Set it points at, and caches both so
token validation does not block on the network for every request.

Key points:
- Refresh lazily after a TTL and on demand when a token names an
  unknown key id (key rollover), rate limited.
- Keep fetches resilient (timeouts, bounded retries, circuit breaker).
- Never replace a good document with a partial one.
"""

from .cache import DiscoveryCache, DiscoveryDocument

__all__ = ["DiscoveryCache", "DiscoveryDocument"]
