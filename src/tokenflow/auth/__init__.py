"""Building blocks shared by the flow engines.

Public API:
    :class:`TokenCache` -- persisted access/refresh tokens with expiry checks.
    :class:`EndpointResolver` -- manual or OIDC-discovered endpoints.
    :func:`generate_pkce_pair` -- PKCE verifier/challenge pairs.
"""

from tokenflow.auth.endpoints import DiscoveryCache, EndpointResolver, get_discovery_cache
from tokenflow.auth.pkce import generate_pkce_pair, generate_state
from tokenflow.auth.token_cache import TokenCache

__all__ = [
    "DiscoveryCache",
    "EndpointResolver",
    "TokenCache",
    "generate_pkce_pair",
    "generate_state",
    "get_discovery_cache",
]
