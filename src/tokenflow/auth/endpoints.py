"""Endpoint resolution from manual configuration or OpenID Connect discovery.

:class:`EndpointResolver` hides where an endpoint comes from. Manual
endpoints are returned as configured, with a
:class:`~tokenflow.exceptions.ConfigurationError` when the active flow
needs one that was not given. OIDC endpoints are read from the provider's
discovery document (typically
``https://provider/.well-known/openid-configuration``).

Discovery documents are fetched once per URL and kept in a process-wide
:class:`DiscoveryCache` for the lifetime of the process, with no TTL and
no invalidation.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from tokenflow.exceptions import ConfigurationError
from tokenflow.models import EndpointSource, ManualEndpoints, OidcEndpoints
from tokenflow.transport import HttpTransport, read_json

logger = logging.getLogger(__name__)


class DiscoveryCache:
    """Thread-safe map of discovery URL to discovery document.

    Append-only: the first document stored for a URL wins, so racing
    fetches of the same URL are harmless.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._documents.get(url)

    def add(self, url: str, document: dict[str, Any]) -> dict[str, Any]:
        """Store *document* unless one is already cached; return the cached one."""
        with self._lock:
            return self._documents.setdefault(url, document)

    def clear(self) -> None:
        """Drop every cached document."""
        with self._lock:
            self._documents.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


_discovery_cache = DiscoveryCache()


def get_discovery_cache() -> DiscoveryCache:
    """Return the process-wide :class:`DiscoveryCache`."""
    return _discovery_cache


def fetch_discovery_document(
    url: str,
    transport: HttpTransport,
    cache: Optional[DiscoveryCache] = None,
) -> dict[str, Any]:
    """Return the discovery document at *url*, fetching it on first use.

    Args:
        url: Discovery document URL.
        transport: HTTP transport used for the fetch.
        cache: Document cache; defaults to the process-wide one.

    Returns:
        The parsed discovery document.

    Raises:
        TransportError: If the provider cannot be reached.
        ProviderError: If the response is not a 2xx JSON object.
    """
    cache = cache if cache is not None else _discovery_cache
    document = cache.get(url)
    if document is not None:
        return document
    logger.debug("Fetching OIDC discovery document from %s", url)
    response = transport.get(url, follow_redirects=True)
    document = read_json(response, f"OIDC discovery failed for {url}")
    return cache.add(url, document)


class EndpointResolver:
    """Resolve token, authorization, and device endpoints for one configuration.

    Args:
        endpoints: The configured endpoint source.
        transport: HTTP transport for discovery fetches.
        cache: Discovery cache; defaults to the process-wide one.
    """

    def __init__(
        self,
        endpoints: EndpointSource,
        transport: HttpTransport,
        cache: Optional[DiscoveryCache] = None,
    ) -> None:
        self._endpoints = endpoints
        self._transport = transport
        self._cache = cache

    @property
    def endpoints(self) -> EndpointSource:
        return self._endpoints

    def token_endpoint(self) -> str:
        """Return the token endpoint."""
        return self._resolve("token_endpoint")

    def authorization_endpoint(self) -> str:
        """Return the authorization endpoint (authorization code flow)."""
        return self._resolve("authorization_endpoint")

    def device_authorization_endpoint(self) -> str:
        """Return the device authorization endpoint (device code flow)."""
        return self._resolve("device_authorization_endpoint")

    def jwks_uri(self) -> str:
        """Return the JWKS URI. Only available through OIDC discovery."""
        if isinstance(self._endpoints, ManualEndpoints):
            raise ConfigurationError("jwks_uri is only available from OIDC discovery")
        return self._resolve("jwks_uri")

    def discovery_document(self) -> dict[str, Any]:
        """Return the full discovery document.

        Raises:
            ConfigurationError: If the endpoints are configured manually.
        """
        if not isinstance(self._endpoints, OidcEndpoints):
            raise ConfigurationError("Endpoints are configured manually; there is no discovery document")
        assert self._endpoints.discovery_url is not None
        return fetch_discovery_document(
            self._endpoints.discovery_url, self._transport, self._cache
        )

    def _resolve(self, field: str) -> str:
        if isinstance(self._endpoints, ManualEndpoints):
            value = getattr(self._endpoints, field)
            if not value:
                raise ConfigurationError(
                    f"{field} must be provided in the manual endpoint configuration"
                )
            return value

        document = self.discovery_document()
        value = document.get(field)
        if not value or not isinstance(value, str):
            raise ConfigurationError(
                f"{field} not found in OIDC discovery document "
                f"{self._endpoints.discovery_url}"
            )
        return value
