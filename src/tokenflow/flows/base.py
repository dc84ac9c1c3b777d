"""Abstract base class for grant-flow engines.

Every flow engine implements :meth:`FlowEngine.generate_or_refresh_token`,
which returns a usable access token or raises a
:class:`~tokenflow.exceptions.TokenflowError` subclass. Engines go through
the :class:`~tokenflow.auth.token_cache.TokenCache` for all persisted
state and through the :class:`~tokenflow.auth.endpoints.EndpointResolver`
for every URL.

Flows that receive refresh tokens derive from
:class:`RefreshableFlowEngine`, which tries refresh-token rotation first
and, if the refresh request fails, purges the stored tokens and runs the
full flow.

See Also:
    :class:`tokenflow.flows.client_credentials.ClientCredentialsFlow`
    :class:`tokenflow.flows.device_code.DeviceCodeFlow`
    :class:`tokenflow.flows.authorization_code.AuthorizationCodeFlow`
"""

from __future__ import annotations

import logging
import webbrowser
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Optional

from tokenflow.auth.endpoints import EndpointResolver
from tokenflow.auth.token_cache import TokenCache
from tokenflow.config import resolve_client_secret
from tokenflow.exceptions import RefreshError
from tokenflow.flows.refresh import RefreshCoordinator
from tokenflow.models import FlowConfig, FlowKind
from tokenflow.transport import HttpTransport

logger = logging.getLogger(__name__)

PromptFn = Callable[[str], str]


def default_prompt(message: str) -> str:
    """Prompt on the terminal through :func:`tokenflow.output.prompt`."""
    from tokenflow.output import prompt

    return prompt(message)


def open_in_browser(url: str) -> bool:
    """Open *url* in the default browser, logging instead of raising on failure.

    Returns:
        ``True`` if a browser reported success.
    """
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.warning("Could not open a browser: %s", exc)
        return False
    if not opened:
        logger.debug("No browser available to open %s", url)
    return opened


class FlowEngine(ABC):
    """Base class for the three grant-flow engines.

    Args:
        config: The flow configuration.
        cache: Token cache shared with the client facade.
        transport: HTTP transport for every provider request.
        resolver: Endpoint resolver; built from ``config.endpoints`` when
            omitted.
        prompt: Callable used for interactive input. Defaults to reading
            the terminal.
    """

    kind: ClassVar[FlowKind]

    def __init__(
        self,
        config: FlowConfig,
        cache: TokenCache,
        transport: HttpTransport,
        resolver: Optional[EndpointResolver] = None,
        prompt: Optional[PromptFn] = None,
    ) -> None:
        assert config.endpoints is not None
        self._config = config
        self._cache = cache
        self._transport = transport
        self._resolver = resolver or EndpointResolver(config.endpoints, transport)
        self._prompt: PromptFn = prompt or default_prompt
        self._client_secret: Optional[str] = None
        self._secret_resolved = False

    @property
    def config(self) -> FlowConfig:
        return self._config

    @property
    def client_id(self) -> str:
        assert self._config.client_id is not None
        return self._config.client_id

    @property
    def resolver(self) -> EndpointResolver:
        return self._resolver

    @property
    def client_secret(self) -> Optional[str]:
        """The client secret, resolving ``client_secret_source`` on first access."""
        if not self._secret_resolved:
            self._client_secret = resolve_client_secret(self._config)
            self._secret_resolved = True
        return self._client_secret

    def generate_or_refresh_token(self) -> str:
        """Return a usable access token, running the flow if needed.

        Raises:
            TokenflowError: If no token can be obtained.
        """
        return self.fetch_and_store_access_token()

    def fetch_and_store_access_token(self) -> str:
        """Serve a cached token or run the full flow and store its result."""
        cached = self._cache.get_active_access_token(self.client_id, self.kind)
        if cached is not None:
            logger.debug("Skipping auth. Using token in local storage.")
            return cached
        return self._acquire()

    def cancel(self) -> None:
        """Abort a pending interactive wait. No-op for flows that never wait."""

    @abstractmethod
    def _acquire(self) -> str:
        """Run the full flow, store the tokens, and return the access token."""

    def _client_form(self) -> dict[str, Any]:
        """Form fields identifying the client: ``client_id`` and optional ``client_secret``."""
        data: dict[str, Any] = {"client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        return data

    def _scope_form(self) -> dict[str, Any]:
        """Optional ``scope`` and repeated ``audience`` fields."""
        data: dict[str, Any] = {}
        if self._config.scope:
            data["scope"] = self._config.scope
        if self._config.audience:
            data["audience"] = list(self._config.audience)
        return data

    def _store_token_response(self, payload: dict[str, Any]) -> Optional[str]:
        """Store the tokens of a successful token response.

        Returns:
            The access token, or ``None`` if *payload* has none.
        """
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            return None
        refresh_token = payload.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token:
            refresh_token = None
        self._cache.set_access_and_refresh_tokens(
            self.client_id, self.kind, access_token, refresh_token
        )
        return access_token


class RefreshableFlowEngine(FlowEngine):
    """Flow engine that attempts refresh-token rotation before a full run."""

    def generate_or_refresh_token(self) -> str:
        """Refresh the stored token, or purge and run the full flow.

        Refresh failures are logged at DEBUG and never surfaced; the error
        of the full flow, if any, is what the caller sees. Configuration
        errors raised while resolving the token endpoint or client secret
        propagate before any stored token is touched.
        """
        token_endpoint = self._resolver.token_endpoint()
        client_secret = self.client_secret
        coordinator = RefreshCoordinator(self._cache, self._transport)
        try:
            return coordinator.refresh(
                self.client_id,
                self.kind,
                token_endpoint,
                client_secret=client_secret,
            )
        except RefreshError as exc:
            logger.debug(
                "Failed to refresh the access token; a new one must be obtained. Error: %s",
                exc,
            )
            self._cache.purge_tokens(self.client_id, self.kind)
            return self.fetch_and_store_access_token()
