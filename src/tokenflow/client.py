"""The :class:`OAuth2Client` facade.

Picks the flow engine matching the configuration's ``kind`` and exposes a
single :meth:`OAuth2Client.token` call. The cache fast path lives here:
a still-valid stored token is returned without touching the engine.
Otherwise the engine refreshes or re-runs its flow.

Calls to :meth:`OAuth2Client.token` for the same client identifier and
flow kind are serialised within the process, so concurrent callers do not
run the same interactive flow twice; the second caller finds the token the
first one stored. Separate processes sharing a token store still race with
last-write-wins semantics.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Union

from tokenflow.auth.token_cache import TokenCache
from tokenflow.config import create_store, load_settings, validate_proxy_url
from tokenflow.flows import (
    AuthorizationCodeFlow,
    ClientCredentialsFlow,
    DeviceCodeFlow,
    FlowEngine,
)
from tokenflow.flows.base import PromptFn
from tokenflow.models import ClientSettings, FlowConfig, FlowKind, parse_flow_config
from tokenflow.store.base import KeyValueStore
from tokenflow.transport import HttpTransport

logger = logging.getLogger(__name__)

_ENGINES: dict[FlowKind, type[FlowEngine]] = {
    FlowKind.CLIENT_CREDENTIALS: ClientCredentialsFlow,
    FlowKind.DEVICE_CODE: DeviceCodeFlow,
    FlowKind.AUTHORIZATION_CODE: AuthorizationCodeFlow,
}

_token_locks: dict[tuple[str, FlowKind], threading.Lock] = {}
_token_locks_guard = threading.Lock()


def _lock_for(client_id: str, kind: FlowKind) -> threading.Lock:
    with _token_locks_guard:
        return _token_locks.setdefault((client_id, kind), threading.Lock())


def engine_for(kind: FlowKind) -> type[FlowEngine]:
    """Return the engine class implementing *kind*."""
    return _ENGINES[kind]


class OAuth2Client:
    """Obtain access tokens for one flow configuration.

    Args:
        config: A flow configuration model, or a dict with a ``kind`` tag
            (as stored in profiles).
        valid_min_duration_threshold: Seconds a cached token must remain
            valid to be reused. Defaults to the settings value (30).
        proxy_url: HTTP proxy (``scheme://host:port``) for every request.
        store: Token store. Defaults to the store selected by *settings*.
        transport: HTTP transport. When omitted the client creates one and
            closes it in :meth:`close`.
        settings: Process settings; loaded from ``TOKENFLOW_*`` environment
            variables when omitted.
        prompt: Callable used for interactive input by the device and
            authorization code flows.

    Raises:
        ConfigurationError: If the configuration or proxy URL is invalid.

    Example::

        with OAuth2Client(config, store=MemoryStore()) as client:
            headers = {"Authorization": f"Bearer {client.token()}"}
    """

    def __init__(
        self,
        config: Union[FlowConfig, dict[str, Any]],
        valid_min_duration_threshold: Optional[int] = None,
        proxy_url: Optional[str] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[HttpTransport] = None,
        settings: Optional[ClientSettings] = None,
        prompt: Optional[PromptFn] = None,
    ) -> None:
        if isinstance(config, dict):
            config = parse_flow_config(config)
        self._config: FlowConfig = config
        self._settings = settings if settings is not None else load_settings()

        threshold = (
            valid_min_duration_threshold
            if valid_min_duration_threshold is not None
            else self._settings.min_validity_seconds
        )

        self._owns_transport = transport is None
        if transport is None:
            proxy = proxy_url or self._settings.proxy_url
            transport = HttpTransport(
                timeout=self._settings.timeout,
                proxy_url=validate_proxy_url(proxy) if proxy else None,
            )
        self._transport = transport

        self._cache = TokenCache(
            store if store is not None else create_store(self._settings),
            min_validity_seconds=threshold,
        )
        self._engine = engine_for(config.flow_kind)(
            config, self._cache, self._transport, prompt=prompt
        )

    @property
    def config(self) -> FlowConfig:
        return self._config

    @property
    def flow_kind(self) -> FlowKind:
        return self._config.flow_kind

    @property
    def cache(self) -> TokenCache:
        return self._cache

    @property
    def engine(self) -> FlowEngine:
        return self._engine

    def token(self) -> str:
        """Return a valid access token, obtaining one if necessary.

        Order: cached token with enough remaining lifetime, then refresh
        token rotation (device and authorization code flows), then the
        full flow.

        Returns:
            The access token string.

        Raises:
            TokenflowError: If no token can be obtained.
        """
        client_id = self._engine.client_id
        with _lock_for(client_id, self.flow_kind):
            cached = self._cache.get_active_access_token(client_id, self.flow_kind)
            if cached is not None:
                logger.debug("Using cached access token for %s", client_id)
                return cached
            return self._engine.generate_or_refresh_token()

    def purge_tokens(self, all_flows: bool = False) -> None:
        """Remove stored tokens for this client.

        Args:
            all_flows: Purge every flow kind of this client identifier, not
                only the configured one.
        """
        self._cache.purge_tokens(
            self._engine.client_id, None if all_flows else self.flow_kind
        )

    def cancel(self) -> None:
        """Abort a device authorization polling wait in progress."""
        self._engine.cancel()

    def close(self) -> None:
        """Close the HTTP transport if this client created it."""
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> "OAuth2Client":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
