"""Refresh-token rotation (:rfc:`6749` section 6)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from tokenflow.auth.token_cache import FlowKindLike, TokenCache
from tokenflow.exceptions import ProviderError, RefreshError, TransportError
from tokenflow.transport import HttpTransport, read_json

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """Exchange a stored refresh token for a new access token.

    Every failure (no stored refresh token, transport error, non-success
    status, malformed payload) is raised as
    :class:`~tokenflow.exceptions.RefreshError`. Callers recover by purging
    and re-running the full flow.

    Args:
        cache: Token cache holding the refresh token.
        transport: HTTP transport for the token request.
    """

    def __init__(self, cache: TokenCache, transport: HttpTransport) -> None:
        self._cache = cache
        self._transport = transport

    def refresh(
        self,
        client_id: str,
        flow_kind: FlowKindLike,
        token_endpoint: str,
        client_secret: Optional[str] = None,
    ) -> str:
        """Rotate the refresh token and store the new pair.

        A response without ``refresh_token`` keeps the current one.

        Args:
            client_id: OAuth client identifier.
            flow_kind: Flow whose tokens are refreshed.
            token_endpoint: Resolved token endpoint URL.
            client_secret: Sent as ``client_secret`` when given.

        Returns:
            The new access token.

        Raises:
            RefreshError: If the refresh cannot be completed.
        """
        refresh_token = self._cache.get_refresh_token(client_id, flow_kind)
        if not refresh_token:
            raise RefreshError("No refresh token stored")

        data: dict[str, Any] = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        }
        if client_secret:
            data["client_secret"] = client_secret

        try:
            response = self._transport.post_form(token_endpoint, data)
            payload = read_json(response, "Token refresh failed")
        except (TransportError, ProviderError) as exc:
            raise RefreshError(str(exc)) from exc

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise RefreshError("Token refresh response missing 'access_token' field")
        new_refresh = payload.get("refresh_token")
        if not isinstance(new_refresh, str) or not new_refresh:
            new_refresh = refresh_token

        self._cache.set_access_and_refresh_tokens(client_id, flow_kind, access_token, new_refresh)
        logger.debug("Refreshed access token for %s", client_id)
        return access_token
