"""OAuth2 Client Credentials grant (:rfc:`6749` section 4.4).

For service-to-service calls where no user is involved. The engine is
stateless: it serves a cached token when one is still valid and otherwise
POSTs the client's credentials to the token endpoint. No refresh token is
requested, stored, or consulted.
"""

from __future__ import annotations

import logging

from tokenflow.exceptions import ConfigurationError, ProviderError, TokenNotObtainedError
from tokenflow.flows.base import FlowEngine
from tokenflow.models import FlowKind
from tokenflow.transport import parse_json_body, read_json

logger = logging.getLogger(__name__)


class ClientCredentialsFlow(FlowEngine):
    """Obtain tokens with the client's own credentials."""

    kind = FlowKind.CLIENT_CREDENTIALS

    def _acquire(self) -> str:
        """Request a token and cache it.

        Returns:
            The access token.

        Raises:
            ConfigurationError: If no client secret is available.
            ProviderError: If the provider answers with an ``error`` field
                or a non-success status. The message contains the response
                body verbatim.
            TokenNotObtainedError: If a success response lacks ``access_token``.
        """
        if not self.client_secret:
            raise ConfigurationError("client_secret is required for the client credentials flow")

        data = self._client_form()
        data["grant_type"] = self.kind.grant_type
        data.update(self._scope_form())

        response = self._transport.post_form(self._resolver.token_endpoint(), data)
        payload = parse_json_body(response)
        if payload is not None and "error" in payload:
            raise ProviderError.from_payload(
                "Token request failed",
                payload,
                status_code=response.status_code,
                body=response.text,
            )
        payload = read_json(response, "Token request failed")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenNotObtainedError("Token response missing 'access_token' field")

        self._cache.set_access_token(self.client_id, self.kind, access_token)
        logger.debug("Obtained client credentials token for %s", self.client_id)
        return access_token
