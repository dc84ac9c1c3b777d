"""OAuth2 Authorization Code grant with PKCE (:rfc:`6749` section 4.1, :rfc:`7636`).

One attempt moves through the :class:`AuthorizationPhase` states:

1. ``INIT`` -- generate (or take the configured) ``state`` and, with
   ``use_pkce``, a fresh :class:`~tokenflow.models.PkceChallenge`; build
   the authorization URL.
2. ``AWAITING_USER_REDIRECT`` -- hand the URL to the automation callback,
   or open a browser and ask the operator to paste the redirect URL or the
   bare code.
3. ``CODE_RECEIVED`` -- the redirect was checked for ``error`` and a
   ``state`` mismatch, and the code was extracted.
4. ``TOKEN_EXCHANGED`` -- the code (plus the PKCE verifier) was exchanged
   at the token endpoint and the tokens were stored.

Nothing is retried automatically. The PKCE verifier lives only for the
duration of one attempt.
"""

from __future__ import annotations

import enum
import logging
import re
from typing import Any, Optional
from urllib.parse import parse_qs, unquote, urlencode, urlsplit

from tokenflow.auth.pkce import generate_pkce_pair, generate_state
from tokenflow.exceptions import ProviderError, TokenNotObtainedError
from tokenflow.flows.base import RefreshableFlowEngine, open_in_browser
from tokenflow.models import AuthorizationCodeConfig, FlowKind, PkceChallenge
from tokenflow.transport import read_json

logger = logging.getLogger(__name__)

_CODE_PATTERN = re.compile(r"[?&]code=([^&]+)")

_PASTE_PROMPT = (
    "\nAuthorization Code Flow:\n"
    "1. Open the login page (the browser may already show it):\n"
    "   {url}\n"
    "2. Log in and authorize the application.\n"
    "3. You will be redirected to a URL containing a 'code' parameter.\n"
    "4. Copy the value of the 'code' parameter (or the full URL) and paste it below.\n\n"
    "Enter Authorization Code: "
)


class AuthorizationPhase(str, enum.Enum):
    """Progress of one authorization code attempt."""

    INIT = "init"
    AWAITING_USER_REDIRECT = "awaiting_user_redirect"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"


def extract_code(user_input: str) -> str:
    """Pull the authorization code out of a redirect URL or a bare code.

    Matches ``[?&]code=([^&]+)`` and percent-decodes the result. Input
    without a ``code=`` marker is taken as the code itself, trimmed.

    Example::

        >>> extract_code("http://localhost/cb?code=ab%2Fc&state=x")
        'ab/c'
        >>> extract_code("  raw-code  ")
        'raw-code'
    """
    text = user_input.strip()
    if "code=" in text:
        match = _CODE_PATTERN.search(text)
        if match:
            return unquote(match.group(1))
    return text


def _redirect_params(text: str) -> dict[str, list[str]]:
    """Query parameters of *text* if it looks like a redirect URL, else empty."""
    if "?" not in text:
        return {}
    return parse_qs(urlsplit(text.strip()).query)


class AuthorizationCodeFlow(RefreshableFlowEngine):
    """Authenticate via the authorization code grant."""

    kind = FlowKind.AUTHORIZATION_CODE

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._phase = AuthorizationPhase.INIT

    @property
    def phase(self) -> AuthorizationPhase:
        """Phase reached by the most recent attempt."""
        return self._phase

    @property
    def auth_config(self) -> AuthorizationCodeConfig:
        assert isinstance(self._config, AuthorizationCodeConfig)
        return self._config

    def _acquire(self) -> str:
        self._phase = AuthorizationPhase.INIT
        state = self.auth_config.state or generate_state()
        pkce = generate_pkce_pair() if self.auth_config.use_pkce else None
        url = self.build_authorization_url(state, pkce)

        self._phase = AuthorizationPhase.AWAITING_USER_REDIRECT
        redirect = self._obtain_redirect(url)

        code = self.parse_redirect(redirect, state)
        self._phase = AuthorizationPhase.CODE_RECEIVED

        token = self.exchange_code(code, pkce.verifier if pkce else None)
        self._phase = AuthorizationPhase.TOKEN_EXCHANGED
        return token

    def build_authorization_url(self, state: str, pkce: Optional[PkceChallenge] = None) -> str:
        """Build the authorization request URL.

        Args:
            state: The ``state`` value for this attempt.
            pkce: Challenge to include, or ``None`` to omit PKCE.

        Returns:
            The authorization endpoint with the query appended (joined
            with ``&`` if the endpoint already has a query string).
        """
        config = self.auth_config
        params: list[tuple[str, str]] = [
            ("client_id", self.client_id),
            ("response_type", "code"),
            ("redirect_uri", config.redirect_uri or ""),
            ("state", state),
        ]
        if config.scope:
            params.append(("scope", config.scope))
        for aud in config.audience:
            params.append(("audience", aud))
        if pkce is not None:
            params.append(("code_challenge", pkce.challenge))
            params.append(("code_challenge_method", pkce.method))

        endpoint = self._resolver.authorization_endpoint()
        separator = "&" if urlsplit(endpoint).query else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    def parse_redirect(self, redirect: str, expected_state: str) -> str:
        """Validate the redirect result and return the authorization code.

        Raises:
            ProviderError: If the redirect carries ``error`` or a ``state``
                different from *expected_state*.
            TokenNotObtainedError: If no code was supplied.
        """
        params = _redirect_params(redirect)
        if "error" in params:
            error = params["error"][0]
            description = params.get("error_description", [None])[0]
            message = f"Authorization failed: {error}"
            if description:
                message += f" - {description}"
            raise ProviderError(message, error=error, error_description=description, body=redirect)
        if "state" in params and params["state"][0] != expected_state:
            raise ProviderError(
                "Authorization failed: state_mismatch (the redirect's state does not match the request)",
                error="state_mismatch",
            )

        code = extract_code(redirect)
        if not code:
            raise TokenNotObtainedError("No authorization code was provided")
        return code

    def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> str:
        """Exchange the authorization code for tokens and store them.

        Args:
            code: The authorization code.
            code_verifier: The PKCE verifier of this attempt, if PKCE was used.

        Returns:
            The access token.

        Raises:
            ProviderError: On a non-success response or an ``error`` field.
            TokenNotObtainedError: If the response carries no ``access_token``.
        """
        data = self._client_form()
        data.update(
            {
                "grant_type": self.kind.grant_type,
                "code": code,
                "redirect_uri": self.auth_config.redirect_uri,
            }
        )
        if code_verifier is not None:
            data["code_verifier"] = code_verifier

        response = self._transport.post_form(self._resolver.token_endpoint(), data)
        payload = read_json(response, "Token exchange failed")
        if "error" in payload:
            raise ProviderError.from_payload(
                "Token exchange failed", payload, status_code=response.status_code, body=response.text
            )

        token = self._store_token_response(payload)
        if token is None:
            raise TokenNotObtainedError("No token data was received via authorization flow.")
        return token

    def _obtain_redirect(self, url: str) -> str:
        config = self.auth_config
        if config.automation_callback is not None:
            return config.automation_callback(url)
        if config.open_browser:
            open_in_browser(url)
        return self._prompt(_PASTE_PROMPT.format(url=url))
