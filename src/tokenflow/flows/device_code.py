"""OAuth2 Device Authorization Grant (:rfc:`8628`).

For headless terminals (SSH, Docker, CI) where a browser cannot be opened
locally.

Flow:
    1. POST to the device authorization endpoint to obtain a
       :class:`~tokenflow.models.DeviceFlowSession` (``device_code`` +
       ``user_code``).
    2. Hand the complete verification URI to the automation callback, or
       print instructions (and optionally open a browser).
    3. Either poll the token endpoint every ``interval`` seconds until a
       token arrives or ``expires_in`` seconds have been spent waiting, or,
       with ``poll_for_token=False``, wait for ENTER and make one request.
    4. On success: store ``access_token`` + ``refresh_token`` in the token
       cache.

Subsequent calls reuse the cached token, refreshing silently when a
``refresh_token`` is available.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any, Optional

from pydantic import ValidationError

from tokenflow.constants import SLOW_DOWN_INCREMENT
from tokenflow.exceptions import (
    PollingCancelledError,
    ProviderError,
    TokenflowError,
    TokenNotObtainedError,
)
from tokenflow.flows.base import RefreshableFlowEngine, open_in_browser
from tokenflow.models import DeviceCodeConfig, DeviceFlowSession, FlowKind
from tokenflow.transport import parse_json_body, read_json

logger = logging.getLogger(__name__)

_TERMINAL_ERRORS = frozenset({"access_denied", "expired_token"})


class DeviceCodeFlow(RefreshableFlowEngine):
    """Authenticate via the device authorization grant.

    The polling wait can be interrupted from another thread with
    :meth:`cancel`, which makes the pending
    :meth:`generate_or_refresh_token` raise
    :class:`~tokenflow.exceptions.PollingCancelledError`.
    """

    kind = FlowKind.DEVICE_CODE

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._cancelled = threading.Event()

    @property
    def device_config(self) -> DeviceCodeConfig:
        assert isinstance(self._config, DeviceCodeConfig)
        return self._config

    def cancel(self) -> None:
        """Interrupt the polling wait and abandon the remaining attempts."""
        self._cancelled.set()

    def _acquire(self) -> str:
        self._cancelled.clear()
        session = self.start_device_flow()

        if self.device_config.poll_for_token:
            self._present(session, wait_for_enter=False)
            token = self.poll_for_token(session)
            if token is None:
                raise TokenNotObtainedError(
                    "Device code expired before authorization completed"
                )
            return token

        self._present(session, wait_for_enter=True)
        payload = self._request_token(session.device_code)
        token = self._store_token_response(payload)
        if token is not None:
            return token
        if "error" in payload:
            raise ProviderError.from_payload("Device token request failed", payload)
        raise TokenNotObtainedError("No token data was received via device flow.")

    def start_device_flow(self) -> DeviceFlowSession:
        """POST to the device authorization endpoint.

        Returns:
            The new :class:`~tokenflow.models.DeviceFlowSession`. Missing
            ``interval``/``expires_in`` fall back to 5 and 1800 seconds;
            a missing ``verification_uri_complete`` falls back to
            ``verification_uri``.

        Raises:
            ProviderError: On a non-success response or if
                ``device_code``/``user_code``/``verification_uri`` are
                missing.
            TransportError: If the provider cannot be reached.
        """
        data = self._client_form()
        data.update(self._scope_form())

        response = self._transport.post_form(self._resolver.device_authorization_endpoint(), data)
        payload = read_json(response, "Device authorization request failed")

        for field in ("device_code", "user_code"):
            if not payload.get(field):
                raise ProviderError(
                    f"Device authorization response missing '{field}'", body=response.text
                )
        verification_uri = payload.get("verification_uri") or payload.get("verification_url")
        if not verification_uri:
            raise ProviderError(
                "Device authorization response missing 'verification_uri'", body=response.text
            )

        session_data: dict[str, Any] = {
            "device_code": payload["device_code"],
            "user_code": payload["user_code"],
            "verification_uri": verification_uri,
            "verification_uri_complete": payload.get("verification_uri_complete") or None,
        }
        if payload.get("interval") is not None:
            session_data["interval"] = payload["interval"]
        if payload.get("expires_in") is not None:
            session_data["expires_in"] = payload["expires_in"]
        try:
            return DeviceFlowSession.model_validate(session_data)
        except ValidationError as exc:
            raise ProviderError(
                f"Invalid device authorization response: {exc}", body=response.text
            ) from exc

    def poll_for_token(self, session: DeviceFlowSession) -> Optional[str]:
        """Poll the token endpoint until a token arrives or the budget runs out.

        Each attempt first waits ``interval`` seconds, then requests a
        token. A response without ``access_token`` means "not yet";
        per-attempt transport and provider failures are logged and the loop
        continues. ``slow_down`` adds 5 seconds to the interval.

        The total waiting time never exceeds ``expires_in``: without
        ``slow_down`` that is ``expires_in // interval`` attempts, and a
        longer interval leaves fewer attempts in the remaining time.

        Args:
            session: The active device flow session.

        Returns:
            The access token, or ``None`` once the next wait would run past
            ``expires_in`` without a token.

        Raises:
            PollingCancelledError: If :meth:`cancel` was called.
            ProviderError: If the provider reports ``access_denied`` or
                ``expired_token``.
        """
        interval = max(session.interval, 1)
        elapsed = 0
        attempt = 0
        while elapsed + interval <= session.expires_in:
            attempt += 1
            logger.info("Polling for token (attempt %d)...", attempt)

            if self._wait(interval):
                raise PollingCancelledError("Device authorization polling was cancelled")
            elapsed += interval

            try:
                payload = self._request_token(session.device_code)
            except TokenflowError as exc:
                logger.debug("Token poll attempt %d failed: %s", attempt, exc)
                continue

            token = self._store_token_response(payload)
            if token is not None:
                logger.info("Authentication has completed, the token has been retrieved.")
                return token

            error = payload.get("error")
            if error == "slow_down":
                interval += SLOW_DOWN_INCREMENT
            elif error in _TERMINAL_ERRORS:
                raise ProviderError.from_payload("Device authorization failed", payload)

        logger.warning("Device code has expired, polling has stopped.")
        return None

    def _wait(self, seconds: float) -> bool:
        """Sleep for *seconds*; return ``True`` if cancelled meanwhile."""
        return self._cancelled.wait(seconds)

    def _request_token(self, device_code: str) -> dict[str, Any]:
        """Make one device-code token request and return the JSON payload.

        Pending and error responses are returned as payloads (the provider
        sends them with HTTP 400); only a non-JSON body raises.
        """
        data = self._client_form()
        data["device_code"] = device_code
        data["grant_type"] = self.kind.grant_type

        response = self._transport.post_form(self._resolver.token_endpoint(), data)
        payload = parse_json_body(response)
        if payload is None:
            raise ProviderError(
                f"Device token request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return payload

    def _present(self, session: DeviceFlowSession, wait_for_enter: bool) -> None:
        """Hand the session to automation, or show instructions to the user."""
        config = self.device_config
        if config.automation_enabled and config.automation_callback is not None:
            config.automation_callback(session.browser_uri)
            return

        if config.open_browser:
            open_in_browser(session.browser_uri)

        if wait_for_enter:
            self._prompt(
                f"\nGo to: {session.browser_uri}\n"
                f"Confirm authorization code shown in UI matches: {session.user_code}. "
                "If so, authenticate and press ENTER once done...\n"
            )
            return

        sys.stderr.write("\n")
        sys.stderr.write(
            "If the browser did not open, copy this link into your browser "
            f"and follow the instructions: {session.browser_uri}\n"
        )
        sys.stderr.write(
            f"Confirm authorization code shown in UI matches: {session.user_code}. "
            "If not, do not authenticate and abort.\n"
        )
        sys.stderr.write("\nWaiting for authorization...\n")
        sys.stderr.flush()
