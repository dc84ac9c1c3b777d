"""Exception hierarchy for tokenflow.

All exceptions inherit from :class:`TokenflowError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`tokenflow.exit_codes`. The command-line entry point in
:func:`tokenflow.app.main` catches ``TokenflowError`` and exits with the
appropriate code; library callers can catch the base class or any of the
specific subclasses.

Subclass hierarchy::

    TokenflowError (exit 1)
    +-- ConfigurationError     (exit 2)
    +-- ProviderError          (exit 3)
    +-- TokenNotObtainedError  (exit 3)
    +-- RefreshError           (exit 3)
    +-- TransportError         (exit 6)
    +-- StoreError             (exit 8)
    +-- PollingCancelledError  (exit 130)

:class:`ConfigurationError` does not derive from ``ValueError``: raised
inside a pydantic validator it propagates unchanged rather than as a
``ValidationError``.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from tokenflow.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_STORE_ERROR,
)


class TokenflowError(Exception):
    """Base exception for all tokenflow errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`tokenflow.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(TokenflowError):
    """Raised for missing or invalid configuration (required fields, flow kind, proxy, credential sources)."""

    exit_code = EXIT_INVALID_USAGE


class ProviderError(TokenflowError):
    """Raised when the identity provider answers with an error.

    Covers non-success HTTP statuses, non-JSON bodies, and JSON payloads
    carrying an ``error`` field. The provider's text is kept verbatim in
    the message and in :attr:`body`.

    Args:
        message: Human-readable error description.
        error: The OAuth ``error`` code, when the provider supplied one.
        error_description: The OAuth ``error_description``, if any.
        status_code: HTTP status of the response, if known.
        body: The raw response body.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_payload(
        cls,
        context: str,
        payload: dict[str, Any],
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> "ProviderError":
        """Build an error from an OAuth JSON error payload.

        Args:
            context: Short description of the failed operation, used as the
                message prefix (e.g. ``"Token request failed"``).
            payload: The decoded JSON response.
            status_code: HTTP status of the response.
            body: The raw response text; included verbatim in the message.

        Returns:
            A :class:`ProviderError` whose message contains the provider's
            response text.
        """
        error = payload.get("error")
        description = payload.get("error_description")
        detail = body if body is not None else json.dumps(payload)
        return cls(
            f"{context}: {detail}",
            error=str(error) if error is not None else None,
            error_description=str(description) if description is not None else None,
            status_code=status_code,
            body=body,
        )


class TokenNotObtainedError(TokenflowError):
    """Raised when a flow completed without the provider issuing an access token."""

    exit_code = EXIT_AUTH_FAILURE


class RefreshError(TokenflowError):
    """Raised when refresh-token rotation fails.

    Only used inside the refresh coordinator, which recovers by purging
    the stored tokens and running the full flow.
    """

    exit_code = EXIT_AUTH_FAILURE


class TransportError(TokenflowError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class StoreError(TokenflowError):
    """Raised when the backing token store cannot be read or written."""

    exit_code = EXIT_STORE_ERROR


class PollingCancelledError(TokenflowError):
    """Raised when the caller cancels a device authorization polling wait."""

    exit_code = EXIT_CANCELLED
