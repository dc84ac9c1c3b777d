"""HTTP transport used by every flow engine and the endpoint resolver.

Wraps a single :class:`httpx.Client` configured with the request timeout,
an optional HTTP proxy, and ``Accept: application/json``. Network-level
failures are translated to :class:`~tokenflow.exceptions.TransportError`;
interpreting the response is left to :func:`read_json`, which turns
non-success statuses and non-JSON bodies into
:class:`~tokenflow.exceptions.ProviderError`.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Union

import httpx

from tokenflow.constants import REQUEST_TIMEOUT
from tokenflow.exceptions import ProviderError, TransportError

FormValue = Union[str, Sequence[str]]


class HttpTransport:
    """Synchronous HTTP client for identity-provider requests.

    Args:
        timeout: Connect and read timeout in seconds.
        proxy_url: Optional ``http://host:port`` proxy for every request.
        transport: Optional custom :class:`httpx.BaseTransport`, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        with HttpTransport(timeout=10) as http:
            response = http.post_form("https://idp/token", {"grant_type": "client_credentials"})
    """

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        proxy_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            proxy=proxy_url or None,
            transport=transport,
            headers={"Accept": "application/json"},
            follow_redirects=False,
        )

    def post_form(self, url: str, data: Mapping[str, FormValue]) -> httpx.Response:
        """POST *data* as ``application/x-www-form-urlencoded``.

        List values are sent as repeated fields (used for ``audience``).

        Raises:
            TransportError: On connection errors and timeouts.
        """
        try:
            return self._client.post(url, data=dict(data))
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {url} failed: {exc}") from exc

    def get(self, url: str, follow_redirects: bool = True) -> httpx.Response:
        """GET *url*, optionally following redirects.

        Raises:
            TransportError: On connection errors and timeouts.
        """
        try:
            return self._client.get(url, follow_redirects=follow_redirects)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def read_json(response: httpx.Response, context: str) -> dict[str, Any]:
    """Decode a provider response, raising on anything but a 2xx JSON object.

    Args:
        response: The HTTP response.
        context: Prefix for error messages, e.g. ``"Token request failed"``.

    Returns:
        The decoded JSON object.

    Raises:
        ProviderError: If the status is not 2xx or the body is not a JSON
            object. The message carries the provider's text verbatim.
    """
    payload = parse_json_body(response)
    if not response.is_success:
        if payload is not None:
            raise ProviderError.from_payload(
                context, payload, status_code=response.status_code, body=response.text
            )
        raise ProviderError(
            f"{context} with status {response.status_code}: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    if payload is None:
        raise ProviderError(
            f"{context}: response is not a JSON object: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    return payload


def parse_json_body(response: httpx.Response) -> Optional[dict[str, Any]]:
    """Return the JSON object in *response*, or ``None`` if the body is not one."""
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None
