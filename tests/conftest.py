"""Shared test fixtures for tokenflow.

Provides a scriptable fake identity provider served through
:class:`httpx.MockTransport`, JWT helpers, isolated XDG directories, and
automatic reset of global state (output manager, discovery cache, logging
handlers) between tests.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional, Union
from urllib.parse import parse_qs

import httpx
import jwt
import pytest

from tokenflow.auth.endpoints import get_discovery_cache
from tokenflow.auth.token_cache import TokenCache
from tokenflow.models import ClientSettings
from tokenflow.output import reset_output
from tokenflow.store import MemoryStore
from tokenflow.transport import HttpTransport

TOKEN_URL = "https://idp.test/oauth/token"
DEVICE_URL = "https://idp.test/oauth/device"
AUTHORIZE_URL = "https://idp.test/oauth/authorize"
DISCOVERY_URL = "https://idp.test/.well-known/openid-configuration"

Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


def make_jwt(expires_in: int = 3600, **claims: Any) -> str:
    """Return an HS256 JWT whose ``exp`` is *expires_in* seconds from now."""
    payload = {"exp": int(time.time()) + expires_in, "sub": "tester", **claims}
    return jwt.encode(payload, "test-secret-key-with-enough-length!", algorithm="HS256")


def json_response(status_code: int = 200, **body: Any) -> httpx.Response:
    return httpx.Response(status_code, json=body)


def form_of(request: httpx.Request) -> dict[str, list[str]]:
    """Decode a form-urlencoded request body."""
    return parse_qs(request.content.decode())


class FakeIdP:
    """Routes requests by ``(method, url)`` to queued responses and records them.

    Queue responses with :meth:`on`; the last response queued for a route
    is repeated once the queue drains.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, url: str, *replies: Reply) -> "FakeIdP":
        self.routes.setdefault((method.upper(), url), []).extend(replies)
        return self

    def calls(self, url: Optional[str] = None) -> list[httpx.Request]:
        """Recorded requests, optionally only those to *url* (query ignored)."""
        if url is None:
            return list(self.requests)
        return [r for r in self.requests if str(r.url.copy_with(query=None)) == url]

    def forms(self, url: str) -> list[dict[str, list[str]]]:
        return [form_of(r) for r in self.calls(url)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url.copy_with(query=None)))
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, text=f"no route for {key}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return reply(request) if callable(reply) else reply

    def transport(self) -> HttpTransport:
        return HttpTransport(timeout=5, transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def idp() -> FakeIdP:
    return FakeIdP()


@pytest.fixture()
def http(idp: FakeIdP) -> HttpTransport:
    transport = idp.transport()
    yield transport
    transport.close()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def cache(store: MemoryStore) -> TokenCache:
    return TokenCache(store)


@pytest.fixture()
def settings() -> ClientSettings:
    return ClientSettings(token_store="memory")


@pytest.fixture()
def xdg_dirs(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> Any:
    """Point config and data directories at a temporary location."""
    monkeypatch.setattr("tokenflow.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in ("TIMEOUT", "PROXY", "MIN_VALIDITY", "TOKEN_STORE", "STORE_PATH"):
        monkeypatch.delenv(f"TOKENFLOW_{var}", raising=False)
    return tmp_path


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_globals() -> None:
    """Reset the output manager, discovery cache, and tokenflow log handlers.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per test.
    """
    yield
    reset_output()
    get_discovery_cache().clear()
    logger = logging.getLogger("tokenflow")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def discovery_document(**overrides: Any) -> dict[str, Any]:
    doc = {
        "issuer": "https://idp.test",
        "token_endpoint": TOKEN_URL,
        "authorization_endpoint": AUTHORIZE_URL,
        "device_authorization_endpoint": DEVICE_URL,
        "jwks_uri": "https://idp.test/jwks.json",
    }
    doc.update(overrides)
    return doc


def dump(data: Any) -> str:
    return json.dumps(data)
