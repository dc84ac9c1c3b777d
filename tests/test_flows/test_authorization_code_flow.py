"""Tests for the authorization code (+PKCE) engine."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from conftest import AUTHORIZE_URL, TOKEN_URL, FakeIdP, json_response, make_jwt
from tokenflow.auth.pkce import compute_challenge, generate_pkce_pair
from tokenflow.auth.token_cache import TokenCache
from tokenflow.exceptions import ConfigurationError, ProviderError, TokenNotObtainedError
from tokenflow.flows import AuthorizationCodeFlow, AuthorizationPhase, extract_code
from tokenflow.models import AuthorizationCodeConfig, FlowKind, ManualEndpoints
from tokenflow.transport import HttpTransport

REDIRECT_URI = "http://localhost:8400/callback"


def _config(**kwargs) -> AuthorizationCodeConfig:
    defaults = {
        "client_id": "web",
        "endpoints": ManualEndpoints(token_endpoint=TOKEN_URL, authorization_endpoint=AUTHORIZE_URL),
        "redirect_uri": REDIRECT_URI,
        "open_browser": False,
    }
    defaults.update(kwargs)
    return AuthorizationCodeConfig(**defaults)


def _query(url: str) -> dict[str, list[str]]:
    return parse_qs(urlsplit(url).query)


class _Browser:
    """Automation callback that approves the request and echoes ``state``."""

    def __init__(self, code: str = "auth-code", state: str | None = None, extra: str = "") -> None:
        self.code = code
        self.state = state
        self.extra = extra
        self.urls: list[str] = []

    def __call__(self, url: str) -> str:
        self.urls.append(url)
        state = self.state if self.state is not None else _query(url)["state"][0]
        return f"{REDIRECT_URI}?code={self.code}&state={state}{self.extra}"


class TestExtractCode:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("http://localhost/cb?code=abc&state=xyz", "abc"),
            ("http://localhost/cb?state=xyz&code=abc", "abc"),
            ("http://localhost/cb?code=a%2Fb%3D", "a/b="),
            ("  bare-code \n", "bare-code"),
            ("", ""),
        ],
    )
    def test_extract(self, text: str, expected: str) -> None:
        assert extract_code(text) == expected


class TestBuildAuthorizationUrl:
    def test_parameters(self, http: HttpTransport, cache: TokenCache) -> None:
        flow = AuthorizationCodeFlow(_config(scope="openid profile", audience=["api"]), cache, http)
        pkce = generate_pkce_pair()
        url = flow.build_authorization_url("st-1", pkce)

        assert url.startswith(AUTHORIZE_URL + "?")
        query = _query(url)
        assert query["client_id"] == ["web"]
        assert query["response_type"] == ["code"]
        assert query["redirect_uri"] == [REDIRECT_URI]
        assert query["state"] == ["st-1"]
        assert query["scope"] == ["openid profile"]
        assert query["audience"] == ["api"]
        assert query["code_challenge"] == [pkce.challenge]
        assert query["code_challenge_method"] == ["S256"]

    def test_without_pkce(self, http: HttpTransport, cache: TokenCache) -> None:
        flow = AuthorizationCodeFlow(_config(), cache, http)
        query = _query(flow.build_authorization_url("st-1"))
        assert "code_challenge" not in query
        assert "scope" not in query

    def test_endpoint_with_existing_query(self, http: HttpTransport, cache: TokenCache) -> None:
        endpoints = ManualEndpoints(token_endpoint=TOKEN_URL, authorization_endpoint=AUTHORIZE_URL + "?tenant=x")
        flow = AuthorizationCodeFlow(_config(endpoints=endpoints), cache, http)
        url = flow.build_authorization_url("st-1")
        assert url.startswith(AUTHORIZE_URL + "?tenant=x&client_id=web")

    def test_missing_authorization_endpoint(self, http: HttpTransport, cache: TokenCache) -> None:
        flow = AuthorizationCodeFlow(_config(endpoints=ManualEndpoints(token_endpoint=TOKEN_URL)), cache, http)
        with pytest.raises(ConfigurationError, match="authorization_endpoint"):
            flow.build_authorization_url("st-1")


class TestParseRedirect:
    @pytest.fixture()
    def flow(self, http: HttpTransport, cache: TokenCache) -> AuthorizationCodeFlow:
        return AuthorizationCodeFlow(_config(), cache, http)

    def test_code_from_redirect(self, flow: AuthorizationCodeFlow) -> None:
        assert flow.parse_redirect(f"{REDIRECT_URI}?code=c1&state=s1", "s1") == "c1"

    def test_bare_code(self, flow: AuthorizationCodeFlow) -> None:
        assert flow.parse_redirect("c1", "s1") == "c1"

    def test_error_redirect(self, flow: AuthorizationCodeFlow) -> None:
        with pytest.raises(ProviderError, match="access_denied - User cancelled") as exc_info:
            flow.parse_redirect(
                f"{REDIRECT_URI}?error=access_denied&error_description=User+cancelled&state=s1", "s1"
            )
        assert exc_info.value.error == "access_denied"

    def test_state_mismatch(self, flow: AuthorizationCodeFlow) -> None:
        with pytest.raises(ProviderError, match="state_mismatch") as exc_info:
            flow.parse_redirect(f"{REDIRECT_URI}?code=c1&state=forged", "s1")
        assert exc_info.value.error == "state_mismatch"

    def test_empty_input(self, flow: AuthorizationCodeFlow) -> None:
        with pytest.raises(TokenNotObtainedError):
            flow.parse_redirect("   ", "s1")


class TestAuthorizationCodeRun:
    def test_automated_run_with_pkce(self, idp: FakeIdP, http: HttpTransport, cache: TokenCache) -> None:
        token = make_jwt()
        idp.on("POST", TOKEN_URL, json_response(access_token=token, refresh_token="r1"))
        browser = _Browser()
        flow = AuthorizationCodeFlow(_config(automation_callback=browser), cache, http)

        assert flow.generate_or_refresh_token() == token

        assert flow.phase is AuthorizationPhase.TOKEN_EXCHANGED
        assert cache.get_refresh_token("web", FlowKind.AUTHORIZATION_CODE) == "r1"
        form = idp.forms(TOKEN_URL)[-1]
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        assert form["redirect_uri"] == [REDIRECT_URI]
        challenge = _query(browser.urls[0])["code_challenge"][0]
        assert compute_challenge(form["code_verifier"][0]) == challenge
        assert "code_challenge" not in form

    def test_fresh_state_and_verifier_per_attempt(
        self, idp: FakeIdP, http: HttpTransport, cache: TokenCache
    ) -> None:
        idp.on("POST", TOKEN_URL, json_response(access_token="opaque"))
        browser = _Browser()
        flow = AuthorizationCodeFlow(_config(automation_callback=browser), cache, http)

        flow.generate_or_refresh_token()
        flow.generate_or_refresh_token()

        first, second = (_query(u) for u in browser.urls)
        assert first["state"] != second["state"]
        assert first["code_challenge"] != second["code_challenge"]

    def test_configured_state_is_used(self, idp: FakeIdP, http: HttpTransport, cache: TokenCache) -> None:
        idp.on("POST", TOKEN_URL, json_response(access_token="t"))
        browser = _Browser()
        flow = AuthorizationCodeFlow(_config(automation_callback=browser, state="fixed"), cache, http)

        flow.generate_or_refresh_token()

        assert _query(browser.urls[0])["state"] == ["fixed"]

    def test_without_pkce(self, idp: FakeIdP, http: HttpTransport, cache: TokenCache) -> None:
        idp.on("POST", TOKEN_URL, json_response(access_token="t"))
        flow = AuthorizationCodeFlow(_config(automation_callback=_Browser(), use_pkce=False), cache, http)

        flow.generate_or_refresh_token()

        assert "code_verifier" not in idp.forms(TOKEN_URL)[0]

    def test_state_mismatch_stops_before_exchange(
        self, idp: FakeIdP, http: HttpTransport, cache: TokenCache
    ) -> None:
        flow = AuthorizationCodeFlow(_config(automation_callback=_Browser(state="forged")), cache, http)

        with pytest.raises(ProviderError, match="state_mismatch"):
            flow.generate_or_refresh_token()

        assert flow.phase is AuthorizationPhase.AWAITING_USER_REDIRECT
        assert idp.calls(TOKEN_URL) == []

    def test_interactive_paste(
        self, idp: FakeIdP, http: HttpTransport, cache: TokenCache, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        opened: list[str] = []
        monkeypatch.setattr("tokenflow.flows.base.webbrowser.open", lambda url: opened.append(url) or True)
        idp.on("POST", TOKEN_URL, json_response(access_token="t"))
        prompts: list[str] = []

        def paste(message: str) -> str:
            prompts.append(message)
            return "pasted-code"

        flow = AuthorizationCodeFlow(_config(open_browser=True), cache, http, prompt=paste)
        assert flow.generate_or_refresh_token() == "t"

        assert len(opened) == 1
        assert opened[0] in prompts[0]
        assert idp.forms(TOKEN_URL)[0]["code"] == ["pasted-code"]

    def test_exchange_error(self, idp: FakeIdP, http: HttpTransport, cache: TokenCache) -> None:
        idp.on("POST", TOKEN_URL, json_response(400, error="invalid_grant", error_description="code reused"))
        flow = AuthorizationCodeFlow(_config(automation_callback=_Browser()), cache, http)

        with pytest.raises(ProviderError, match="invalid_grant"):
            flow.generate_or_refresh_token()
        assert flow.phase is AuthorizationPhase.CODE_RECEIVED

    def test_exchange_without_token(self, idp: FakeIdP, http: HttpTransport, cache: TokenCache) -> None:
        idp.on("POST", TOKEN_URL, json_response(token_type="Bearer"))
        flow = AuthorizationCodeFlow(_config(automation_callback=_Browser()), cache, http)

        with pytest.raises(TokenNotObtainedError):
            flow.generate_or_refresh_token()

    def test_refresh_before_full_flow(self, idp: FakeIdP, http: HttpTransport, cache: TokenCache) -> None:
        cache.set_access_and_refresh_tokens("web", FlowKind.AUTHORIZATION_CODE, make_jwt(expires_in=1), "r1")
        idp.on("POST", TOKEN_URL, json_response(access_token="refreshed"))
        browser = _Browser()
        flow = AuthorizationCodeFlow(_config(automation_callback=browser), cache, http)

        assert flow.generate_or_refresh_token() == "refreshed"
        assert browser.urls == []
        assert cache.get_refresh_token("web", FlowKind.AUTHORIZATION_CODE) == "r1"
