"""Canonical Pydantic models shared across all tokenflow modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Flow configuration** -- immutable, validated at construction, and
serialisable as profile JSON:
    :class:`ClientCredentialsConfig`, :class:`DeviceCodeConfig`,
    :class:`AuthorizationCodeConfig`, combined into the :data:`FlowConfig`
    discriminated union on ``kind``. Endpoints are either
    :class:`OidcEndpoints` (resolved from a discovery document) or
    :class:`ManualEndpoints`, combined into :data:`EndpointSource` on
    ``source``.

**Protocol state** -- produced and consumed during a single flow run:
    :class:`DeviceFlowSession` and :class:`PkceChallenge`.

**Settings** -- :class:`ClientSettings`, loaded from the environment by
:func:`tokenflow.config.load_settings`.

Required fields are declared optional and checked in ``after`` validators
that raise :class:`~tokenflow.exceptions.ConfigurationError`, so callers
see one exception type for every configuration mistake.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from tokenflow.constants import (
    DEFAULT_DEVICE_CODE_EXPIRY,
    DEFAULT_POLL_INTERVAL,
    REQUEST_TIMEOUT,
    VALID_MIN_DURATION_THRESHOLD,
)
from tokenflow.exceptions import ConfigurationError


# --- Flow kinds ---


class FlowKind(str, enum.Enum):
    """The three supported OAuth 2.0 grant flows.

    The enum value doubles as the ``kind`` tag of the matching
    configuration model and as the flow segment of token cache keys.
    """

    CLIENT_CREDENTIALS = "client_credentials"
    DEVICE_CODE = "device_code"
    AUTHORIZATION_CODE = "authorization_code"

    @property
    def grant_type(self) -> str:
        """The ``grant_type`` form value sent to the token endpoint."""
        return _GRANT_TYPES[self]

    @classmethod
    def parse(cls, value: Union["FlowKind", str]) -> "FlowKind":
        """Coerce *value* to a :class:`FlowKind`.

        Raises:
            ConfigurationError: If *value* names no known flow.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(k.value for k in cls)
            raise ConfigurationError(
                f"Unknown flow kind '{value}': must be one of {allowed}"
            ) from None


_GRANT_TYPES = {
    FlowKind.CLIENT_CREDENTIALS: "client_credentials",
    FlowKind.DEVICE_CODE: "urn:ietf:params:oauth:grant-type:device_code",
    FlowKind.AUTHORIZATION_CODE: "authorization_code",
}


# --- Endpoints ---


class OidcEndpoints(BaseModel):
    """Endpoints discovered from an OpenID Connect discovery document.

    Example::

        OidcEndpoints(discovery_url="https://idp/.well-known/openid-configuration")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: Literal["oidc"] = "oidc"
    discovery_url: Optional[str] = Field(
        default=None, description="URL of the provider's discovery document"
    )

    @model_validator(mode="after")
    def _require_url(self) -> "OidcEndpoints":
        if not self.discovery_url or not self.discovery_url.strip():
            raise ConfigurationError("discovery_url is required for OIDC endpoints")
        return self


class ManualEndpoints(BaseModel):
    """Explicitly configured endpoints.

    Only ``token_endpoint`` is checked at construction. The authorization
    and device authorization endpoints are checked by the endpoint
    resolver when the active flow first needs them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    source: Literal["manual"] = "manual"
    token_endpoint: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    device_authorization_endpoint: Optional[str] = None

    @model_validator(mode="after")
    def _require_token_endpoint(self) -> "ManualEndpoints":
        if not self.token_endpoint or not self.token_endpoint.strip():
            raise ConfigurationError("token_endpoint is required for manual endpoints")
        return self


EndpointSource = Annotated[
    Union[OidcEndpoints, ManualEndpoints], Field(discriminator="source")
]


# --- Flow configuration ---


class _FlowConfigBase(BaseModel):
    """Fields shared by every flow configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_id: Optional[str] = Field(default=None, description="OAuth client identifier")
    endpoints: Optional[EndpointSource] = Field(
        default=None, description="Where to find the provider's endpoints"
    )
    client_secret: Optional[str] = Field(default=None, description="OAuth client secret")
    client_secret_source: Optional[str] = Field(
        default=None,
        description="Credential source for the secret: env:VAR, file:/path, prompt",
    )
    scope: Optional[str] = Field(default=None, description="Space-delimited scopes")
    audience: list[str] = Field(
        default_factory=list, description="Audience identifiers, sent as repeated fields"
    )

    @model_validator(mode="after")
    def _check_required(self) -> Any:
        if not self.client_id or not self.client_id.strip():
            raise ConfigurationError("client_id is required")
        if self.endpoints is None:
            raise ConfigurationError("endpoints are required")
        self._check_flow_fields()
        return self

    def _check_flow_fields(self) -> None:
        """Hook for flow-specific required fields."""

    @property
    def flow_kind(self) -> FlowKind:
        """The :class:`FlowKind` matching this configuration's ``kind`` tag."""
        return FlowKind(self.kind)  # type: ignore[attr-defined]


class ClientCredentialsConfig(_FlowConfigBase):
    """Client credentials grant (:rfc:`6749` section 4.4).

    Requires a client secret, given either directly or as a
    ``client_secret_source`` resolved when the token is first requested.
    """

    kind: Literal["client_credentials"] = "client_credentials"

    def _check_flow_fields(self) -> None:
        if not self.client_secret and not self.client_secret_source:
            raise ConfigurationError(
                "client_secret is required for the client credentials flow"
            )


class DeviceCodeConfig(_FlowConfigBase):
    """Device authorization grant (:rfc:`8628`).

    Attributes:
        poll_for_token: Poll the token endpoint until the user approves.
            When ``False`` the flow waits for the user to press ENTER and
            then makes a single token request.
        automation_callback: Receives the complete verification URI in
            place of the interactive instructions. Must be paired with
            ``automation_enabled=True``.
        automation_enabled: Opt-in switch for ``automation_callback``.
        open_browser: Open the verification URI in the default browser
            during interactive runs.
    """

    kind: Literal["device_code"] = "device_code"
    poll_for_token: bool = True
    automation_callback: Optional[Callable[[str], None]] = Field(default=None, exclude=True)
    automation_enabled: bool = False
    open_browser: bool = True

    def _check_flow_fields(self) -> None:
        if self.automation_callback is not None and not self.automation_enabled:
            raise ConfigurationError(
                "automation_callback requires automation_enabled=True"
            )


class AuthorizationCodeConfig(_FlowConfigBase):
    """Authorization code grant (:rfc:`6749` section 4.1) with optional PKCE.

    Attributes:
        redirect_uri: Redirect URI registered with the provider. Required.
        state: Fixed ``state`` value. A random one is generated per attempt
            when omitted.
        use_pkce: Send an S256 code challenge (:rfc:`7636`).
        automation_callback: Takes the authorization URL and returns the
            final redirect URL, replacing the interactive paste prompt.
        open_browser: Open the authorization URL in the default browser
            during interactive runs.
    """

    kind: Literal["authorization_code"] = "authorization_code"
    redirect_uri: Optional[str] = None
    state: Optional[str] = None
    use_pkce: bool = True
    automation_callback: Optional[Callable[[str], str]] = Field(default=None, exclude=True)
    open_browser: bool = True

    def _check_flow_fields(self) -> None:
        if not self.redirect_uri or not self.redirect_uri.strip():
            raise ConfigurationError(
                "redirect_uri is required for the authorization code flow"
            )


FlowConfig = Annotated[
    Union[ClientCredentialsConfig, DeviceCodeConfig, AuthorizationCodeConfig],
    Field(discriminator="kind"),
]

_flow_config_adapter: TypeAdapter[Any] = TypeAdapter(FlowConfig)


def parse_flow_config(data: dict[str, Any]) -> FlowConfig:
    """Validate a plain dict (e.g. profile JSON) into a flow configuration.

    Args:
        data: Mapping with a ``kind`` tag and the fields of that flow.

    Returns:
        The matching configuration model.

    Raises:
        ConfigurationError: If ``kind`` is unknown or a field is invalid.
    """
    try:
        return _flow_config_adapter.validate_python(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid flow configuration: {exc}") from exc


# --- Protocol state ---


class DeviceFlowSession(BaseModel):
    """State returned by the device authorization endpoint.

    Created by the device authorization request and consumed by the
    polling loop; never persisted.
    """

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    interval: int = DEFAULT_POLL_INTERVAL
    expires_in: int = DEFAULT_DEVICE_CODE_EXPIRY

    @property
    def max_attempts(self) -> int:
        """Number of token requests that fit in the session lifetime."""
        return self.expires_in // max(self.interval, 1)

    @property
    def browser_uri(self) -> str:
        """The URI to show the user, preferring the one with the code embedded."""
        return self.verification_uri_complete or self.verification_uri


class PkceChallenge(BaseModel):
    """A PKCE verifier/challenge pair (:rfc:`7636`).

    Only :attr:`challenge` goes into the authorization URL; :attr:`verifier`
    is sent with the code exchange.
    """

    model_config = ConfigDict(frozen=True)

    verifier: str
    challenge: str
    method: Literal["S256"] = "S256"


# --- Settings ---


class ClientSettings(BaseModel):
    """Process-level defaults for :class:`~tokenflow.client.OAuth2Client`.

    Example::

        ClientSettings(token_store="memory", min_validity_seconds=60)
    """

    timeout: float = Field(default=float(REQUEST_TIMEOUT), gt=0)
    proxy_url: Optional[str] = None
    min_validity_seconds: int = Field(default=VALID_MIN_DURATION_THRESHOLD, ge=0)
    token_store: Literal["file", "keyring", "memory"] = "file"
    store_path: Optional[str] = Field(
        default=None, description="Token file for the file store (default: data dir)"
    )
