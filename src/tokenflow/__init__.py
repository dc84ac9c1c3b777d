"""tokenflow -- Obtain, cache, and refresh OAuth 2.0 bearer tokens.

Given one of three grant-type configurations (client credentials, device
authorization, authorization code with PKCE) the package obtains an access
token, keeps it in a local token cache, and refreshes or re-acquires it when
it is about to expire.

Typical usage::

    from tokenflow import OAuth2Client
    from tokenflow.models import ClientCredentialsConfig, ManualEndpoints

    config = ClientCredentialsConfig(
        client_id="c1",
        client_secret="s1",
        endpoints=ManualEndpoints(token_endpoint="https://idp/test/token"),
    )
    with OAuth2Client(config) as client:
        token = client.token()

Modules:
    client: The :class:`OAuth2Client` facade.
    models: Pydantic configuration and session models.
    flows: Grant-flow engines and the refresh coordinator.
    auth: Token cache, endpoint resolver, and PKCE helpers.
    store: Key/value backends for persisted tokens.
    config: XDG-aware settings, profiles, and credential resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    app: Typer command-line entry point.
"""

__version__ = "0.1.0"

from tokenflow.client import OAuth2Client  # noqa: E402

__all__ = ["OAuth2Client", "__version__"]
