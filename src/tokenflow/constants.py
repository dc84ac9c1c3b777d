"""Library-wide defaults."""

VALID_MIN_DURATION_THRESHOLD = 30
"""Seconds an access token must remain valid to be served from the cache."""

REQUEST_TIMEOUT = 60
"""Connect and read timeout, in seconds, for every identity-provider request."""

LOCALHOST_REDIRECT_URI = "http://localhost:61234/auth/token.callback"
"""Conventional loopback redirect URI for the authorization code flow."""

DEFAULT_POLL_INTERVAL = 5
"""Polling interval used when the device authorization response omits ``interval``."""

DEFAULT_DEVICE_CODE_EXPIRY = 1800
"""Session lifetime used when the device authorization response omits ``expires_in``."""

SLOW_DOWN_INCREMENT = 5
"""Seconds added to the polling interval on an RFC 8628 ``slow_down`` response."""
