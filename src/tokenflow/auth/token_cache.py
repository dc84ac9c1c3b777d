"""Token cache keyed by client identifier and flow kind.

The cache stores raw token strings in a
:class:`~tokenflow.store.base.KeyValueStore` under the keys
``<client_id>:<flow_kind>:access_token`` and
``<client_id>:<flow_kind>:refresh_token``. No expiry is stored: freshness
is derived on every read by decoding the access token's ``exp`` claim with
:mod:`jwt` (PyJWT), without verifying the signature.

Store failures never break token acquisition. A failed read is a cache
miss; a failed write is logged as a warning.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Union

import jwt

from tokenflow.constants import VALID_MIN_DURATION_THRESHOLD
from tokenflow.exceptions import StoreError
from tokenflow.models import FlowKind
from tokenflow.store.base import KeyValueStore

logger = logging.getLogger(__name__)

_ACCESS_SUFFIX = "access_token"
_REFRESH_SUFFIX = "refresh_token"

FlowKindLike = Union[FlowKind, str]


def token_expiry(token: str) -> Optional[int]:
    """Return the ``exp`` claim of a JWT, or ``None`` if it has none or is not a JWT.

    The signature is not verified; the claim is only used to decide
    whether a cached token is still worth sending.
    """
    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False, "verify_aud": False},
        )
    except jwt.PyJWTError as exc:
        logger.debug("Cannot decode access token as JWT: %s", exc)
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return int(exp)


class TokenCache:
    """Persist and validate access/refresh tokens.

    Args:
        store: Backing key/value store.
        min_validity_seconds: Default remaining lifetime a token needs to
            be served by :meth:`get_active_access_token`.

    Example::

        cache = TokenCache(MemoryStore())
        cache.set_access_and_refresh_tokens("c1", FlowKind.DEVICE_CODE, access, refresh)
        cache.get_active_access_token("c1", "device_code")
    """

    def __init__(
        self,
        store: KeyValueStore,
        min_validity_seconds: int = VALID_MIN_DURATION_THRESHOLD,
    ) -> None:
        self._store = store
        self._min_validity = min_validity_seconds

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def min_validity_seconds(self) -> int:
        return self._min_validity

    @staticmethod
    def key(client_id: str, flow_kind: FlowKindLike, suffix: str) -> str:
        """Build a storage key, validating *flow_kind*.

        Raises:
            ConfigurationError: If *flow_kind* is not a known flow.
        """
        return f"{client_id}:{FlowKind.parse(flow_kind).value}:{suffix}"

    def get_active_access_token(
        self,
        client_id: str,
        flow_kind: FlowKindLike,
        min_validity_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """Return the stored access token if it stays valid long enough.

        The token must decode as a JWT whose ``exp`` lies at least
        *min_validity_seconds* in the future.

        Args:
            client_id: OAuth client identifier.
            flow_kind: Flow the token was obtained with.
            min_validity_seconds: Override for the cache-wide threshold.

        Returns:
            The token, or ``None`` on a miss, an expired or undecodable
            token, or a store read failure.

        Raises:
            ConfigurationError: If *flow_kind* is not a known flow.
        """
        key = self.key(client_id, flow_kind, _ACCESS_SUFFIX)
        threshold = self._min_validity if min_validity_seconds is None else min_validity_seconds
        token = self._read(key)
        if not token:
            return None
        exp = token_expiry(token)
        if exp is None:
            return None
        if exp - int(time.time()) >= threshold:
            return token
        return None

    def get_refresh_token(self, client_id: str, flow_kind: FlowKindLike) -> Optional[str]:
        """Return the stored refresh token, or ``None``."""
        return self._read(self.key(client_id, flow_kind, _REFRESH_SUFFIX))

    def set_access_token(self, client_id: str, flow_kind: FlowKindLike, token: str) -> None:
        """Store an access token, replacing any previous one."""
        self._write(self.key(client_id, flow_kind, _ACCESS_SUFFIX), token)

    def set_access_and_refresh_tokens(
        self,
        client_id: str,
        flow_kind: FlowKindLike,
        access_token: str,
        refresh_token: Optional[str],
    ) -> None:
        """Store an access token and its refresh token.

        A ``None`` *refresh_token* removes any previously stored one.
        """
        self.set_access_token(client_id, flow_kind, access_token)
        refresh_key = self.key(client_id, flow_kind, _REFRESH_SUFFIX)
        if refresh_token is None:
            self._delete(refresh_key)
        else:
            self._write(refresh_key, refresh_token)

    def purge_tokens(self, client_id: str, flow_kind: Optional[FlowKindLike] = None) -> None:
        """Remove access and refresh tokens for *client_id*.

        Args:
            client_id: OAuth client identifier.
            flow_kind: Flow to purge; ``None`` purges every flow kind.
        """
        kinds = list(FlowKind) if flow_kind is None else [FlowKind.parse(flow_kind)]
        for kind in kinds:
            for suffix in (_ACCESS_SUFFIX, _REFRESH_SUFFIX):
                self._delete(self.key(client_id, kind, suffix))

    def _read(self, key: str) -> Optional[str]:
        try:
            return self._store.get(key)
        except StoreError as exc:
            logger.debug("Token store read failed for %s: %s", key, exc)
            return None

    def _write(self, key: str, value: str) -> None:
        try:
            self._store.put(key, value)
        except StoreError as exc:
            logger.warning("Could not persist %s: %s", key, exc)

    def _delete(self, key: str) -> None:
        try:
            self._store.remove(key)
        except StoreError as exc:
            logger.warning("Could not remove %s: %s", key, exc)
