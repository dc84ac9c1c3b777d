"""PKCE (:rfc:`7636`) and ``state`` value generation."""

from __future__ import annotations

import base64
import hashlib
import secrets

from tokenflow.models import PkceChallenge

_VERIFIER_BYTES = 64
_STATE_BYTES = 16


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_pkce_pair() -> PkceChallenge:
    """Generate a PKCE code_verifier and its S256 code_challenge.

    The verifier is 64 random bytes, URL-safe base64 encoded without
    padding (86 characters, inside the 43-128 range the RFC allows).

    Returns:
        A :class:`~tokenflow.models.PkceChallenge`.
    """
    verifier = _b64url(secrets.token_bytes(_VERIFIER_BYTES))
    return PkceChallenge(verifier=verifier, challenge=compute_challenge(verifier))


def compute_challenge(verifier: str) -> str:
    """Return ``base64url(SHA-256(verifier))`` without padding."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_state() -> str:
    """Return a random ``state`` value (16 bytes, URL-safe base64, unpadded)."""
    return _b64url(secrets.token_bytes(_STATE_BYTES))
