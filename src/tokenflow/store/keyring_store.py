"""OS credential-store backend using :mod:`keyring`.

Each key becomes one keyring entry under a single service name, so tokens
land in the macOS Keychain, Windows Credential Locker, or the Secret
Service on Linux.
"""

from __future__ import annotations

from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from tokenflow.exceptions import StoreError
from tokenflow.store.base import KeyValueStore


class KeyringStore(KeyValueStore):
    """Store values in the system keyring.

    Args:
        service: Keyring service name; keys become the entry usernames.
    """

    def __init__(self, service: str = "tokenflow") -> None:
        self._service = service

    @property
    def service(self) -> str:
        return self._service

    def get(self, key: str) -> Optional[str]:
        try:
            return keyring.get_password(self._service, key)
        except KeyringError as exc:
            raise StoreError(f"Keyring read failed for '{key}': {exc}") from exc

    def put(self, key: str, value: str) -> None:
        try:
            keyring.set_password(self._service, key, value)
        except KeyringError as exc:
            raise StoreError(f"Keyring write failed for '{key}': {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            keyring.delete_password(self._service, key)
        except PasswordDeleteError:
            # Entry did not exist.
            return
        except KeyringError as exc:
            raise StoreError(f"Keyring delete failed for '{key}': {exc}") from exc
