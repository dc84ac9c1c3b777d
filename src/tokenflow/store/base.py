"""Abstract key/value store interface.

The :class:`~tokenflow.auth.token_cache.TokenCache` owns all persisted
token state and talks to storage only through this interface. A store
maps string keys to string values; it knows nothing about tokens.

Implementations raise :class:`~tokenflow.exceptions.StoreError` when the
backend fails. A missing key is not an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """Process-wide string-to-string store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under *key*, or ``None`` if absent.

        Raises:
            StoreError: If the backend cannot be read.
        """

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value.

        Raises:
            StoreError: If the backend cannot be written.
        """

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete *key*. Removing a missing key is a no-op.

        Raises:
            StoreError: If the backend cannot be written.
        """
