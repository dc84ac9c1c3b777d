"""In-memory store, scoped to the current process."""

from __future__ import annotations

import threading
from typing import Optional

from tokenflow.store.base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Dict-backed :class:`~tokenflow.store.base.KeyValueStore`.

    Nothing survives the process. Useful for tests and for short-lived
    scripts that should not leave tokens on disk.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Return the stored keys, sorted."""
        with self._lock:
            return sorted(self._data)
