"""Key/value backends for persisted tokens.

Public API:
    :class:`KeyValueStore` -- abstract interface used by the token cache.
    :class:`MemoryStore` -- process-local dict, for tests and one-shot scripts.
    :class:`FileStore` -- JSON file written atomically with ``0o600``.
    :class:`KeyringStore` -- the OS credential store via :mod:`keyring`.
"""

from tokenflow.store.base import KeyValueStore
from tokenflow.store.file import FileStore
from tokenflow.store.keyring_store import KeyringStore
from tokenflow.store.memory import MemoryStore

__all__ = ["FileStore", "KeyValueStore", "KeyringStore", "MemoryStore"]
