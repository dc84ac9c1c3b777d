"""JSON-file token store.

Stores every key in a single JSON object, by default at
``~/.local/share/tokenflow/tokens.json`` (XDG) or the platform-equivalent
directory. Writes go through :func:`tokenflow.config.atomic_write` with
``0o600`` permissions so that tokens are never world-readable, even
momentarily.

A file that cannot be parsed is treated as empty; the next write replaces
it.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Optional

from tokenflow.config import atomic_write
from tokenflow.exceptions import StoreError
from tokenflow.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class FileStore(KeyValueStore):
    """Persist key/value pairs in a JSON file.

    Each mutation re-reads the file, applies the change and writes the
    whole object back, so several processes sharing the file see each
    other's writes (last write wins).

    Args:
        path: Location of the JSON file. Parent directories are created on
            first write.

    Example::

        store = FileStore(Path("/tmp/tokens.json"))
        store.put("c1:client_credentials:access_token", "eyJ...")
        assert store.get("c1:client_credentials:access_token") == "eyJ..."
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """The filesystem path of the token file."""
        return self._path

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def _read(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("Token file %s is not valid UTF-8; treating it as empty", self._path)
            return {}
        except OSError as exc:
            raise StoreError(f"Cannot read token file {self._path}: {exc}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Token file %s is corrupt; treating it as empty", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        try:
            atomic_write(self._path, json.dumps(data, indent=2, sort_keys=True) + "\n", mode=0o600)
        except OSError as exc:
            raise StoreError(f"Cannot write token file {self._path}: {exc}") from exc
