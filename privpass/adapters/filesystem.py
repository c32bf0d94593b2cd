"""
File-backed key-value store.

The simplest durable collaborator: one JSON document in a directory we
control. Every mutation rewrites the whole file, which is fine for a store
bounded by the token ceiling.
"""

import json
import logging
import os
from pathlib import Path

from privpass.adapters.base import KeyValueStore

logger = logging.getLogger(__name__)


class FileKeyValueStore(KeyValueStore):
    """
    Key-value store persisted as a JSON object on disk.

    Args:
        storage_dir: Directory that holds the store file.
        filename: Name of the store file inside `storage_dir`.
    """

    def __init__(self, storage_dir: str | Path, filename: str = "privpass-store.json"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self._data: dict[str, str] = self._read()

    @property
    def _store_file(self) -> Path:
        return self.storage_dir / self.filename

    def _read(self) -> dict[str, str]:
        if not self._store_file.exists():
            return {}
        try:
            data = json.loads(self._store_file.read_text())
        except ValueError:
            logger.warning("Store file %s is corrupt; starting empty", self._store_file)
            return {}
        if not isinstance(data, dict):
            logger.warning("Store file %s is not an object; starting empty", self._store_file)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        # Atomic replace
        tmp_file = self._store_file.with_suffix(".tmp")
        tmp_file.write_text(json.dumps(self._data, indent=2))
        os.replace(tmp_file, self._store_file)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()

    def clear(self) -> None:
        self._data = {}
        self._write()
