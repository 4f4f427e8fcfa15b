"""Key/value persistence for vault records and backups.

The vault only ever stores short text records (JSON strings and base64
blobs) under well-known keys, so the storage contract is a flat mapping of
string keys to string values.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

from ..utils.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """Flat string-to-string storage, last write wins."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def keys(self) -> list[str]:
        """List all stored keys."""

    def apply(self, changes: Mapping[str, Optional[str]]) -> None:
        """
        Write several records; a None value deletes the key.

        Stores that can should override this to make the batch atomic.
        """
        for key, value in changes.items():
            if value is None:
                self.delete(key)
            else:
                self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """Process-local store, used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """
    Store backed by a single JSON object on disk.

    The file is re-read on every access so separate processes see each
    other's writes, and rewritten atomically (temp file + rename).
    There is no cross-process locking.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Storage file is not valid JSON: {self.path}: {e}")
        if not isinstance(data, dict):
            raise ValueError(f"Storage file must contain a JSON object: {self.path}")
        return data

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".store-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def apply(self, changes: Mapping[str, Optional[str]]) -> None:
        data = self._load()
        for key, value in changes.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self._save(data)

    def keys(self) -> list[str]:
        return list(self._load())


class StagedStore(KeyValueStore):
    """
    Buffer writes over another store until ``commit``.

    Reads see the pending writes first. ``commit`` hands the whole batch to
    the underlying store's ``apply``, so a re-key either lands completely or
    not at all on stores with atomic batches.
    """

    def __init__(self, base: KeyValueStore):
        self.base = base
        self._pending: dict[str, Optional[str]] = {}

    def get(self, key: str) -> Optional[str]:
        if key in self._pending:
            return self._pending[key]
        return self.base.get(key)

    def set(self, key: str, value: str) -> None:
        self._pending[key] = value

    def delete(self, key: str) -> None:
        self._pending[key] = None

    def keys(self) -> list[str]:
        keys = [k for k in self.base.keys() if k not in self._pending]
        return keys + [k for k, v in self._pending.items() if v is not None]

    def commit(self) -> None:
        """Write all pending changes to the underlying store."""
        if self._pending:
            self.base.apply(self._pending)
            logger.debug("Committed %d staged record(s)", len(self._pending))
        self._pending = {}
