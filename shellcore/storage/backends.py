"""
Storage Backends

Whole-container key/value persistence. A backend loads and saves one
JSON-compatible dictionary; replacing it is atomic.

Version: 1.0.0
"""

import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from shellcore.exceptions import StorageError


class StorageBackend(ABC):
    """Abstract persistence contract used by the StorageManager."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Return the stored container (empty when nothing was saved)."""

    @abstractmethod
    def save(self, data: dict[str, Any]) -> None:
        """Replace the stored container with ``data``."""

    @abstractmethod
    def clear(self) -> None:
        """Remove everything."""


class MemoryStorageBackend(StorageBackend):
    """
    In-process backend.

    Saved containers are deep-copied so later mutation of live objects
    never leaks into the stored snapshot.
    """

    def __init__(self):
        self._data: dict[str, Any] = {}

    def load(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def save(self, data: dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)

    def clear(self) -> None:
        self._data = {}


class JsonFileStorageBackend(StorageBackend):
    """
    Backend persisting the container to a single JSON file.

    Writes go to a temporary file in the same directory, which is then
    swapped in with ``os.replace``.

    Example:
        >>> backend = JsonFileStorageBackend('~/.shellcore/storage.json')
        >>> backend.save({'k': 1})
    """

    def __init__(self, path: str):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read storage file {self._path}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self._path} does not hold an object")
        return data

    def save(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write storage file {self._path}: {e}")

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()
