"""
Storage Manager

Keyed access to the persisted container: credentials, groups, the
serialized filesystem, aliases and per-user terminal state. Keys the
core does not own (such as the AI key) pass through untouched.

Version: 1.0.0
"""

import asyncio
import copy
from typing import Any, List, Optional

from shellcore.core.registry import Subsystem, SubsystemState
from shellcore.exceptions import StorageError
from shellcore.storage.backends import StorageBackend, MemoryStorageBackend


class StorageKey:
    """Well-known keys of the storage container."""
    USER_CREDENTIALS = "oopisOsUserCredentials"
    USER_GROUPS = "oopisOsUserGroups"
    FILESYSTEM = "OopisOS_SharedFS"
    ALIAS_DEFINITIONS = "oopisOsAliasDefinitions"
    USER_TERMINAL_STATE_PREFIX = "oopisOsUserTerminalState_"
    GEMINI_API_KEY = "oopisGeminiApiKey"

    @classmethod
    def terminal_state(cls, username: str) -> str:
        return f"{cls.USER_TERMINAL_STATE_PREFIX}{username}"


class StorageManager(Subsystem):
    """
    Storage subsystem.

    Holds the container in memory and writes the whole of it back to
    the backend on every save, so a save is atomic at container level.

    Example:
        >>> storage = StorageManager(MemoryStorageBackend())
        >>> storage.initialize()
        >>> storage.save_item(StorageKey.USER_GROUPS, {'root': ['root']}, "Groups")
        True
    """

    def __init__(self, backend: Optional[StorageBackend] = None):
        super().__init__('storage')
        self._backend = backend or MemoryStorageBackend()
        self._data: dict[str, Any] = {}
        self._writes = 0

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def write_count(self) -> int:
        """Number of times the container was written to the backend."""
        return self._writes

    def initialize(self) -> None:
        self._data = self._backend.load()
        self._logger.info("Storage loaded", context={'keys': len(self._data)})

    def reload(self) -> None:
        """Discard the in-memory container and read the backend again."""
        self._data = self._backend.load()

    def load_item(self, key: str, description: str = "", default: Any = None) -> Any:
        """
        Get a copy of the value stored under ``key``.

        Args:
            key: Storage key
            description: Human-readable label used in log records
            default: Value returned when the key is absent
        """
        if key not in self._data:
            return copy.deepcopy(default)
        self._logger.debug("Loaded item", context={'key': key, 'what': description})
        return copy.deepcopy(self._data[key])

    def save_item(self, key: str, value: Any, description: str = "") -> bool:
        """
        Store ``value`` under ``key`` and write the container.

        Returns:
            True on success, False if the backend failed
        """
        self._data[key] = copy.deepcopy(value)
        return self._write(key, description)

    async def flush_item(self, key: str, value: Any, description: str = "") -> bool:
        """Suspension-point variant of ``save_item``."""
        await asyncio.sleep(0)
        return self.save_item(key, value, description)

    def remove_item(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return self._write(key, "remove")

    def has_item(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return sorted(self._data)

    def clear(self) -> None:
        """Remove every key, including ones the core does not own."""
        self._data = {}
        self._backend.clear()

    def _write(self, key: str, description: str) -> bool:
        try:
            self._backend.save(self._data)
        except StorageError as e:
            self._logger.error(
                "Storage write failed",
                context={'key': key, 'what': description, 'error': e.message}
            )
            self.set_state(SubsystemState.ERROR)
            return False
        self._writes += 1
        return True
