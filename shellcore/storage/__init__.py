"""
Shellcore Storage Subsystem

Key/value persistence for credentials, groups, the filesystem image
and per-user terminal state.
"""

from .backends import StorageBackend, MemoryStorageBackend, JsonFileStorageBackend
from .manager import StorageManager, StorageKey

__all__ = [
    'StorageBackend',
    'MemoryStorageBackend',
    'JsonFileStorageBackend',
    'StorageManager',
    'StorageKey',
]
