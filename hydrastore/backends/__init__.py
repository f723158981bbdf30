"""Storage backends for hydrastore."""

from .base import DEFAULT_NAMESPACE, StorageBackend
from .memory import MemoryBackend
from .sqlite import SQLiteBackend

__all__ = [
    "DEFAULT_NAMESPACE",
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
]
