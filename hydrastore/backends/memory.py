"""In-memory storage backend."""

from typing import Dict, List, Optional

from .base import DEFAULT_NAMESPACE, StorageBackend, Value


class MemoryBackend(StorageBackend):
    """In-memory key-value backend.

    The default storage when nothing else is configured. Each namespace
    is a plain dict; data lives as long as the backend instance (closing
    only drops the handle, it keeps the data).

    Example:
        backend = MemoryBackend()
        await backend.put("settings", '{"theme": "dark"}')
        await backend.get("settings")   # '{"theme": "dark"}'
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE):
        super().__init__(namespace)
        self._namespaces: Dict[str, Dict[str, Value]] = {}

    async def _connect(self) -> Dict[str, Value]:
        return self._namespaces.setdefault(self.namespace, {})

    async def get(self, key: str) -> Optional[Value]:
        """Retrieve entry by key."""
        data = await self.open()
        return data.get(key)

    async def put(self, key: str, value: Value) -> None:
        """Store or update entry."""
        data = await self.open()
        data[key] = value

    async def delete(self, key: str) -> bool:
        """Delete entry by key."""
        data = await self.open()
        return data.pop(key, None) is not None

    async def clear(self) -> None:
        """Remove every entry in the namespace."""
        data = await self.open()
        data.clear()

    async def keys(self) -> List[str]:
        """List keys in the namespace."""
        data = await self.open()
        return sorted(data)
