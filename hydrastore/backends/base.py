"""Abstract base class for storage backends."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Union

from ..exceptions import BackendError, BackendOpenError

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "hydrastore"

Value = Union[str, bytes]


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    A backend holds serialized payloads under string keys inside a single
    namespace (one table, one dict, one object store). The persistence
    engine only ever talks to a backend through open/get/put/delete/clear.

    The connection handle is opened lazily and cached: every store sharing
    a backend instance shares that one handle. A failed open is not
    cached, so the next call tries again.

    Subclasses implement _connect/_disconnect plus the data operations;
    the data operations receive the handle returned by open().
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE):
        self.namespace = namespace
        self._handle: Any = None
        self._open_lock: Optional[asyncio.Lock] = None

    @property
    def is_open(self) -> bool:
        """Whether a handle is currently cached."""
        return self._handle is not None

    async def open(self) -> Any:
        """Open the backend, or return the cached handle.

        Concurrent first calls share one connection attempt.

        Returns:
            Backend-specific handle

        Raises:
            BackendOpenError: If the connection could not be established
        """
        if self._handle is not None:
            return self._handle

        if self._open_lock is None:
            self._open_lock = asyncio.Lock()

        async with self._open_lock:
            if self._handle is None:
                try:
                    handle = await self._connect()
                except BackendError:
                    raise
                except Exception as e:
                    raise BackendOpenError(namespace=self.namespace, cause=e) from e
                logger.debug("Opened %s namespace %r", type(self).__name__, self.namespace)
                self._handle = handle
        return self._handle

    async def close(self) -> None:
        """Release the cached handle. A later open() reconnects."""
        handle, self._handle = self._handle, None
        if handle is not None:
            await self._disconnect(handle)

    @abstractmethod
    async def _connect(self) -> Any:
        """Establish the connection and prepare the namespace.

        Returns:
            Handle passed to later operations
        """
        pass

    async def _disconnect(self, handle: Any) -> None:
        """Release a handle returned by _connect()."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[Value]:
        """Read the entry stored under key.

        Returns:
            The stored payload, or None if there is no entry
        """
        pass

    @abstractmethod
    async def put(self, key: str, value: Value) -> None:
        """Store or replace the entry under key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete the entry under key.

        Returns:
            True if an entry existed and was deleted
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry in the namespace."""
        pass

    @abstractmethod
    async def keys(self) -> List[str]:
        """List the keys in the namespace, sorted."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(namespace={self.namespace!r})"
