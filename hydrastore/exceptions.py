"""Exceptions for the hydrastore package."""

from typing import Optional


class StoreError(Exception):
    """Base exception for all hydrastore errors."""

    pass


class ConfigError(StoreError, ValueError):
    """Invalid persistence configuration."""

    pass


class SerializationError(StoreError):
    """Failed to serialize or deserialize a state payload."""

    pass


class BackendError(StoreError):
    """A storage backend operation failed.

    Attributes:
        key: Storage key the operation targeted (None for namespace-wide calls)
        namespace: Backend namespace name
        store_id: Id of the store whose descriptor triggered the call
        cause: The exception raised by the backend
    """

    action = "access"

    def __init__(
        self,
        key: Optional[str] = None,
        namespace: Optional[str] = None,
        store_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.key = key
        self.namespace = namespace
        self.store_id = store_id
        self.cause = cause
        super().__init__(self._describe())
        self.__cause__ = cause

    def _describe(self) -> str:
        target = f"key {self.key!r}" if self.key is not None else "namespace"
        where = f" in {self.namespace!r}" if self.namespace else ""
        who = f" (store {self.store_id!r})" if self.store_id else ""
        reason = f": {self.cause!r}" if self.cause is not None else ""
        return f"Failed to {self.action} {target}{where}{who}{reason}"


class BackendOpenError(BackendError):
    """Failed to open the backend connection."""

    action = "open"


class BackendReadError(BackendError):
    """Failed to read an entry."""

    action = "read"


class BackendWriteError(BackendError):
    """Failed to write an entry."""

    action = "write"


class BackendClearError(BackendError):
    """Failed to delete an entry or clear the namespace."""

    action = "clear"
