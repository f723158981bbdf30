"""Keep observable store state in sync with durable storage.

hydrastore is a store plugin: attach it to a StoreHub and every store
that declares a persist option is hydrated from its storage backend
when added, and written back after every mutation.

Quick Start:
    import asyncio
    from hydrastore import Store, StoreHub, create_persisted_state

    async def main():
        hub = StoreHub()
        hub.use(create_persisted_state(storage="sqlite:///state.db"))

        prefs = await hub.add(
            Store("prefs", {"theme": "light", "session": None},
                  persist={"excludes": ["session"]})
        )
        prefs["theme"] = "dark"            # persisted in the background
        await prefs.persistence.flush()

    asyncio.run(main())

Options (per persistence, falling back to the factory defaults):
    storage, before_restore, after_restore, serializer, key, paths,
    excludes, debug

Supported storage URLs:
    - memory://           In-memory storage
    - sqlite:///path.db   SQLite file storage
    - sqlite:///:memory:  SQLite in-memory
"""

from .core import PersistedState, PersistenceState, StorePersistence, connect, create_persisted_state
from .options import (
    EffectiveOptions,
    FactoryOptions,
    PersistenceDescriptor,
    PersistOptions,
    build_descriptors,
    normalize_options,
    resolve_key,
)
from .paths import exclude, get_path, pick, project, set_path
from .serialization import JSONSerializer, Serializer
from .store import (
    HotReloadShadow,
    MutationEvent,
    MutationKind,
    PluginContext,
    Primary,
    Store,
    StoreHub,
    StoreOptions,
)
from .backends import DEFAULT_NAMESPACE, MemoryBackend, SQLiteBackend, StorageBackend
from .exceptions import (
    StoreError,
    ConfigError,
    SerializationError,
    BackendError,
    BackendOpenError,
    BackendReadError,
    BackendWriteError,
    BackendClearError,
)

__all__ = [
    # Plugin
    "PersistedState",
    "PersistenceState",
    "StorePersistence",
    "create_persisted_state",
    "connect",
    # Options
    "FactoryOptions",
    "PersistOptions",
    "EffectiveOptions",
    "PersistenceDescriptor",
    "normalize_options",
    "resolve_key",
    "build_descriptors",
    # Paths
    "get_path",
    "set_path",
    "pick",
    "exclude",
    "project",
    # Serialization
    "Serializer",
    "JSONSerializer",
    # Stores
    "Store",
    "StoreHub",
    "StoreOptions",
    "PluginContext",
    "Primary",
    "HotReloadShadow",
    "MutationEvent",
    "MutationKind",
    # Backends
    "DEFAULT_NAMESPACE",
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
    # Exceptions
    "StoreError",
    "ConfigError",
    "SerializationError",
    "BackendError",
    "BackendOpenError",
    "BackendReadError",
    "BackendWriteError",
    "BackendClearError",
]

__version__ = "0.1.0"
