"""Persistence plugin: hydration, automatic persistence and clearing."""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Tuple
from urllib.parse import urlparse

from .backends.base import DEFAULT_NAMESPACE, StorageBackend
from .backends.memory import MemoryBackend
from .exceptions import (
    BackendClearError,
    BackendError,
    BackendOpenError,
    BackendReadError,
    BackendWriteError,
    SerializationError,
)
from .options import (
    FactoryOptions,
    PersistenceDescriptor,
    StorageSpec,
    build_descriptors,
    resolve_key,
)
from .paths import project
from .store import HotReloadShadow, PluginContext

logger = logging.getLogger(__name__)


class PersistenceState(Enum):
    """Lifecycle of a store's persistence."""

    DETACHED = "detached"
    ATTACHING = "attaching"
    HYDRATING = "hydrating"
    ACTIVE = "active"


def connect(url: str, namespace: str = DEFAULT_NAMESPACE) -> StorageBackend:
    """Create a backend from a URL.

    Supported URL schemes:
        - memory://          In-memory storage
        - sqlite:///path.db  SQLite file storage
        - sqlite:///:memory: SQLite in-memory

    The backend opens lazily on first use.

    Example:
        backend = connect("sqlite:///state.db")
        backend = connect("memory://", namespace="prefs")
    """
    parsed = urlparse(url)
    scheme = parsed.scheme

    if scheme == "memory":
        return MemoryBackend(namespace=namespace)

    elif scheme == "sqlite":
        from .backends.sqlite import SQLiteBackend

        # Handle sqlite:///path and sqlite:///:memory:
        path = parsed.path
        if path.startswith("/"):
            path = path[1:]
        return SQLiteBackend(path=path or ":memory:", namespace=namespace)

    else:
        raise ValueError(f"Unknown storage scheme: {scheme}")


class StorePersistence:
    """Persistence control surface of one store.

    Created by PersistedState when it attaches to a store, and installed
    as store.persistence.
    """

    def __init__(
        self,
        plugin: "PersistedState",
        context: PluginContext,
        descriptors: List[PersistenceDescriptor],
    ):
        self.plugin = plugin
        self.context = context
        self.store = context.store
        self.descriptors = descriptors
        self.state = PersistenceState.ATTACHING
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._write_locks: Dict[Tuple[int, str], asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self.state is PersistenceState.ACTIVE

    @property
    def pending(self) -> int:
        """Number of automatic writes not yet finished."""
        return len(self._tasks)

    # Attachment

    async def attach(self) -> None:
        """Hydrate every descriptor, then start listening for mutations.

        Hydration failures are reported and do not stop the attachment.
        """
        self._loop = asyncio.get_running_loop()
        self.state = PersistenceState.HYDRATING
        results = await asyncio.gather(
            *(self._hydrate_one(d, run_hooks=True) for d in self.descriptors),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        self._unsubscribe = self.store.subscribe(self._on_mutation, detached=True)
        self.state = PersistenceState.ACTIVE
        logger.debug("Persistence active for store %r (%d target(s))", self.store.id, len(self.descriptors))

    def detach(self) -> None:
        """Stop persisting mutations. Pending writes still complete."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.state = PersistenceState.DETACHED

    # Mutation stream

    def _on_mutation(self, mutation: Any, state: Dict[str, Any]) -> None:
        for descriptor in self.descriptors:
            try:
                payload = self._encode(descriptor, state)
            except Exception:
                continue  # reported
            self.spawn(self._put(descriptor, payload))

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Run a background operation whose failures are already reported."""
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled():
            task.exception()  # reported inside the task; mark as retrieved

    async def flush(self) -> None:
        """Wait until every in-flight automatic write has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Operations

    async def persist(self) -> None:
        """Write the current state to every descriptor now.

        All descriptors are attempted; the first failure is raised after
        the others finished.
        """
        await self._fan_out(self._write(d, self.store.state) for d in self.descriptors)

    async def hydrate(self, run_hooks: bool = True) -> None:
        """Read every descriptor's entry and patch it into the store.

        Args:
            run_hooks: Call before_restore/after_restore around each read
        """
        await self._fan_out(self._hydrate_one(d, run_hooks) for d in self.descriptors)

    async def clear_all(self) -> None:
        """Remove every entry from each backend this store persists to."""
        await self._fan_out(self._clear(storage) for storage in self._storages())

    async def clear_for_store(self, store_id: str) -> None:
        """Remove only the entry keyed by store_id from each backend."""
        key = resolve_key(None, store_id, self.plugin.options.key)
        await self._fan_out(self._delete(storage, key, store_id) for storage in self._storages())

    # Steps

    async def _hydrate_one(self, descriptor: PersistenceDescriptor, run_hooks: bool) -> None:
        if run_hooks:
            await self._run_hook(descriptor, descriptor.before_restore)

        try:
            payload = await self.plugin.call(descriptor.storage.get(descriptor.key))
        except Exception as e:
            raise self.plugin.report(
                _wrap(BackendReadError, e, descriptor.storage, descriptor.key, self.store.id),
                debug=descriptor.debug,
            )

        if payload is not None:
            try:
                data = descriptor.serializer.deserialize(payload)
            except Exception as e:
                raise self.plugin.report(e, debug=descriptor.debug)
            if not isinstance(data, Mapping):
                raise self.plugin.report(
                    SerializationError(
                        f"Stored state for key {descriptor.key!r} is not a mapping: {type(data).__name__}"
                    ),
                    debug=descriptor.debug,
                )
            if data:
                try:
                    self.store.patch(data)
                except Exception as e:
                    raise self.plugin.report(e, debug=descriptor.debug)
            logger.debug("Hydrated store %r from key %r", self.store.id, descriptor.key)
        else:
            logger.debug("Nothing to hydrate for store %r at key %r", self.store.id, descriptor.key)

        if run_hooks:
            await self._run_hook(descriptor, descriptor.after_restore)

    async def _run_hook(self, descriptor: PersistenceDescriptor, hook: Optional[Callable[[Any], Any]]) -> None:
        if hook is None:
            return
        try:
            result = hook(self.context)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise self.plugin.report(e, debug=descriptor.debug)

    def _encode(self, descriptor: PersistenceDescriptor, state: Dict[str, Any]) -> Any:
        try:
            return descriptor.serializer.serialize(
                project(state, descriptor.paths, descriptor.excludes)
            )
        except Exception as e:
            raise self.plugin.report(e, debug=descriptor.debug)

    async def _write(self, descriptor: PersistenceDescriptor, state: Dict[str, Any]) -> None:
        await self._put(descriptor, self._encode(descriptor, state))

    async def _put(self, descriptor: PersistenceDescriptor, payload: Any) -> None:
        # One queue per backend key: writes land in the order they were issued.
        lock = self._write_locks.get((id(descriptor.storage), descriptor.key))
        if lock is None:
            lock = self._write_locks[(id(descriptor.storage), descriptor.key)] = asyncio.Lock()
        async with lock:
            try:
                await self.plugin.call(descriptor.storage.put(descriptor.key, payload))
            except Exception as e:
                raise self.plugin.report(
                    _wrap(BackendWriteError, e, descriptor.storage, descriptor.key, self.store.id),
                    debug=descriptor.debug,
                )
        logger.debug("Persisted store %r to key %r", self.store.id, descriptor.key)

    async def _clear(self, storage: StorageBackend) -> None:
        try:
            await self.plugin.call(storage.clear())
        except Exception as e:
            raise self.plugin.report(_wrap(BackendClearError, e, storage, None, self.store.id))
        logger.info("Cleared namespace %r of %r", storage.namespace, storage)

    async def _delete(self, storage: StorageBackend, key: str, store_id: str) -> None:
        try:
            await self.plugin.call(storage.delete(key))
        except Exception as e:
            raise self.plugin.report(_wrap(BackendClearError, e, storage, key, store_id))
        logger.info("Cleared entry %r of store %r", key, store_id)

    def _storages(self) -> List[StorageBackend]:
        seen: List[StorageBackend] = []
        for descriptor in self.descriptors:
            if not any(s is descriptor.storage for s in seen):
                seen.append(descriptor.storage)
        return seen

    async def _fan_out(self, coros) -> None:
        results = await asyncio.gather(*coros, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    def __repr__(self) -> str:
        return f"StorePersistence({self.store.id!r}, state={self.state.value})"


class PersistedState:
    """Store plugin that keeps state in sync with storage backends.

    Example:
        hub = StoreHub()
        hub.use(PersistedState(FactoryOptions(storage="sqlite:///state.db")))

        prefs = await hub.add(Store("prefs", {"theme": "light"}, persist=True))
        prefs["theme"] = "dark"            # written in the background
        await prefs.persistence.flush()    # wait for it
    """

    def __init__(self, options: Optional[FactoryOptions] = None, **overrides: Any):
        if options is None:
            options = FactoryOptions(**overrides)
        elif overrides:
            raise TypeError("Pass either FactoryOptions or keyword overrides, not both")
        self.options = options
        self._default_storage: Optional[StorageBackend] = None
        self._backends: Dict[str, StorageBackend] = {}

    async def __call__(self, context: PluginContext) -> Optional[StorePersistence]:
        return await self.attach(context)

    async def attach(self, context: PluginContext) -> Optional[StorePersistence]:
        """Attach persistence to the store in context.

        Returns:
            The store's StorePersistence, or None when the store is not
            persisted (persistence disabled, or a hot-reload shadow)
        """
        store = context.store
        persist = context.options.persist
        if persist is None:
            persist = self.options.auto
        if not persist:
            return None

        if isinstance(store.identity, HotReloadShadow):
            original = context.hub.get(store.identity.original_id)
            if original is not None and original.persist_active:
                original.persistence.spawn(original.persistence.persist())
            return None

        descriptors = build_descriptors(persist, store.id, self.options, self.resolve_storage)
        persistence = StorePersistence(self, context, descriptors)
        store.persistence = persistence
        await persistence.attach()
        return persistence

    def resolve_storage(self, spec: Optional[StorageSpec]) -> StorageBackend:
        """Map a storage option to a shared backend instance.

        None gives the plugin's default in-memory backend; URLs are
        connected once and reused for the life of the plugin.
        """
        if spec is None:
            if self._default_storage is None:
                self._default_storage = MemoryBackend(namespace=self.options.namespace)
            return self._default_storage
        if isinstance(spec, StorageBackend):
            return spec
        if isinstance(spec, str):
            if spec not in self._backends:
                self._backends[spec] = connect(spec, namespace=self.options.namespace)
            return self._backends[spec]
        raise TypeError(f"Invalid storage option: {spec!r}")

    async def call(self, aw: Awaitable[Any]) -> Any:
        """Await a backend call, bounded by the configured timeout."""
        if self.options.timeout is None:
            return await aw
        return await asyncio.wait_for(aw, self.options.timeout)

    def report(self, error: BaseException, debug: bool = False) -> BaseException:
        """Send error to the diagnostic sink and return it for re-raising."""
        if debug:
            logger.error("Persistence error: %s", error, exc_info=error)
        sink = self.options.on_error
        if sink is None:
            logger.error("Persistence error: %s", error)
        else:
            try:
                sink(error)
            except Exception:
                logger.exception("Persistence error sink failed")
        return error

    async def close(self) -> None:
        """Close every backend this plugin created."""
        backends = list(self._backends.values())
        if self._default_storage is not None:
            backends.append(self._default_storage)
        for backend in backends:
            await backend.close()


def create_persisted_state(**options: Any) -> PersistedState:
    """Create the persistence plugin from factory option keywords.

    Example:
        hub.use(create_persisted_state(auto=True, key=lambda k: f"myapp:{k}"))
    """
    return PersistedState(FactoryOptions(**options))


def _wrap(
    error_cls: type,
    error: Exception,
    storage: StorageBackend,
    key: Optional[str],
    store_id: str,
) -> BackendError:
    # Open failures keep their kind; they are raised from inside get/put.
    if isinstance(error, BackendOpenError):
        error.store_id = error.store_id or store_id
        return error
    return error_cls(key=key, namespace=storage.namespace, store_id=store_id, cause=error)
