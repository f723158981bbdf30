"""Reference observable store and store hub.

The persistence plugin only needs a small contract from the host store
framework: an id, a live state dict, patch(), subscribe() and the
declared persist option. Store and StoreHub implement that contract for
applications without a framework of their own, and for tests.

Example:
    hub = StoreHub()
    hub.use(create_persisted_state())

    cart = await hub.add(Store("cart", {"items": []}, persist=True))
    cart.patch({"items": ["apple"]})   # persisted in the background
"""

import copy
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

HOT_PREFIX = "__hot:"


@dataclass(frozen=True)
class Primary:
    """Identity of a regular store registered with the hub."""

    store_id: str


@dataclass(frozen=True)
class HotReloadShadow:
    """Identity of a temporary copy created while hot-reloading a store."""

    store_id: str
    original_id: str


StoreIdentity = Union[Primary, HotReloadShadow]


class MutationKind(Enum):
    """How the state was changed."""

    DIRECT = "direct"
    PATCH_OBJECT = "patch object"
    PATCH_FUNCTION = "patch function"


@dataclass
class MutationEvent:
    """Notification passed to subscribers after each state change."""

    store_id: str
    kind: MutationKind
    payload: Any = None


@dataclass
class _Subscription:
    callback: Callable[[MutationEvent, Dict[str, Any]], Any]
    detached: bool


def _merge(target: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Merge patch into target: nested dicts merge, other values replace."""
    for key, value in patch.items():
        current = target.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            _merge(current, value)
        else:
            target[key] = value
    return target


class Store:
    """A dict-backed observable store.

    Attributes:
        state: Live state dict (mutate through patch() or item assignment
            so subscribers are notified)
        persist: Declared persist option (bool, options, dict or list)
        persistence: Control surface installed by the persistence plugin
    """

    def __init__(
        self,
        store_id: str,
        state: Optional[Dict[str, Any]] = None,
        persist: Any = None,
        identity: Optional[StoreIdentity] = None,
    ):
        self.identity = identity or Primary(store_id)
        self.state: Dict[str, Any] = state if state is not None else {}
        self.persist = persist
        self.persistence = None
        self._subscriptions: List[_Subscription] = []

    @property
    def id(self) -> str:
        return self.identity.store_id

    @property
    def persist_active(self) -> bool:
        """Whether a persistence plugin is attached and active."""
        return bool(self.persistence is not None and self.persistence.active)

    def __getitem__(self, key: str) -> Any:
        return self.state[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.state[key] = value
        self._notify(MutationEvent(self.id, MutationKind.DIRECT, {key: value}))

    def patch(self, partial: Union[Dict[str, Any], Callable[[Dict[str, Any]], Any]]) -> None:
        """Apply a partial update and notify subscribers once.

        Args:
            partial: Dict merged into the state (fields not present are left
                untouched), or a function that mutates the state in place
        """
        if callable(partial):
            partial(self.state)
            event = MutationEvent(self.id, MutationKind.PATCH_FUNCTION)
        else:
            _merge(self.state, partial)
            event = MutationEvent(self.id, MutationKind.PATCH_OBJECT, partial)
        self._notify(event)

    def subscribe(
        self,
        callback: Callable[[MutationEvent, Dict[str, Any]], Any],
        detached: bool = False,
    ) -> Callable[[], None]:
        """Call callback(event, state) after every mutation.

        Args:
            callback: Subscriber
            detached: Keep the subscription alive across dispose()

        Returns:
            Function that removes the subscription
        """
        sub = _Subscription(callback, detached)
        self._subscriptions.append(sub)

        def unsubscribe() -> None:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

        return unsubscribe

    def dispose(self) -> None:
        """Drop scoped subscriptions; detached ones keep listening."""
        self._subscriptions = [s for s in self._subscriptions if s.detached]

    def _notify(self, event: MutationEvent) -> None:
        for sub in list(self._subscriptions):
            try:
                sub.callback(event, self.state)
            except Exception:
                logger.exception("Subscriber of store %r failed", self.id)

    def __repr__(self) -> str:
        return f"Store({self.id!r})"


@dataclass
class StoreOptions:
    """Store definition options visible to plugins."""

    persist: Any = None


@dataclass
class PluginContext:
    """What a plugin receives for each store it is attached to."""

    store: Store
    options: StoreOptions
    hub: "StoreHub"
    extra: Dict[str, Any] = field(default_factory=dict)


class StoreHub:
    """Registry of stores that runs plugins on every added store.

    Plugins are callables taking a PluginContext; coroutine plugins are
    awaited, so add() returns once a store is fully attached.
    """

    def __init__(self):
        self._stores: Dict[str, Store] = {}
        self._plugins: List[Callable[[PluginContext], Any]] = []

    def use(self, plugin: Callable[[PluginContext], Any]) -> "StoreHub":
        """Register a plugin for stores added from now on."""
        self._plugins.append(plugin)
        return self

    def get(self, store_id: str) -> Optional[Store]:
        return self._stores.get(store_id)

    def __contains__(self, store_id: str) -> bool:
        return store_id in self._stores

    async def add(self, store: Store) -> Store:
        """Register a store and run every plugin on it.

        Raises:
            ValueError: If a store with the same id is already registered
        """
        if isinstance(store.identity, Primary):
            if store.id in self._stores:
                raise ValueError(f"Store {store.id!r} is already registered")
            self._stores[store.id] = store
        await self._run_plugins(store)
        return store

    async def hot_reload(self, store_id: str) -> Store:
        """Create a hot-reload shadow of a registered store.

        The shadow gets a copy of the current state and goes through the
        plugins, but is never registered.
        """
        original = self._stores.get(store_id)
        if original is None:
            raise KeyError(store_id)
        shadow = Store(
            HOT_PREFIX + store_id,
            copy.deepcopy(original.state),
            persist=original.persist,
            identity=HotReloadShadow(HOT_PREFIX + store_id, store_id),
        )
        await self._run_plugins(shadow)
        return shadow

    async def _run_plugins(self, store: Store) -> None:
        context = PluginContext(store=store, options=StoreOptions(persist=store.persist), hub=self)
        for plugin in self._plugins:
            result = plugin(context)
            if inspect.isawaitable(result):
                await result
