"""Persistence options: normalization, key resolution and descriptors.

Options are declared at two levels:

- FactoryOptions: process-wide defaults given once to the plugin
- PersistOptions (or a plain dict): per-store, per-persistence overrides

normalize_options() merges the two once, at attachment time, and
build_descriptors() turns the result into frozen PersistenceDescriptor
objects whose storage key never changes afterwards.
"""

from dataclasses import dataclass, field, fields
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from .backends.base import DEFAULT_NAMESPACE, StorageBackend
from .exceptions import ConfigError
from .serialization import JSONSerializer, Serializer

Hook = Callable[[Any], Any]
KeySpec = Union[str, Callable[[str], str]]
KeyTransform = Callable[[str], str]
StorageSpec = Union[StorageBackend, str]


@dataclass
class PersistOptions:
    """One persistence configuration declared by a store.

    Every field left as None falls back to the factory default.

    Example:
        PersistOptions(key="prefs", paths=["user.theme", "user.locale"])
        PersistOptions(storage="sqlite:///state.db", excludes=["session"])
    """

    storage: Optional[StorageSpec] = None
    before_restore: Optional[Hook] = None
    after_restore: Optional[Hook] = None
    serializer: Optional[Serializer] = None
    key: Optional[KeySpec] = None
    paths: Optional[Iterable[str]] = None
    excludes: Optional[Iterable[str]] = None
    debug: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistOptions":
        """Build options from a plain dict of option names.

        Raises:
            ConfigError: If the dict holds an unknown option name
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown persist option(s): {', '.join(unknown)}")
        return cls(**data)


@dataclass
class FactoryOptions:
    """Defaults shared by every store the plugin attaches to.

    Attributes:
        auto: Persist stores that do not declare a persist option
        key: Transform applied to every resolved key (e.g. add a prefix)
        namespace: Namespace used for backends created from URLs
        timeout: Seconds allowed per backend call; None waits forever
        on_error: Diagnostic sink called with every reported error
    """

    auto: bool = False
    key: Optional[KeyTransform] = None
    storage: Optional[StorageSpec] = None
    serializer: Optional[Serializer] = None
    before_restore: Optional[Hook] = None
    after_restore: Optional[Hook] = None
    paths: Optional[Iterable[str]] = None
    excludes: Optional[Iterable[str]] = None
    debug: bool = False
    namespace: str = DEFAULT_NAMESPACE
    timeout: Optional[float] = None
    on_error: Optional[Callable[[BaseException], Any]] = None


@dataclass
class EffectiveOptions:
    """Per-persistence options after falling back to factory defaults.

    key is kept as declared; it is resolved by resolve_key().
    """

    storage: Optional[StorageSpec]
    before_restore: Optional[Hook]
    after_restore: Optional[Hook]
    serializer: Serializer
    key: Optional[KeySpec]
    paths: Optional[Tuple[str, ...]]
    excludes: Optional[FrozenSet[str]]
    debug: bool


@dataclass(frozen=True)
class PersistenceDescriptor:
    """A fully resolved persistence configuration for one store."""

    storage: StorageBackend
    key: str
    serializer: Serializer
    paths: Optional[Tuple[str, ...]] = None
    excludes: Optional[FrozenSet[str]] = None
    before_restore: Optional[Hook] = field(default=None, compare=False)
    after_restore: Optional[Hook] = field(default=None, compare=False)
    debug: bool = False


def _is_unset(value: Any) -> bool:
    return value is None or value is False


def _pick_option(name: str, options: PersistOptions, factory: FactoryOptions) -> Any:
    value = getattr(options, name)
    if _is_unset(value):
        value = getattr(factory, name)
    return value


def _as_options(options: Any) -> PersistOptions:
    if isinstance(options, PersistOptions):
        return options
    if isinstance(options, dict):
        return PersistOptions.from_dict(options)
    if options is True or options is None:
        return PersistOptions()
    raise ConfigError(f"Invalid persist option: {options!r}")


def normalize_options(options: Any, factory: FactoryOptions) -> EffectiveOptions:
    """Merge one persistence configuration with the factory defaults.

    Every option except key falls back to the factory value when unset
    (None or False). key is never defaulted here so the factory key
    transform still applies to the store's own key.

    Args:
        options: True, a PersistOptions, or a dict of option names
        factory: Process-wide defaults

    Returns:
        EffectiveOptions with builtin defaults filled in

    Raises:
        ConfigError: On unknown option names, or when paths and excludes
            are both set at the same level
    """
    opts = _as_options(options)

    # paths and excludes fall back together, so one level never mixes with the other
    source = factory if _is_unset(opts.paths) and _is_unset(opts.excludes) else opts
    paths = None if _is_unset(source.paths) else source.paths
    excludes = None if _is_unset(source.excludes) else source.excludes
    if isinstance(paths, str) or isinstance(excludes, str):
        raise ConfigError("paths and excludes must be sequences of names, not a string")
    if paths is not None and excludes is not None:
        raise ConfigError("paths and excludes cannot be combined in one persistence")

    return EffectiveOptions(
        storage=_pick_option("storage", opts, factory),
        before_restore=_pick_option("before_restore", opts, factory),
        after_restore=_pick_option("after_restore", opts, factory),
        serializer=_pick_option("serializer", opts, factory) or JSONSerializer(),
        key=opts.key,
        paths=tuple(paths) if paths is not None else None,
        excludes=frozenset(excludes) if excludes is not None else None,
        debug=bool(_pick_option("debug", opts, factory)),
    )


def resolve_key(
    raw_key: Optional[KeySpec],
    store_id: str,
    key_transform: Optional[KeyTransform] = None,
) -> str:
    """Compute the storage key for a persistence.

    Args:
        raw_key: Static key, a function of the store id, or None for the id
        store_id: Id of the store being persisted
        key_transform: Factory-wide transform applied last

    Returns:
        The final storage key

    Example:
        resolve_key(None, "cart")                          # "cart"
        resolve_key(lambda sid: f"{sid}-v2", "cart")       # "cart-v2"
        resolve_key("prefs", "cart", lambda k: "app:" + k) # "app:prefs"
    """
    if raw_key is None:
        key = store_id
    elif callable(raw_key):
        key = raw_key(store_id)
    else:
        key = raw_key

    if not isinstance(key, str):
        raise ConfigError(f"Persist key for store {store_id!r} must be a string, got {key!r}")

    if key_transform is not None:
        key = key_transform(key)
    return key


def build_descriptors(
    persist: Any,
    store_id: str,
    factory: FactoryOptions,
    resolve_storage: Callable[[Optional[StorageSpec]], StorageBackend],
) -> List[PersistenceDescriptor]:
    """Build one descriptor per declared persistence.

    Args:
        persist: The store's persist option (True, options, dict or a list)
        store_id: Id of the store
        factory: Process-wide defaults
        resolve_storage: Maps a storage spec (backend, URL or None) to a
            backend instance

    Returns:
        Descriptors in declaration order
    """
    declared = persist if isinstance(persist, (list, tuple)) else [persist]

    descriptors = []
    for options in declared:
        effective = normalize_options(options, factory)
        descriptors.append(
            PersistenceDescriptor(
                storage=resolve_storage(effective.storage),
                key=resolve_key(effective.key, store_id, factory.key),
                serializer=effective.serializer,
                paths=effective.paths,
                excludes=effective.excludes,
                before_restore=effective.before_restore,
                after_restore=effective.after_restore,
                debug=effective.debug,
            )
        )
    return descriptors
