"""Tests for option normalization and key resolution."""

import pytest

from hydrastore import (
    ConfigError,
    FactoryOptions,
    JSONSerializer,
    MemoryBackend,
    PersistedState,
    PersistOptions,
    SQLiteBackend,
    build_descriptors,
    normalize_options,
    resolve_key,
)


class UpperSerializer:
    def serialize(self, state):
        return str(state).upper()

    def deserialize(self, payload):
        return {}


class TestNormalizeOptions:
    """Tests for normalize_options."""

    def test_builtin_defaults(self):
        """Unset everywhere gives the builtin defaults."""
        effective = normalize_options(True, FactoryOptions())
        assert effective.storage is None
        assert isinstance(effective.serializer, JSONSerializer)
        assert effective.paths is None
        assert effective.excludes is None
        assert effective.debug is False
        assert effective.before_restore is None
        assert effective.after_restore is None

    def test_falls_back_to_factory(self):
        """Unset options take the factory value."""
        backend = MemoryBackend()
        serializer = UpperSerializer()
        factory = FactoryOptions(storage=backend, serializer=serializer, debug=True)
        effective = normalize_options({}, factory)
        assert effective.storage is backend
        assert effective.serializer is serializer
        assert effective.debug is True

    def test_override_wins(self):
        """A set option overrides the factory value."""
        mine = MemoryBackend()
        factory = FactoryOptions(storage=MemoryBackend())
        effective = normalize_options(PersistOptions(storage=mine), factory)
        assert effective.storage is mine

    def test_false_falls_back(self):
        """False counts as unset and falls back to the factory."""
        effective = normalize_options({"debug": False}, FactoryOptions(debug=True))
        assert effective.debug is True

    def test_key_never_defaulted(self):
        """key stays as declared even though the factory has a transform."""
        factory = FactoryOptions(key=lambda k: "app:" + k)
        assert normalize_options({}, factory).key is None
        assert normalize_options({"key": "mine"}, factory).key == "mine"

    def test_paths_and_excludes_normalized(self):
        """paths become a tuple and excludes a frozenset."""
        effective = normalize_options({"paths": ["a.b", "c"]}, FactoryOptions())
        assert effective.paths == ("a.b", "c")
        effective = normalize_options({"excludes": ["x"]}, FactoryOptions())
        assert effective.excludes == frozenset({"x"})

    def test_paths_and_excludes_conflict(self):
        """paths and excludes cannot both be set at the same level."""
        with pytest.raises(ConfigError):
            normalize_options({"paths": ["a"], "excludes": ["b"]}, FactoryOptions())
        with pytest.raises(ConfigError):
            normalize_options({}, FactoryOptions(paths=["a"], excludes=["b"]))

    def test_store_excludes_override_factory_paths(self):
        """A per-store excludes replaces the factory paths default."""
        effective = normalize_options({"excludes": ["b"]}, FactoryOptions(paths=["a"]))
        assert effective.paths is None
        assert effective.excludes == frozenset({"b"})

    def test_store_paths_override_factory_excludes(self):
        """A per-store paths replaces the factory excludes default."""
        effective = normalize_options({"paths": ["a"]}, FactoryOptions(excludes=["b"]))
        assert effective.paths == ("a",)
        assert effective.excludes is None

    def test_factory_projection_when_store_declares_none(self):
        """The factory paths apply when the store sets neither option."""
        effective = normalize_options({"debug": True}, FactoryOptions(paths=["a"]))
        assert effective.paths == ("a",)
        assert effective.excludes is None

    def test_string_paths_rejected(self):
        """A bare string is not a list of paths."""
        with pytest.raises(ConfigError):
            normalize_options({"paths": "a.b"}, FactoryOptions())

    def test_unknown_option(self):
        """Unknown option names are rejected."""
        with pytest.raises(ConfigError, match="bogus"):
            normalize_options({"bogus": 1}, FactoryOptions())

    def test_invalid_option_type(self):
        """Only True, dicts and PersistOptions are accepted."""
        with pytest.raises(ConfigError):
            normalize_options(42, FactoryOptions())


class TestResolveKey:
    """Tests for resolve_key."""

    def test_defaults_to_store_id(self):
        """No key means the store id."""
        assert resolve_key(None, "cart") == "cart"

    def test_static_key(self):
        """A string key is used directly."""
        assert resolve_key("prefs", "cart") == "prefs"

    def test_key_function(self):
        """A callable key receives the store id."""
        assert resolve_key(lambda sid: f"{sid}-v2", "cart") == "cart-v2"

    def test_factory_transform_applied_last(self):
        """The factory transform wraps whatever key was resolved."""
        transform = lambda k: "app:" + k
        assert resolve_key(None, "cart", transform) == "app:cart"
        assert resolve_key(lambda sid: sid.upper(), "cart", transform) == "app:CART"

    def test_non_string_key(self):
        """Key functions must return strings."""
        with pytest.raises(ConfigError):
            resolve_key(lambda sid: 42, "cart")


class TestBuildDescriptors:
    """Tests for build_descriptors."""

    def test_single_option(self):
        """One declared option gives one descriptor."""
        backend = MemoryBackend()
        descriptors = build_descriptors(True, "cart", FactoryOptions(), lambda spec: spec or backend)
        assert len(descriptors) == 1
        assert descriptors[0].key == "cart"
        assert descriptors[0].storage is backend

    def test_list_of_options(self):
        """A list gives one descriptor per entry, in order."""
        factory = FactoryOptions(key=lambda k: "app:" + k)
        descriptors = build_descriptors(
            [{"key": "one", "paths": ["a"]}, {"key": "two", "excludes": ["b"]}],
            "cart",
            factory,
            lambda spec: MemoryBackend(),
        )
        assert [d.key for d in descriptors] == ["app:one", "app:two"]
        assert descriptors[0].paths == ("a",)
        assert descriptors[1].excludes == frozenset({"b"})

    def test_descriptor_is_frozen(self):
        """Descriptors cannot be changed after they are built."""
        descriptor = build_descriptors(True, "cart", FactoryOptions(), lambda spec: MemoryBackend())[0]
        with pytest.raises(AttributeError):
            descriptor.key = "other"


class TestResolveStorage:
    """Tests for PersistedState.resolve_storage."""

    def test_default_storage_shared(self):
        """Every store without a storage option shares one backend."""
        plugin = PersistedState()
        assert plugin.resolve_storage(None) is plugin.resolve_storage(None)
        assert isinstance(plugin.resolve_storage(None), MemoryBackend)

    def test_url_connected_once(self):
        """The same URL always maps to the same backend instance."""
        plugin = PersistedState(namespace="prefs")
        backend = plugin.resolve_storage("sqlite:///:memory:")
        assert isinstance(backend, SQLiteBackend)
        assert backend.namespace == "prefs"
        assert plugin.resolve_storage("sqlite:///:memory:") is backend

    def test_instance_passed_through(self):
        """Backend instances are used as given."""
        backend = MemoryBackend()
        assert PersistedState().resolve_storage(backend) is backend

    def test_invalid_storage(self):
        """Anything else is rejected."""
        with pytest.raises(TypeError):
            PersistedState().resolve_storage(42)
