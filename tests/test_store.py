"""Tests for the reference Store and StoreHub."""

import asyncio

import pytest

from hydrastore import HotReloadShadow, MutationKind, Primary, Store, StoreHub


class TestStore:
    """Tests for Store."""

    def test_identity(self):
        """A plain store is a Primary with its id."""
        store = Store("cart")
        assert store.id == "cart"
        assert store.identity == Primary("cart")
        assert store.state == {}
        assert store.persist_active is False

    def test_patch_merges(self):
        """patch() merges nested dicts and leaves other fields alone."""
        store = Store("s", {"a": {"b": 1, "c": 2}, "d": 3})
        store.patch({"a": {"b": 10}, "e": 5})
        assert store.state == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}

    def test_patch_replaces_non_dict(self):
        """Lists and scalars are replaced, not merged."""
        store = Store("s", {"items": [1, 2], "n": {"x": 1}})
        store.patch({"items": [3], "n": 7})
        assert store.state == {"items": [3], "n": 7}

    def test_patch_function(self):
        """A callable patch mutates the state in place."""
        store = Store("s", {"items": []})
        store.patch(lambda state: state["items"].append("apple"))
        assert store.state == {"items": ["apple"]}

    def test_subscribers_notified(self):
        """Each mutation notifies subscribers with the event and state."""
        store = Store("s", {"n": 0})
        events = []
        store.subscribe(lambda event, state: events.append((event.kind, dict(state))))

        store["n"] = 1
        store.patch({"n": 2})
        store.patch(lambda state: state.update(n=3))

        assert events == [
            (MutationKind.DIRECT, {"n": 1}),
            (MutationKind.PATCH_OBJECT, {"n": 2}),
            (MutationKind.PATCH_FUNCTION, {"n": 3}),
        ]

    def test_unsubscribe(self):
        """The returned function removes the subscription."""
        store = Store("s")
        events = []
        unsubscribe = store.subscribe(lambda event, state: events.append(event))
        unsubscribe()
        unsubscribe()
        store["x"] = 1
        assert events == []

    def test_dispose_keeps_detached(self):
        """dispose() drops scoped subscriptions only."""
        store = Store("s")
        scoped, detached = [], []
        store.subscribe(lambda event, state: scoped.append(event))
        store.subscribe(lambda event, state: detached.append(event), detached=True)

        store.dispose()
        store["x"] = 1

        assert scoped == []
        assert len(detached) == 1

    def test_failing_subscriber_isolated(self):
        """One failing subscriber does not stop the others."""
        store = Store("s")
        seen = []

        def broken(event, state):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(lambda event, state: seen.append(event))
        store["x"] = 1
        assert len(seen) == 1


class TestStoreHub:
    """Tests for StoreHub."""

    def test_add_runs_plugins(self):
        """Every plugin sees every added store."""
        seen = []

        async def async_plugin(context):
            seen.append(("async", context.store.id, context.options.persist))

        hub = StoreHub()
        hub.use(lambda context: seen.append(("sync", context.store.id, context.options.persist)))
        hub.use(async_plugin)

        store = asyncio.run(hub.add(Store("cart", persist=True)))

        assert seen == [("sync", "cart", True), ("async", "cart", True)]
        assert hub.get("cart") is store
        assert "cart" in hub

    def test_duplicate_id(self):
        """Store ids are unique within a hub."""
        hub = StoreHub()
        asyncio.run(hub.add(Store("cart")))
        with pytest.raises(ValueError):
            asyncio.run(hub.add(Store("cart")))

    def test_hot_reload_shadow(self):
        """hot_reload() builds an unregistered shadow with copied state."""
        seen = []
        hub = StoreHub()
        hub.use(lambda context: seen.append(context.store.identity))

        async def scenario():
            original = await hub.add(Store("cart", {"items": [1]}, persist=True))
            shadow = await hub.hot_reload("cart")
            return original, shadow

        original, shadow = asyncio.run(scenario())

        assert shadow.identity == HotReloadShadow("__hot:cart", "cart")
        assert shadow.state == {"items": [1]}
        assert shadow.state["items"] is not original.state["items"]
        assert shadow.persist is True
        assert hub.get("cart") is original
        assert seen == [Primary("cart"), HotReloadShadow("__hot:cart", "cart")]

    def test_hot_reload_unknown(self):
        """Only registered stores can be hot-reloaded."""
        with pytest.raises(KeyError):
            asyncio.run(StoreHub().hot_reload("nope"))
