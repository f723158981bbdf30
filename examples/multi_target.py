#!/usr/bin/env python3
"""
Multi Target - Replicate one store to two backends with different projections.

The settings store keeps its full state in memory and only the user's
preferences on disk. Keys get an application prefix.

Usage:
    python examples/multi_target.py
"""

import asyncio

from hydrastore import FactoryOptions, MemoryBackend, PersistedState, PersistOptions, Store, StoreHub


async def main():
    cache = MemoryBackend(namespace="cache")
    errors = []

    plugin = PersistedState(
        FactoryOptions(
            key=lambda k: f"myapp:{k}",
            on_error=errors.append,
        )
    )
    hub = StoreHub().use(plugin)

    settings = await hub.add(
        Store(
            "settings",
            {"user": {"theme": "light", "locale": "en"}, "window": {"w": 800, "h": 600}},
            persist=[
                PersistOptions(storage=cache),
                PersistOptions(
                    storage="sqlite:///multi_target.db",
                    key="prefs",
                    paths=["user.theme", "user.locale"],
                    after_restore=lambda ctx: print(f"Restored {ctx.store.id}: {ctx.store.state}"),
                ),
            ],
        )
    )

    settings.patch({"user": {"theme": "dark"}, "window": {"w": 1024}})
    await settings.persistence.flush()

    for descriptor in settings.persistence.descriptors:
        print(f"{descriptor.storage!r} {descriptor.key}: {await descriptor.storage.get(descriptor.key)}")

    if errors:
        print(f"{len(errors)} persistence error(s): {errors}")

    await plugin.close()


if __name__ == "__main__":
    asyncio.run(main())
