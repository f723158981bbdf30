#!/usr/bin/env python3
"""
Quick Start - Persist a store to SQLite and restore it on the next run.

Usage:
    python examples/quick_start.py
    python examples/quick_start.py   # run again: the counter keeps going
"""

import asyncio
import logging

from hydrastore import Store, StoreHub, create_persisted_state


async def main():
    hub = StoreHub()
    plugin = create_persisted_state(storage="sqlite:///quick_start.db")
    hub.use(plugin)

    # Everything except the session token is written back after each change
    counter = await hub.add(
        Store(
            "counter",
            {"runs": 0, "last_user": None, "session": None},
            persist={"excludes": ["session"]},
        )
    )
    print(f"Restored state: {counter.state}")

    counter.patch({"runs": counter["runs"] + 1, "last_user": "demo", "session": "tmp-token"})
    await counter.persistence.flush()
    print(f"Saved state:    {counter.state}")

    await plugin.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
