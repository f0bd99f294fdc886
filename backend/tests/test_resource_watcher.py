"""
Tests for the CRE poll loop: ordering of responses, teardown, forced refresh.

Run from the backend/ directory:
    python -m pytest tests/test_resource_watcher.py -v
"""
from __future__ import annotations
import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest

from nbimage.schemas.cre import CREDetails
from nbimage.services.resource_watcher import ResourceWatcher


def _details(*ids: str) -> list[CREDetails]:
    return [CREDetails(id=i, resource_id=i) for i in ids]


class GatedFetch:
    """Fetch function whose calls block until released, in any order."""

    def __init__(self):
        self.calls: list[asyncio.Event] = []
        self.results: list[list[CREDetails]] = []
        self.started = asyncio.Event()

    async def __call__(self) -> list[CREDetails]:
        gate = asyncio.Event()
        index = len(self.calls)
        self.calls.append(gate)
        self.started.set()
        await gate.wait()
        return self.results[index]


class TestResourceWatcher:

    def test_poll_loop_publishes(self):
        async def scenario():
            calls = 0

            async def fetch():
                nonlocal calls
                calls += 1
                return _details(f"cre-{calls}")

            seen = []
            watcher = ResourceWatcher(fetch, interval=0.01)
            watcher.subscribe(seen.append)
            async with watcher:
                await asyncio.sleep(0.1)
            return calls, seen, watcher

        calls, seen, watcher = asyncio.run(scenario())
        assert calls >= 2
        assert seen[0].loaded is True
        assert seen[0].resources[0].id == "cre-1"
        assert watcher.running is False

    def test_fetch_error_keeps_previous_list(self):
        async def scenario():
            responses = [_details("cre-1"), RuntimeError("api down")]

            async def fetch():
                item = responses.pop(0)
                if isinstance(item, Exception):
                    raise item
                return item

            watcher = ResourceWatcher(fetch, interval=60)
            await watcher.force_update()
            snapshot = await watcher.force_update()
            await watcher.stop()
            return snapshot

        snapshot = asyncio.run(scenario())
        assert [r.id for r in snapshot.resources] == ["cre-1"]
        assert isinstance(snapshot.load_error, RuntimeError)

    def test_stale_response_discarded(self):
        async def scenario():
            fetch = GatedFetch()
            fetch.results = [_details("old"), _details("new")]
            watcher = ResourceWatcher(fetch, interval=60)

            first = asyncio.create_task(watcher.force_update())
            await fetch.started.wait()
            fetch.started.clear()
            second = asyncio.create_task(watcher.force_update())
            await fetch.started.wait()

            fetch.calls[1].set()
            await second
            fetch.calls[0].set()
            await first
            snapshot = watcher.snapshot
            await watcher.stop()
            return snapshot

        snapshot = asyncio.run(scenario())
        assert [r.id for r in snapshot.resources] == ["new"]
        assert snapshot.loaded is True

    def test_response_after_stop_ignored(self):
        async def scenario():
            fetch = GatedFetch()
            fetch.results = [_details("late")]
            watcher = ResourceWatcher(fetch, interval=60)
            seen = []
            watcher.subscribe(seen.append)

            pending = asyncio.create_task(watcher.force_update())
            await fetch.started.wait()
            await watcher.stop()
            fetch.calls[0].set()
            await pending
            return watcher.snapshot, seen

        snapshot, seen = asyncio.run(scenario())
        assert snapshot.resources == []
        assert snapshot.loaded is False
        assert all(not s.resources for s in seen)

    def test_force_update_after_stop_is_noop(self):
        async def scenario():
            calls = 0

            async def fetch():
                nonlocal calls
                calls += 1
                return _details("x")

            watcher = ResourceWatcher(fetch, interval=60)
            await watcher.stop()
            await watcher.force_update()
            return calls

        assert asyncio.run(scenario()) == 0

    def test_start_after_stop_fails(self):
        async def scenario():
            async def fetch():
                return []

            watcher = ResourceWatcher(fetch, interval=60)
            await watcher.stop()
            watcher.start()

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())

    def test_unsubscribe(self):
        async def scenario():
            async def fetch():
                return _details("a")

            seen = []
            watcher = ResourceWatcher(fetch, interval=60)
            unsubscribe = watcher.subscribe(seen.append)
            unsubscribe()
            await watcher.force_update()
            await watcher.stop()
            return seen

        assert asyncio.run(scenario()) == []
