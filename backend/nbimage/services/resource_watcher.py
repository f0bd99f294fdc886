"""
Resource Watcher — client-side poll loop over the merged CRE view.

Keeps the last fetched list of CREDetails and republishes it to listeners.
  - Polls sequentially: the next fetch is scheduled only after the previous
    one settles, then waits ``interval`` seconds.
  - ``force_update()`` is a one-shot fetch outside the loop; it does not
    reset the interval timer.
  - Each fetch takes a token from a counter. A result is applied only while
    the watcher is open and only if its token is newer than the last applied
    one, so a slow response never overwrites a fresher one and nothing lands
    after ``stop()``.
"""
from __future__ import annotations
import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .. import config
from .. import logging_service as logger
from ..schemas.cre import CREDetails
from .cre_client import CREClient

Fetcher = Callable[[], Awaitable[list[CREDetails]]]
Listener = Callable[["WatchSnapshot"], None]


@dataclass(frozen=True)
class WatchSnapshot:
    resources: list[CREDetails] = field(default_factory=list)
    loaded: bool = False
    load_error: Exception | None = None


class ResourceWatcher:
    """Cancellable poll loop holding the latest merged view."""

    def __init__(self, fetch: Fetcher, interval: float | None = None):
        self._fetch = fetch
        self.interval = config.POLL_INTERVAL if interval is None else interval
        self._snapshot = WatchSnapshot()
        self._listeners: list[Listener] = []
        self._tokens = itertools.count(1)
        self._applied_token = 0
        self._task: asyncio.Task | None = None
        self._closed = False

    @classmethod
    def for_client(cls, client: "CREClient", interval: float | None = None) -> "ResourceWatcher":
        """Watch ``GET /api/cre`` through an API client."""
        return cls(client.fetch_resources, interval)

    # ── state ──

    @property
    def snapshot(self) -> WatchSnapshot:
        return self._snapshot

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    # ── lifecycle ──

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("ResourceWatcher has been stopped")
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="ResourceWatcher")

    async def stop(self) -> None:
        """Tear down: no fetch result is applied after this returns."""
        self._closed = True
        self._listeners.clear()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "ResourceWatcher":
        self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    async def force_update(self) -> WatchSnapshot:
        """Fetch once now, independently of the poll timer."""
        if self._closed:
            return self._snapshot
        self._publish(WatchSnapshot(
            resources=self._snapshot.resources,
            loaded=False,
            load_error=self._snapshot.load_error,
        ))
        await self._fetch_once()
        return self._snapshot

    # ── internals ──

    async def _run(self) -> None:
        while not self._closed:
            await self._fetch_once()
            await asyncio.sleep(self.interval)

    async def _fetch_once(self) -> None:
        token = next(self._tokens)
        try:
            data = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._apply(token, error=e)
            return
        self._apply(token, data=data)

    def _apply(
        self,
        token: int,
        data: list[CREDetails] | None = None,
        error: Exception | None = None,
    ) -> None:
        if self._closed or token <= self._applied_token:
            return
        self._applied_token = token
        if error is not None:
            logger.log("cre", "WARNING", "CRE watch fetch failed", {"error": str(error)})
            self._publish(WatchSnapshot(
                resources=self._snapshot.resources,
                loaded=self._snapshot.loaded,
                load_error=error,
            ))
        else:
            self._publish(WatchSnapshot(resources=list(data or []), loaded=True, load_error=None))

    def _publish(self, snapshot: WatchSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
