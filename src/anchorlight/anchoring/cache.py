"""Bounded, time-boxed cache stores.

Two stores back the engine: ``nodes`` (candidate leaf lists and the full
leaf index, short-lived because the tree mutates) and ``results``
(summaries and other derived values). Both share one eviction policy:
entries past their lifetime are dropped, then the oldest entries go until
the store fits its bound. Ties on the oldest timestamp are evicted in
insertion order, and only as many as needed.
"""

from __future__ import annotations

import asyncio
import contextlib
import heapq
import logging
import time
from typing import TYPE_CHECKING, Generic, TypeVar

from anchorlight.anchoring.models import CacheEntry
from anchorlight.config import CacheConfig

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class CacheStore(Generic[T]):
    """A keyed store with a maximum size and a per-entry lifetime."""

    def __init__(
        self,
        name: str,
        max_entries: int,
        ttl_seconds: float,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.name = name
        self.max_entries = max_entries
        self.ttl_ms = ttl_seconds * 1000
        self._clock = clock or monotonic_ms
        self._entries: dict[str, CacheEntry[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.timestamp >= self.ttl_ms

    def get(self, key: str) -> T | None:
        """Return the value for *key*, or None when missing or stale."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: T) -> None:
        # Re-inserting moves the key to the end of the insertion order
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key, value, self._clock())
        self.enforce_bound()

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def remove_expired(self) -> int:
        now = self._clock()
        stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def oldest_keys(self, count: int) -> list[str]:
        """The *count* oldest keys; timestamp ties resolve in insertion order."""
        oldest = heapq.nsmallest(count, self._entries.values(), key=lambda e: e.timestamp)
        return [entry.key for entry in oldest]

    def enforce_bound(self) -> int:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return 0
        for key in self.oldest_keys(overflow):
            del self._entries[key]
        logger.debug("Evicted %d entries from %s cache", overflow, self.name)
        return overflow


class CacheManager:
    """Owns the ``nodes`` and ``results`` stores and their periodic sweep."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        config = config or CacheConfig()
        self.sweep_interval = config.sweep_interval_seconds
        self.nodes: CacheStore[object] = CacheStore(
            "nodes", config.node_max_entries, config.node_ttl_seconds, clock
        )
        self.results: CacheStore[object] = CacheStore(
            "results", config.result_max_entries, config.result_ttl_seconds, clock
        )
        self._sweep_hooks: list[Callable[[], object]] = []
        self._sweep_task: asyncio.Task[None] | None = None

    def add_sweep_hook(self, hook: Callable[[], object]) -> None:
        """Run *hook* after every sweep (e.g. pruning detached markers)."""
        self._sweep_hooks.append(hook)

    def sweep(self) -> int:
        """Drop stale entries, then trim both stores to their bounds."""
        removed = 0
        for store in (self.nodes, self.results):
            removed += store.remove_expired()
            removed += store.enforce_bound()
        for hook in self._sweep_hooks:
            hook()
        if removed:
            logger.debug("Cache sweep removed %d entries", removed)
        return removed

    def clear(self) -> None:
        self.nodes.clear()
        self.results.clear()

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
