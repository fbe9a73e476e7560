"""Chunked re-anchoring that gives the event loop room between chunks."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

from anchorlight.anchoring.models import BatchReport
from anchorlight.config import SchedulerConfig

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchScheduler:
    """Runs a synchronous per-item function over many items in small chunks.

    Items within a chunk run back to back. After every chunk the scheduler
    yields: to the injected idle callback (called with the idle timeout in
    seconds) when one is given, otherwise with a short ``asyncio.sleep``.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        idle: Callable[[float], Awaitable[object]] | None = None,
    ) -> None:
        config = config or SchedulerConfig()
        if config.chunk_size < 1:
            msg = "chunk_size must be at least 1"
            raise ValueError(msg)
        self.chunk_size = config.chunk_size
        self.yield_seconds = config.yield_seconds
        self.idle_timeout = config.idle_timeout_seconds
        self.idle = idle

    async def _yield(self) -> None:
        if self.idle is not None:
            await self.idle(self.idle_timeout)
        else:
            await asyncio.sleep(self.yield_seconds)

    async def run(self, items: Sequence[T], per_item: Callable[[T], R]) -> BatchReport[R]:
        """Process *items*; a raising item is logged, counted in ``failed`` and skipped.

        ``processed`` counts items that completed, so ``processed + failed``
        equals ``len(items)``.
        """
        processed = 0
        failed = 0
        chunks = 0
        yields = 0
        results: list[R] = []

        for start in range(0, len(items), self.chunk_size):
            chunks += 1
            for item in items[start : start + self.chunk_size]:
                try:
                    results.append(per_item(item))
                except Exception:
                    logger.exception("Batch item failed: %r", item)
                    failed += 1
                else:
                    processed += 1
            await self._yield()
            yields += 1

        logger.debug(
            "Batch finished: %d processed, %d failed, %d chunks", processed, failed, chunks
        )
        return BatchReport(processed, failed, chunks, yields, results)
