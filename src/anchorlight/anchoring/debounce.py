"""Throttle and debounce raw selection-change events."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import TYPE_CHECKING, Generic, TypeVar

from anchorlight.config import SelectionConfig

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

E = TypeVar("E")


class SelectionDebouncer(Generic[E]):
    """Calls *handler* once selection events settle.

    An event arriving within the throttle window of the last processed one is
    dropped. Any other event cancels the pending call and schedules a new one
    after the debounce delay, so only the last of a burst is handled.
    """

    def __init__(
        self,
        handler: Callable[[E], object],
        config: SelectionConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        config = config or SelectionConfig()
        self.handler = handler
        self.throttle_seconds = config.throttle_seconds
        self.debounce_seconds = config.debounce_seconds
        self._clock = clock or time.monotonic
        self._last_processed: float | None = None
        self._pending: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def __call__(self, event: E) -> bool:
        """Offer an event. Returns False when it was throttled."""
        now = self._clock()
        if self._last_processed is not None and now - self._last_processed < self.throttle_seconds:
            return False
        self.cancel()
        self._pending = asyncio.create_task(self._run(event))
        return True

    async def _run(self, event: E) -> None:
        await asyncio.sleep(self.debounce_seconds)
        try:
            result = self.handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Selection handler failed")
        self._last_processed = self._clock()

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        task, self._pending = self._pending, None
        if task is not None and not task.done():
            task.cancel()
