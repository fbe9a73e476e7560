"""Highlight summaries with caching and in-flight deduplication.

A summary is keyed by a fingerprint of the highlighted text and the page it
came from. Finished summaries live in the results cache store; a request
that is still running is shared by every caller asking for the same
fingerprint, so the summariser sees at most one call per fingerprint at a
time.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from anchorlight.anchoring.errors import CollaboratorError
from anchorlight.anchoring.models import SummaryResult

if TYPE_CHECKING:
    from anchorlight.anchoring.cache import CacheStore
    from anchorlight.anchoring.models import Fragment

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

# Field limits applied before anything is sent to a summariser
_MAX_TEXT = 1000
_MAX_URL = 500
_MAX_TITLE = 200
_MAX_DOMAIN = 100


@dataclass(frozen=True)
class SummaryContext:
    """Page metadata sent along with the highlighted text."""

    url: str = ""
    title: str = ""
    domain: str = ""
    context_text: str | None = None

    @classmethod
    def from_fragment(cls, fragment: Fragment) -> SummaryContext:
        return cls(
            url=fragment.url[:_MAX_URL],
            title=fragment.title[:_MAX_TITLE],
            domain=fragment.domain[:_MAX_DOMAIN],
            context_text=fragment.context_text,
        )


class Summariser(Protocol):
    """Protocol for summary backends."""

    async def summarise(self, text: str, context: SummaryContext) -> str:
        """Return a short summary of *text*.

        Raises:
            Exception: Any failure; the caller reports it as a collaborator failure.
        """
        ...


def fingerprint(text: str, url: str, title: str) -> str:
    """Cache key: first 100 chars of text, url and title, non-alphanumerics as ``_``."""
    return _NON_ALNUM.sub("_", f"{text[:100]}_{url}_{title}")


class SummaryService:
    """Caches and deduplicates summariser calls."""

    def __init__(
        self,
        summariser: Summariser,
        store: CacheStore,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.summariser = summariser
        self.timeout_seconds = timeout_seconds
        self._store = store
        self._in_flight: dict[str, asyncio.Task[str]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def summarise(self, fragment: Fragment) -> SummaryResult:
        text = fragment.text[:_MAX_TEXT]
        context = SummaryContext.from_fragment(fragment)
        key = fingerprint(text, context.url, context.title)

        cached = self._store.get(key)
        if cached is not None:
            logger.debug("Summary cache hit for %s", fragment.id)
            return SummaryResult(True, summary=cached, cached=True)

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._request(key, text, context))
            self._in_flight[key] = task

        try:
            summary = await asyncio.shield(task)
        except CollaboratorError as exc:
            return SummaryResult(False, error=f"{exc.code}: {exc}")
        return SummaryResult(True, summary=summary)

    async def _request(self, key: str, text: str, context: SummaryContext) -> str:
        try:
            summary = await asyncio.wait_for(
                self.summariser.summarise(text, context), self.timeout_seconds
            )
        except TimeoutError as exc:
            logger.warning("Summary request timed out after %.1fs", self.timeout_seconds)
            msg = f"Summary request timed out after {self.timeout_seconds}s"
            raise CollaboratorError(msg) from exc
        except Exception as exc:
            logger.warning("Summary request failed: %s", exc)
            raise CollaboratorError(str(exc)) from exc
        finally:
            self._in_flight.pop(key, None)

        summary = summary.strip() if isinstance(summary, str) else ""
        if not summary:
            msg = "Summariser returned an empty summary"
            raise CollaboratorError(msg)
        self._store.set(key, summary)
        return summary
