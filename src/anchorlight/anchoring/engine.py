"""Page-scoped highlight engine.

One ``HighlightEngine`` per open page. It owns the document tree, both
cache stores and every anchoring component, and is the only thing callers
talk to: capture a selection, save it, re-render stored highlights, follow
deep links, summarise. Every public operation returns a result object; none
of them raise for anchoring or collaborator failures.

Usage:
    engine = HighlightEngine(parse_html(markup), MemoryFragmentStore(), page_url=url)
    async with engine:
        await engine.load()
        report = await engine.render_page_highlights()
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from anchorlight.anchoring.cache import CacheManager
from anchorlight.anchoring.debounce import SelectionDebouncer
from anchorlight.anchoring.deeplink import DeepLinkNavigator, Viewport
from anchorlight.anchoring.errors import CollaboratorError
from anchorlight.anchoring.locator import FragmentLocator
from anchorlight.anchoring.materializer import RangeMaterializer, remove_markers
from anchorlight.anchoring.models import (
    BatchReport,
    Fragment,
    LoadResult,
    MaterializeResult,
    PendingSelection,
    Position,
    RangeDescriptor,
    SaveResult,
    SummaryResult,
    is_marker,
)
from anchorlight.anchoring.node_index import NodeIndex
from anchorlight.anchoring.resolver import AnchorResolver
from anchorlight.anchoring.scheduler import BatchScheduler
from anchorlight.config import get_settings
from anchorlight.dom.layout import FlowLayout
from anchorlight.dom.range import Range
from anchorlight.dom.tree import Element
from anchorlight.llm.factory import get_summariser
from anchorlight.summary import SummaryService

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from anchorlight.anchoring.models import Anchor, DeepLinkResult
    from anchorlight.config import Settings
    from anchorlight.dom.layout import LayoutEngine
    from anchorlight.dom.tree import Document
    from anchorlight.store import FragmentStore
    from anchorlight.summary import Summariser

logger = logging.getLogger(__name__)


def _trim_range(range_: Range) -> Range:
    """Narrow *range_* to its first and last non-whitespace characters.

    The endpoints land inside text leaves even when the selection started or
    ended on an element boundary, so the stored range covers exactly the
    trimmed text.
    """
    spans = [span for span in range_.text_spans() if span[0].data[span[1] : span[2]].strip()]
    if not spans:
        return range_
    first, begin, end = spans[0]
    segment = first.data[begin:end]
    start_offset = begin + len(segment) - len(segment.lstrip())
    last, begin, end = spans[-1]
    segment = last.data[begin:end]
    end_offset = end - (len(segment) - len(segment.rstrip()))
    return Range(first, start_offset, last, end_offset)


class HighlightEngine:
    """Facade over locating, marking and restoring highlights on one page."""

    def __init__(
        self,
        document: Document,
        store: FragmentStore,
        *,
        page_url: str = "",
        settings: Settings | None = None,
        layout: LayoutEngine | None = None,
        summariser: Summariser | None = None,
        clock: Callable[[], float] | None = None,
        idle: Callable[[float], Awaitable[object]] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.document = document
        self.store = store
        self.page_url = page_url
        self.layout: LayoutEngine = layout or FlowLayout()

        self.cache = CacheManager(self.settings.cache, clock)
        self.index = NodeIndex(document, self.cache.nodes, self.settings.anchor.min_leaf_length)
        self.locator = FragmentLocator(self.index, self.cache.nodes, page_url, self.settings.anchor)
        self.resolver = AnchorResolver(self.layout, self.settings.anchor.context_window)
        self.materializer = RangeMaterializer(
            self.locator, self.resolver, self.index, on_failure=self.clear_selection
        )
        self.scheduler = BatchScheduler(self.settings.scheduler, idle)
        self.viewport = Viewport()
        self.deeplinks = DeepLinkNavigator(
            document,
            self.locator,
            self.resolver,
            self.layout,
            self.viewport,
            self.settings.deeplink,
            sleep=sleep,
        )
        if summariser is None:
            summariser = get_summariser(self.settings)
        self.summaries = (
            SummaryService(summariser, self.cache.results, self.settings.llm.timeout_seconds)
            if summariser is not None
            else None
        )
        self.debouncer: SelectionDebouncer[Range] = SelectionDebouncer(
            self.capture_selection, self.settings.selection
        )

        self.fragments: list[Fragment] = []
        self.pending: PendingSelection | None = None
        self.selection: Range | None = None
        self.markers: dict[str, Element] = {}
        self.cache.add_sweep_hook(self.prune_markers)

    async def __aenter__(self) -> HighlightEngine:
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def start(self) -> None:
        """Start the periodic cache sweep. Needs a running event loop."""
        self.cache.start()

    # -- selection -----------------------------------------------------------

    def on_selection_change(self, range_: Range | None) -> bool:
        """Record the host selection and feed it through the debouncer."""
        self.selection = range_
        if range_ is None:
            return False
        return self.debouncer(range_)

    def clear_selection(self) -> None:
        self.selection = None

    def capture_selection(self, range_: Range) -> PendingSelection | None:
        """Turn a selection into the pending capture.

        Empty or over-long selections clear the pending capture instead.
        """
        anchor_config = self.settings.anchor
        text = range_.to_string().strip()
        if not text or len(text) >= anchor_config.max_text_length:
            if text:
                logger.info("Ignoring selection of %d characters", len(text))
            self.pending = None
            return None

        trimmed = _trim_range(range_)
        context = trimmed.common_ancestor_element.text_content
        context_text = context[: anchor_config.context_chars] + "..."
        rect = self.layout.measure(trimmed)

        fragment = Fragment(
            text=text,
            context_text=context_text,
            approx_position=Position.from_rect(rect) if rect is not None else None,
            url=self.page_url,
            title=self.document.title,
            domain=urlparse(self.page_url).hostname or "",
        )
        self.pending = PendingSelection(fragment, RangeDescriptor.from_range(trimmed))
        logger.debug("Captured selection %s (%d chars)", fragment.id, len(text))
        return self.pending

    async def save_pending(self) -> SaveResult:
        """Persist the pending capture, then mark it on the page."""
        pending = self.pending
        if pending is None:
            return SaveResult(False, error="NoSelection")

        fragment = pending.fragment
        timeout = self.settings.storage.save_timeout_seconds
        try:
            saved = await asyncio.wait_for(self.store.save(fragment), timeout)
        except TimeoutError:
            logger.warning("Saving %s timed out after %.1fs", fragment.id, timeout)
            return SaveResult(False, fragment, error=f"{CollaboratorError.code}: save timed out")
        except Exception as exc:
            logger.exception("Saving %s failed", fragment.id)
            return SaveResult(False, fragment, error=f"{CollaboratorError.code}: {exc}")
        if not saved:
            return SaveResult(False, fragment, error=f"{CollaboratorError.code}: store refused")

        self.pending = None
        self.fragments.append(fragment)
        result = self.mark(fragment, pending.descriptor)
        self.clear_selection()
        return SaveResult(True, fragment, result)

    # -- marking -------------------------------------------------------------

    def mark(
        self, fragment: Fragment, target: RangeDescriptor | Anchor | None = None
    ) -> MaterializeResult:
        """Mark one fragment, replacing any marker it already has."""
        if remove_markers(self.document, fragment.id):
            self.index.invalidate()
            self.locator.forget(fragment.text)
        self.markers.pop(fragment.id, None)
        return self._materialize(fragment, target)

    def _materialize(
        self, fragment: Fragment, target: RangeDescriptor | Anchor | None = None
    ) -> MaterializeResult:
        result = self.materializer.materialize(fragment, target)
        if result.marker is not None:
            self.markers[fragment.id] = result.marker
        return result

    def unmark(self, fragment_id: str) -> bool:
        self.markers.pop(fragment_id, None)
        removed = remove_markers(self.document, fragment_id)
        if removed:
            self.index.invalidate()
        return bool(removed)

    def find_marker(self, fragment_id: str) -> Element | None:
        marker = self.markers.get(fragment_id)
        if marker is not None and marker.is_attached:
            return marker
        found = self.document.find_all(lambda element: is_marker(element, fragment_id))
        if found:
            self.markers[fragment_id] = found[0]
            return found[0]
        self.markers.pop(fragment_id, None)
        return None

    def prune_markers(self) -> int:
        """Forget registry entries whose marker has left the document."""
        stale = [fid for fid, marker in self.markers.items() if not marker.is_attached]
        for fid in stale:
            del self.markers[fid]
        return len(stale)

    # -- restoring -----------------------------------------------------------

    async def load(self) -> LoadResult:
        """Fetch all stored fragments."""
        try:
            self.fragments = await self.store.load()
        except Exception as exc:
            logger.exception("Loading fragments failed")
            return LoadResult(False, error=f"{CollaboratorError.code}: {exc}")
        logger.info("Loaded %d fragment(s)", len(self.fragments))
        return LoadResult(True, len(self.fragments))

    def page_fragments(self) -> list[Fragment]:
        return [f for f in self.fragments if f.url == self.page_url]

    async def render_page_highlights(self) -> BatchReport[MaterializeResult]:
        """Remove every marker and re-anchor this page's fragments in chunks."""
        remove_markers(self.document)
        self.markers.clear()
        # Leaves were merged back together; every cached leaf list is stale
        self.cache.nodes.clear()

        fragments = self.page_fragments()
        report = await self.scheduler.run(fragments, self._materialize)
        marked = sum(1 for r in report.results if r.success)
        logger.info("Re-rendered %d of %d highlight(s)", marked, len(fragments))
        return report

    async def on_visibility_change(self, hidden: bool) -> BatchReport[MaterializeResult] | None:
        if hidden:
            return None
        return await self.render_page_highlights()

    async def open_deep_link(self, fragment_identifier: str) -> DeepLinkResult:
        return await self.deeplinks.open(fragment_identifier)

    async def summarise(self, fragment: Fragment | None = None) -> SummaryResult:
        """Summarise *fragment*, or the pending capture when omitted."""
        if fragment is None:
            if self.pending is None:
                return SummaryResult(False, error="NoSelection")
            fragment = self.pending.fragment
        if self.summaries is None:
            return SummaryResult(False, error=f"{CollaboratorError.code}: no summariser configured")
        return await self.summaries.summarise(fragment)

    # -- lifecycle -----------------------------------------------------------

    def navigate(self, document: Document, page_url: str) -> None:
        """Switch to a new page: drop caches, pending capture and markers."""
        self.debouncer.cancel()
        self.cache.clear()
        self.pending = None
        self.selection = None
        self.markers.clear()
        self.document = document
        self.index.document = document
        self.deeplinks.document = document
        self.page_url = page_url
        self.locator.page_url = page_url
        self.viewport.scroll_to(0.0)

    async def close(self) -> None:
        self.debouncer.cancel()
        await self.cache.stop()
        self.cache.clear()
        self.pending = None
        self.selection = None
        self.markers.clear()

    def to_html(self) -> str:
        return self.document.to_html()
