"""Deep links: URL fragments that scroll a page to a highlight.

Format: ``#highlight=<url-encoded text>&pos=<url-encoded JSON position>``,
with ``pos`` optional. Opening a link waits for the text to appear (pages
often render late), resolves the best occurrence and scrolls it into view.
When the text never appears but a position was given, the page is scrolled
to that position instead and the result is flagged approximate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, quote, urlencode, urldefrag

from pydantic import ValidationError

from anchorlight.anchoring.errors import TextNotFoundError
from anchorlight.anchoring.models import DeepLinkResult, Fragment, Position
from anchorlight.config import DeepLinkConfig

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from anchorlight.anchoring.locator import FragmentLocator
    from anchorlight.anchoring.resolver import AnchorResolver
    from anchorlight.dom.layout import LayoutEngine, Rect
    from anchorlight.dom.tree import Document

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeepLink:
    text: str
    position: Position | None = None


@dataclass
class Viewport:
    """Scroll state of the page."""

    scroll_top: float = 0.0

    def scroll_to(self, top: float) -> float:
        self.scroll_top = max(0.0, top)
        return self.scroll_top


def build_deep_link(url: str, text: str, position: Position | None = None) -> str:
    """Return *url* with a highlight fragment identifier appended."""
    params = {"highlight": text}
    if position is not None:
        params["pos"] = position.model_dump_json()
    base, _ = urldefrag(url)
    return f"{base}#{urlencode(params, quote_via=quote)}"


def parse_deep_link(fragment_identifier: str) -> DeepLink | None:
    """Decode a ``highlight=...&pos=...`` fragment identifier.

    Accepts the identifier with or without the leading ``#``, or a full URL.
    Returns None when there is no highlight text. A malformed ``pos`` is
    ignored rather than rejecting the link.
    """
    if "#" in fragment_identifier:
        _, fragment_identifier = fragment_identifier.split("#", 1)
    params = parse_qs(fragment_identifier)
    texts = params.get("highlight")
    if not texts or not texts[0]:
        return None

    position = None
    raw_positions = params.get("pos")
    if raw_positions:
        try:
            position = Position.model_validate_json(raw_positions[0])
        except ValidationError:
            logger.warning("Ignoring malformed deep-link position: %r", raw_positions[0])
    return DeepLink(texts[0], position)


class DeepLinkNavigator:
    """Scrolls a document to the text named by a deep link."""

    def __init__(
        self,
        document: Document,
        locator: FragmentLocator,
        resolver: AnchorResolver,
        layout: LayoutEngine,
        viewport: Viewport,
        config: DeepLinkConfig | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.document = document
        self.locator = locator
        self.resolver = resolver
        self.layout = layout
        self.viewport = viewport
        self.config = config or DeepLinkConfig()
        self._sleep = sleep

    async def open(self, fragment_identifier: str) -> DeepLinkResult:
        link = parse_deep_link(fragment_identifier)
        if link is None:
            return DeepLinkResult(False, error="NoHighlight")

        attempts = 0
        while attempts < self.config.max_attempts:
            await self._sleep(self.config.retry_interval_seconds)
            attempts += 1
            if link.text in self.document.body.text_content:
                result = await self._scroll_to_text(link, attempts)
                if result is not None:
                    return result
                logger.info("Deep-link text is on the page but spans several text nodes")
                break
            logger.debug("Deep-link text not present yet (attempt %d)", attempts)

        if link.position is not None:
            scroll_top = self.viewport.scroll_to(link.position.top - self.config.scroll_offset)
            logger.info("Deep-link text not found, scrolled to approximate position")
            return DeepLinkResult(
                True,
                text=link.text,
                approximate=True,
                scroll_top=scroll_top,
                attempts=attempts,
            )
        return DeepLinkResult(False, text=link.text, attempts=attempts, error=TextNotFoundError.code)

    async def _scroll_to_text(self, link: DeepLink, attempts: int) -> DeepLinkResult | None:
        try:
            wanted = Fragment(id="deep-link", text=link.text, approx_position=link.position)
        except ValidationError:
            logger.warning("Deep-link text is not a valid fragment")
            return None

        candidates = self.locator.find_candidates(link.text)
        candidate = self.resolver.resolve(candidates, wanted)
        if candidate is None:
            return None

        anchor = candidate.anchor(len(link.text))
        rect = self.layout.measure(anchor.to_range())
        if rect is None:
            return None

        scroll_top = self.viewport.scroll_to(rect.top - self.config.scroll_offset)
        await self._sleep(self.config.settle_seconds)
        settled: Rect | None = self.layout.measure(anchor.to_range())
        return DeepLinkResult(
            True,
            text=link.text,
            scroll_top=scroll_top,
            rect=settled or rect,
            attempts=attempts,
        )
