"""Find the text leaves that contain a fragment.

Short fragments (under three characters) match almost everywhere, so they
take a direct walk of the tree with a larger cap instead of filling the
shared leaf index. Longer fragments scan the cached index. Either way the
candidate list is cached per ``(text, page url)`` in the node store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from anchorlight.anchoring.models import Candidate
from anchorlight.anchoring.node_index import iter_rendered_text
from anchorlight.config import AnchorConfig

if TYPE_CHECKING:
    from collections.abc import Iterable

    from anchorlight.anchoring.cache import CacheStore
    from anchorlight.anchoring.node_index import NodeIndex
    from anchorlight.dom.tree import Text

logger = logging.getLogger(__name__)


class FragmentLocator:
    """Produces ordered candidate leaves for a fragment text."""

    def __init__(
        self,
        index: NodeIndex,
        store: CacheStore,
        page_url: str = "",
        config: AnchorConfig | None = None,
    ) -> None:
        config = config or AnchorConfig()
        self.index = index
        self.page_url = page_url
        self._store = store
        self.short_text_threshold = config.short_text_threshold
        self.short_text_max_matches = config.short_text_max_matches
        self.max_matches = config.max_matches

    def cache_key(self, text: str) -> str:
        return f"{text}_{self.page_url}"

    def find_candidates(self, text: str) -> list[Candidate]:
        """Return up to 10 (short text) or 5 candidates in document order."""
        if not text:
            return []

        key = self.cache_key(text)
        cached = self._store.get(key)
        if cached is not None:
            return cached

        if len(text) < self.short_text_threshold:
            leaves: Iterable[Text] = iter_rendered_text(self.index.document.body)
            limit = self.short_text_max_matches
        else:
            leaves = self.index.all_leaves()
            limit = self.max_matches

        candidates = self._scan(leaves, text, limit)
        self._store.set(key, candidates)
        logger.debug("Found %d candidate(s) for %r", len(candidates), text[:40])
        return candidates

    def _scan(self, leaves: Iterable[Text], text: str, limit: int) -> list[Candidate]:
        candidates: list[Candidate] = []
        for leaf in leaves:
            if len(leaf.data) < len(text) or not leaf.is_attached:
                continue
            match_index = leaf.data.find(text)
            if match_index == -1:
                continue
            candidates.append(Candidate(leaf, match_index))
            if len(candidates) >= limit:
                break
        return candidates

    def forget(self, text: str) -> None:
        self._store.delete(self.cache_key(text))
