"""Cached list of the text leaves worth searching.

One full traversal per validity window: the leaf list lives in the node
cache store under a single sentinel key and expires with it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from anchorlight.dom.tree import NON_RENDERED_TAGS, Element, Text

if TYPE_CHECKING:
    from collections.abc import Iterator

    from anchorlight.anchoring.cache import CacheStore
    from anchorlight.dom.tree import Document, Node

logger = logging.getLogger(__name__)

ALL_TEXT_NODES_KEY = "all_text_nodes"


def iter_rendered_text(root: Element) -> Iterator[Text]:
    """Yield text leaves under *root* in document order, skipping non-rendered subtrees."""
    stack: list[Node] = list(reversed(root.children))
    while stack:
        node = stack.pop()
        if isinstance(node, Text):
            yield node
        elif isinstance(node, Element) and node.tag not in NON_RENDERED_TAGS:
            stack.extend(reversed(node.children))


class NodeIndex:
    """Builds and caches the candidate text leaves of a document."""

    def __init__(self, document: Document, store: CacheStore, min_leaf_length: int = 2) -> None:
        self.document = document
        self._store = store
        self.min_leaf_length = min_leaf_length

    def _keep(self, leaf: Text) -> bool:
        return len(leaf.data.strip()) >= self.min_leaf_length

    def all_leaves(self) -> list[Text]:
        cached = self._store.get(ALL_TEXT_NODES_KEY)
        if cached is not None:
            return cached
        leaves = [leaf for leaf in iter_rendered_text(self.document.body) if self._keep(leaf)]
        self._store.set(ALL_TEXT_NODES_KEY, leaves)
        logger.debug("Indexed %d text leaves", len(leaves))
        return leaves

    def invalidate(self) -> None:
        self._store.delete(ALL_TEXT_NODES_KEY)

    def replace_leaf(self, old: Text, new_leaves: list[Text]) -> bool:
        """Swap *old* for *new_leaves* in the cached list, if it is cached.

        Returns True when the cached list was updated.
        """
        cached = self._store.get(ALL_TEXT_NODES_KEY)
        if cached is None:
            return False
        for i, leaf in enumerate(cached):
            if leaf is old:
                cached[i : i + 1] = [new for new in new_leaves if self._keep(new)]
                return True
        return False
