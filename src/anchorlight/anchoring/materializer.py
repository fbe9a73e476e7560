"""Turn a fragment into a marker element in the tree.

The marking chain is an explicit sequence of states, each tried only when
the previous one cannot apply:

- replay: the live range is structurally valid, so wrap it in place with
  ``surround_contents``.
- extract: the range crosses element boundaries; pull its content out,
  put it inside the marker and insert the marker where the content was.
- remark: no usable range (or both range paths failed); find the text
  again by content, pick a candidate and split that leaf around a marker.
- failed: report the error code, and when a live selection was being
  marked, clear it through the ``on_failure`` callback.

``materialize`` never raises and never leaves a partial marker behind.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from anchorlight.anchoring.errors import (
    AnchorError,
    NodeDetachedError,
    RangeInvalidError,
    TextNotFoundError,
)
from anchorlight.anchoring.models import (
    Anchor,
    MaterializeResult,
    MaterializeState,
    RangeDescriptor,
    create_marker,
    is_marker,
)
from anchorlight.dom.tree import DOMError, Element, Text

if TYPE_CHECKING:
    from collections.abc import Callable

    from anchorlight.anchoring.locator import FragmentLocator
    from anchorlight.anchoring.models import Fragment
    from anchorlight.anchoring.node_index import NodeIndex
    from anchorlight.anchoring.resolver import AnchorResolver
    from anchorlight.dom.range import Range

logger = logging.getLogger(__name__)


def validate_range(range_: Range) -> None:
    """Raise RangeInvalidError unless *range_* can be marked as-is."""
    if not range_.is_attached():
        msg = "Range endpoint is no longer in the document"
        raise RangeInvalidError(msg)
    try:
        range_.check()
    except DOMError as exc:
        raise RangeInvalidError(str(exc)) from exc
    if range_.collapsed:
        msg = "Range is collapsed"
        raise RangeInvalidError(msg)


def unwrap_marker(marker: Element) -> Element | None:
    """Replace *marker* with its children; return the parent it was in."""
    parent = marker.parent
    if parent is None:
        return None
    for child in list(marker.children):
        parent.insert_before(child, marker)
    parent.remove_child(marker)
    return parent


def remove_markers(root: Element, fragment_id: str | None = None) -> int:
    """Remove markers under *root* (all, or those of one fragment).

    Marked content is kept in place and the touched parents are normalised so
    the text is back in whole leaves. Returns the number of markers removed.
    """
    markers = root.find_all(lambda element: is_marker(element, fragment_id))
    parents: list[Element] = []
    for marker in markers:
        parent = unwrap_marker(marker)
        if parent is not None and all(parent is not seen for seen in parents):
            parents.append(parent)
    for parent in parents:
        parent.normalize()
    if markers:
        logger.debug("Removed %d marker(s)", len(markers))
    return len(markers)


class RangeMaterializer:
    """Runs the marking chain for one fragment at a time."""

    def __init__(
        self,
        locator: FragmentLocator,
        resolver: AnchorResolver,
        index: NodeIndex,
        on_failure: Callable[[], object] | None = None,
    ) -> None:
        self.locator = locator
        self.resolver = resolver
        self.index = index
        self.on_failure = on_failure

    def materialize(
        self,
        fragment: Fragment,
        target: RangeDescriptor | Anchor | None = None,
    ) -> MaterializeResult:
        range_ = target.to_range() if target is not None else None

        if range_ is not None:
            try:
                validate_range(range_)
            except RangeInvalidError as exc:
                logger.info("Stored range for %s unusable (%s), marking by content", fragment.id, exc)
                range_ = None

        if range_ is not None and range_.to_string() != fragment.text:
            logger.info("Stored range for %s no longer holds its text, marking by content", fragment.id)
            range_ = None

        if range_ is not None:
            marker = self._replay(fragment, range_)
            if marker is not None:
                return MaterializeResult(True, fragment.id, MaterializeState.REPLAY, marker)
            marker = self._extract(fragment, range_)
            if marker is not None:
                return MaterializeResult(True, fragment.id, MaterializeState.EXTRACT, marker)

        try:
            marker = self._remark(fragment)
        except AnchorError as exc:
            return self._fail(fragment, exc, clear_selection=target is not None)
        return MaterializeResult(True, fragment.id, MaterializeState.REMARK, marker)

    # -- states --------------------------------------------------------------

    def _replay(self, fragment: Fragment, range_: Range) -> Element | None:
        marker = create_marker(fragment.id)
        try:
            range_.surround_contents(marker)
        except DOMError as exc:
            logger.debug("Replay failed for %s: %s", fragment.id, exc)
            unwrap_marker(marker)
            return None
        self.index.invalidate()
        logger.debug("Marked %s by replaying its range", fragment.id)
        return marker

    def _extract(self, fragment: Fragment, range_: Range) -> Element | None:
        marker = create_marker(fragment.id)
        try:
            validate_range(range_)
            contents = range_.extract_contents()
            marker.append_child(contents)
            range_.insert_node(marker)
            range_.collapse(to_start=True)
        except (AnchorError, DOMError) as exc:
            logger.info("Extract/reinsert failed for %s: %s", fragment.id, exc)
            unwrap_marker(marker)
            return None
        self.index.invalidate()
        logger.debug("Marked %s by extracting and reinserting", fragment.id)
        return marker

    def _remark(self, fragment: Fragment) -> Element:
        text = fragment.text
        for attempt in range(2):
            candidates = self.locator.find_candidates(text)
            candidate = self.resolver.resolve(candidates, fragment)
            if candidate is not None:
                leaf = candidate.leaf
                offset = self._locate_in_leaf(leaf, text, candidate.match_index)
                if offset is not None:
                    return self._mark_in_leaf(fragment, leaf, offset)
                error: AnchorError = NodeDetachedError(f"Leaf for {fragment.id} left the document")
            else:
                error = TextNotFoundError(f"No leaf contains the text of {fragment.id}")

            if attempt == 0:
                logger.debug("Retrying lookup for %s after %s", fragment.id, error.code)
                self.locator.forget(text)
                self.index.invalidate()
        raise error

    @staticmethod
    def _locate_in_leaf(leaf: Text, text: str, hint: int) -> int | None:
        if not leaf.is_attached:
            return None
        if leaf.data[hint : hint + len(text)] == text:
            return hint
        found = leaf.data.find(text)
        return found if found != -1 else None

    def _mark_in_leaf(self, fragment: Fragment, leaf: Text, offset: int) -> Element:
        parent = leaf.parent
        assert parent is not None
        end = offset + len(fragment.text)
        before = Text(leaf.data[:offset])
        inner = Text(leaf.data[offset:end])
        after = Text(leaf.data[end:])

        marker = create_marker(fragment.id)
        marker.append_child(inner)
        if before.data:
            parent.insert_before(before, leaf)
        parent.insert_before(marker, leaf)
        if after.data:
            parent.insert_before(after, leaf)
        parent.remove_child(leaf)

        self.index.replace_leaf(leaf, [before, inner, after])
        self.locator.forget(fragment.text)
        logger.debug("Marked %s by content", fragment.id)
        return marker

    def _fail(
        self, fragment: Fragment, exc: AnchorError, *, clear_selection: bool
    ) -> MaterializeResult:
        logger.warning("Could not mark %s: %s", fragment.id, exc)
        if clear_selection and self.on_failure is not None:
            self.on_failure()
        return MaterializeResult(False, fragment.id, MaterializeState.FAILED, error=exc.code)
