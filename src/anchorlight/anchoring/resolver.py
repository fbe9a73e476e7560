"""Pick the single best candidate for a fragment.

Three tiers, first applicable wins:

1. Context: word-overlap between the stored context and a window of
   ±50 characters around each match.
2. Position: distance between the stored top-left corner and each match's
   measured top-left corner.
3. Verbatim: the first candidate whose leaf still contains the text.

Equal scores resolve to the earliest candidate in document order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from anchorlight.anchoring.models import Candidate, Fragment, Position
    from anchorlight.dom.layout import LayoutEngine

logger = logging.getLogger(__name__)


def context_similarity(a: str, b: str) -> float:
    """Share of words in common, over the longer of the two word lists.

    Words are lowercase, whitespace-separated; repeated words in *a* each
    count when present in *b*.
    """
    words_a = a.lower().split()
    words_b = b.lower().split()
    if not words_a or not words_b:
        return 0.0
    vocabulary = set(words_b)
    common = sum(1 for word in words_a if word in vocabulary)
    return common / max(len(words_a), len(words_b))


def context_window(content: str, index: int, length: int, radius: int = 50) -> str:
    return content[max(0, index - radius) : min(len(content), index + length + radius)]


class AnchorResolver:
    """Scores candidates against a fragment's context and position."""

    def __init__(self, layout: LayoutEngine, context_radius: int = 50) -> None:
        self.layout = layout
        self.context_radius = context_radius

    def resolve(self, candidates: list[Candidate], fragment: Fragment) -> Candidate | None:
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]
        if fragment.context_text:
            return self.by_context(candidates, fragment.text, fragment.context_text)
        if fragment.approx_position is not None:
            return self.by_position(candidates, fragment.text, fragment.approx_position)
        for candidate in candidates:
            if fragment.text in candidate.leaf.data:
                return candidate
        return candidates[0]

    def by_context(self, candidates: list[Candidate], text: str, context_text: str) -> Candidate:
        best: Candidate | None = None
        best_score = 0.0
        ties = 0
        for candidate in candidates:
            window = context_window(
                candidate.leaf.data, candidate.match_index, len(text), self.context_radius
            )
            score = context_similarity(context_text, window)
            if score > best_score:
                best, best_score, ties = candidate, score, 0
            elif best is not None and score == best_score:
                ties += 1

        if ties:
            logger.debug(
                "Ambiguous match for %r: %d candidates share score %.3f, using the first",
                text[:40],
                ties + 1,
                best_score,
            )
        return best or candidates[0]

    def by_position(self, candidates: list[Candidate], text: str, position: Position) -> Candidate:
        best: Candidate | None = None
        best_distance = float("inf")
        for candidate in candidates:
            try:
                rect = self.layout.measure(candidate.anchor(len(text)).to_range())
            except Exception:
                logger.debug("Could not measure candidate for %r", text[:40], exc_info=True)
                continue
            if rect is None:
                continue
            distance = rect.distance_to(position.top, position.left)
            if distance < best_distance:
                best, best_distance = candidate, distance
        return best or candidates[0]
