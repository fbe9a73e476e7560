"""Rectangle measurement for ranges.

There is no renderer in process, so measurement is pluggable through the
``LayoutEngine`` protocol. ``FlowLayout`` is a deterministic stand-in that
lays text out on a fixed character grid: block elements start new lines,
``br`` breaks, and lines wrap at the viewport width. It is good enough for
ordering candidates by distance, which is all anchoring needs from it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from anchorlight.dom.tree import NON_RENDERED_TAGS, Element, Text

if TYPE_CHECKING:
    from anchorlight.dom.range import Range
    from anchorlight.dom.tree import Document, Node

BLOCK_TAGS = frozenset(
    (
        "address",
        "article",
        "aside",
        "blockquote",
        "body",
        "dd",
        "div",
        "dl",
        "dt",
        "figcaption",
        "figure",
        "footer",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hr",
        "html",
        "li",
        "main",
        "nav",
        "ol",
        "p",
        "pre",
        "section",
        "table",
        "td",
        "th",
        "tr",
        "ul",
    )
)


@dataclass(frozen=True)
class Rect:
    """Document-relative rectangle in pixels."""

    top: float
    left: float
    width: float = 0.0
    height: float = 0.0

    def distance_to(self, top: float, left: float) -> float:
        """Euclidean distance between this rectangle's top-left corner and a point."""
        return math.hypot(self.top - top, self.left - left)


@runtime_checkable
class LayoutEngine(Protocol):
    """Measures where a range sits on the page."""

    def measure(self, range_: Range) -> Rect | None:
        """Return the range's bounding rectangle, or None when it cannot be measured."""
        ...


class FlowLayout:
    """Fixed-grid text layout.

    Args:
        char_width: Advance of every character in pixels.
        line_height: Height of a line in pixels.
        viewport_width: Lines wrap once they would exceed this width.
    """

    def __init__(
        self,
        char_width: float = 8.0,
        line_height: float = 20.0,
        viewport_width: float = 800.0,
    ) -> None:
        self.char_width = char_width
        self.line_height = line_height
        self.chars_per_line = max(1, int(viewport_width // char_width))

    def _line_starts(self, document: Document) -> dict[int, tuple[int, int]]:
        """Map ``id(leaf)`` to the (line, column) its first character lands on."""
        starts: dict[int, tuple[int, int]] = {}
        line = 0
        column = 0

        def walk(node: Node) -> None:
            nonlocal line, column
            if isinstance(node, Text):
                starts[id(node)] = (line, column)
                line, column = self._advance(line, column, len(node.data))
                return
            assert isinstance(node, Element)
            if node.tag in NON_RENDERED_TAGS or node.tag == "head":
                return
            if node.tag == "br":
                line, column = line + 1, 0
                return
            is_block = node.tag in BLOCK_TAGS
            if is_block and column:
                line, column = line + 1, 0
            for child in node.children:
                walk(child)
            if is_block and column:
                line, column = line + 1, 0

        for child in document.children:
            walk(child)
        return starts

    def _advance(self, line: int, column: int, count: int) -> tuple[int, int]:
        total = column + count
        return line + total // self.chars_per_line, total % self.chars_per_line

    def measure(self, range_: Range) -> Rect | None:
        if not range_.is_attached():
            return None
        document = range_.start_container.owner_document
        if document is None:
            return None

        spans = list(range_.text_spans())
        if not spans:
            return None
        starts = self._line_starts(document)

        first_leaf, first_begin, _ = spans[0]
        last_leaf, _, last_end = spans[-1]
        if id(first_leaf) not in starts or id(last_leaf) not in starts:
            # Inside a non-rendered element
            return None

        top_line, left_col = self._advance(*starts[id(first_leaf)], first_begin)
        bottom_line, right_col = self._advance(*starts[id(last_leaf)], last_end)
        if right_col == 0 and bottom_line > top_line:
            bottom_line, right_col = bottom_line - 1, self.chars_per_line

        if bottom_line == top_line:
            left = left_col * self.char_width
            width = (right_col - left_col) * self.char_width
        else:
            left = 0.0
            width = self.chars_per_line * self.char_width
        return Rect(
            top=top_line * self.line_height,
            left=left,
            width=width,
            height=(bottom_line - top_line + 1) * self.line_height,
        )
