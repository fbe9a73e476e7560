"""In-process document model: tree, ranges and layout measurement."""

from anchorlight.dom.layout import FlowLayout, LayoutEngine, Rect
from anchorlight.dom.range import Range
from anchorlight.dom.tree import (
    DOMError,
    Document,
    DocumentFragment,
    Element,
    HierarchyRequestError,
    IndexSizeError,
    InvalidStateError,
    Node,
    Text,
    parse_html,
)

__all__ = [
    "DOMError",
    "Document",
    "DocumentFragment",
    "Element",
    "FlowLayout",
    "HierarchyRequestError",
    "IndexSizeError",
    "InvalidStateError",
    "LayoutEngine",
    "Node",
    "Range",
    "Rect",
    "Text",
    "parse_html",
]
