"""In-process document tree with DOM-style mutation.

The tree mirrors the part of the browser DOM the highlight engine relies on:
ordered children, parent pointers, text leaves whose ``data`` can be split,
and a document root that decides whether a node is still "attached".

HTML is parsed with selectolax, walking its child/next chain (which exposes
``-text`` nodes) the same way the input pipeline walks pasted content, and
serialised back with ``to_html()``.
"""

from __future__ import annotations

import html as html_module
import logging
from typing import TYPE_CHECKING, Any

from selectolax.lexbor import LexborHTMLParser

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

# Elements whose text never reaches the rendered page
NON_RENDERED_TAGS = frozenset(("script", "style", "noscript", "template"))

VOID_TAGS = frozenset(
    (
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "source",
        "track",
        "wbr",
    )
)

# Raw-text elements are serialised without entity escaping
_RAW_TEXT_TAGS = frozenset(("script", "style"))


class DOMError(Exception):
    """Base class for tree mutation failures (browser DOMException analogue)."""


class HierarchyRequestError(DOMError):
    """A node would be inserted somewhere the tree cannot hold it."""


class InvalidStateError(DOMError):
    """The operation is not allowed in the current state (e.g. partial selection)."""


class IndexSizeError(DOMError):
    """An offset lies outside the bounds of its container."""


class Node:
    """Base class for everything that can sit in the tree."""

    def __init__(self) -> None:
        self.parent: Element | None = None

    @property
    def text_content(self) -> str:
        raise NotImplementedError

    def length(self) -> int:
        """Boundary-point length: characters for text, children for elements."""
        raise NotImplementedError

    @property
    def root(self) -> Node:
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def owner_document(self) -> Document | None:
        root = self.root
        return root if isinstance(root, Document) else None

    @property
    def is_attached(self) -> bool:
        """True while the node is reachable from a Document root."""
        return isinstance(self.root, Document)

    def index(self) -> int:
        if self.parent is None:
            msg = "Detached node has no index"
            raise HierarchyRequestError(msg)
        return self.parent.index_of(self)

    @property
    def next_sibling(self) -> Node | None:
        if self.parent is None:
            return None
        siblings = self.parent.children
        i = self.parent.index_of(self) + 1
        return siblings[i] if i < len(siblings) else None

    @property
    def previous_sibling(self) -> Node | None:
        if self.parent is None:
            return None
        i = self.parent.index_of(self)
        return self.parent.children[i - 1] if i > 0 else None

    def ancestors(self) -> Iterator[Element]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def is_inclusive_ancestor_of(self, other: Node) -> bool:
        node: Node | None = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    def path(self) -> list[int]:
        """Child indices from the root down to this node (document order key)."""
        indices: list[int] = []
        node: Node = self
        while node.parent is not None:
            indices.append(node.parent.index_of(node))
            node = node.parent
        indices.reverse()
        return indices

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.remove_child(self)

    def to_html(self) -> str:
        raise NotImplementedError


class Text(Node):
    """A text leaf."""

    def __init__(self, data: str = "") -> None:
        super().__init__()
        self.data = data

    @property
    def text_content(self) -> str:
        return self.data

    def length(self) -> int:
        return len(self.data)

    def split_text(self, offset: int) -> Text:
        """Split at *offset*; this node keeps the head, the returned node the tail."""
        if offset < 0 or offset > len(self.data):
            msg = f"Offset {offset} outside text of length {len(self.data)}"
            raise IndexSizeError(msg)
        tail = Text(self.data[offset:])
        self.data = self.data[:offset]
        if self.parent is not None:
            self.parent.insert_before(tail, self.next_sibling)
        return tail

    def clone(self) -> Text:
        return Text(self.data)

    def to_html(self) -> str:
        if self.parent is not None and self.parent.tag in _RAW_TEXT_TAGS:
            return self.data
        return html_module.escape(self.data, quote=False)

    def __repr__(self) -> str:
        preview = self.data if len(self.data) <= 30 else self.data[:27] + "..."
        return f"Text({preview!r})"


class Element(Node):
    """An element with a tag, attributes and ordered children."""

    def __init__(
        self,
        tag: str,
        attrs: dict[str, str | None] | None = None,
        children: list[Node] | None = None,
    ) -> None:
        super().__init__()
        self.tag = tag.lower()
        self.attrs: dict[str, str | None] = dict(attrs or {})
        self.children: list[Node] = []
        for child in children or ():
            self.append_child(child)

    @property
    def text_content(self) -> str:
        return "".join(text.data for text in self.iter_text())

    def length(self) -> int:
        return len(self.children)

    def index_of(self, child: Node) -> int:
        for i, candidate in enumerate(self.children):
            if candidate is child:
                return i
        msg = f"{child!r} is not a child of {self!r}"
        raise HierarchyRequestError(msg)

    # -- mutation ------------------------------------------------------------

    def append_child(self, node: Node) -> Node:
        return self.insert_before(node, None)

    def insert_before(self, node: Node, reference: Node | None) -> Node:
        """Insert *node* before *reference* (append when None), moving it if attached.

        Inserting a DocumentFragment moves its children instead, leaving the
        fragment empty.
        """
        if isinstance(node, DocumentFragment):
            for child in list(node.children):
                self.insert_before(child, reference)
            return node
        if isinstance(node, Document):
            msg = "A document cannot be inserted into a tree"
            raise HierarchyRequestError(msg)
        if node.is_inclusive_ancestor_of(self):
            msg = f"Inserting {node!r} into {self!r} would create a cycle"
            raise HierarchyRequestError(msg)
        if reference is not None and reference.parent is not self:
            msg = f"Reference {reference!r} is not a child of {self!r}"
            raise HierarchyRequestError(msg)
        if reference is node:
            reference = node.next_sibling
        if node.parent is not None:
            node.parent.remove_child(node)
        position = len(self.children) if reference is None else self.index_of(reference)
        self.children.insert(position, node)
        node.parent = self
        return node

    def remove_child(self, node: Node) -> Node:
        del self.children[self.index_of(node)]
        node.parent = None
        return node

    def replace_child(self, new: Node, old: Node) -> Node:
        self.insert_before(new, old)
        return self.remove_child(old)

    def normalize(self) -> None:
        """Merge adjacent text children and drop empty ones, recursively."""
        merged: list[Node] = []
        for child in self.children:
            if isinstance(child, Text):
                if not child.data:
                    child.parent = None
                    continue
                if merged and isinstance(merged[-1], Text):
                    previous = merged[-1]
                    assert isinstance(previous, Text)
                    previous.data += child.data
                    child.parent = None
                    continue
            elif isinstance(child, Element):
                child.normalize()
            merged.append(child)
        self.children = merged

    # -- queries -------------------------------------------------------------

    def iter_descendants(self) -> Iterator[Node]:
        """Pre-order walk of every node below this one."""
        stack: list[Node] = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, Element):
                stack.extend(reversed(node.children))

    def iter_text(self) -> Iterator[Text]:
        for node in self.iter_descendants():
            if isinstance(node, Text):
                yield node

    def find_all(self, predicate: Callable[[Element], bool]) -> list[Element]:
        return [
            node
            for node in self.iter_descendants()
            if isinstance(node, Element) and predicate(node)
        ]

    def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)

    def set_attribute(self, name: str, value: str | None) -> None:
        self.attrs[name] = value

    def has_class(self, name: str) -> bool:
        return name in (self.attrs.get("class") or "").split()

    def clone(self) -> Element:
        """Shallow copy: same tag and attributes, no children."""
        return Element(self.tag, self.attrs)

    # -- serialisation -------------------------------------------------------

    @property
    def inner_html(self) -> str:
        return "".join(child.to_html() for child in self.children)

    def to_html(self) -> str:
        attrs = "".join(
            f" {name}" if value is None else f' {name}="{html_module.escape(value)}"'
            for name, value in self.attrs.items()
        )
        if self.tag in VOID_TAGS:
            return f"<{self.tag}{attrs}>"
        return f"<{self.tag}{attrs}>{self.inner_html}</{self.tag}>"

    def __repr__(self) -> str:
        return f"Element({self.tag!r})"


class DocumentFragment(Element):
    """Detached container; inserting it moves its children."""

    def __init__(self, children: list[Node] | None = None) -> None:
        super().__init__("#fragment", children=children)

    def to_html(self) -> str:
        return self.inner_html


class Document(Element):
    """Tree root. Nodes are attached exactly when they can reach one of these."""

    def __init__(self, children: list[Node] | None = None) -> None:
        super().__init__("#document", children=children)

    @property
    def body(self) -> Element:
        for node in self.iter_descendants():
            if isinstance(node, Element) and node.tag == "body":
                return node
        return self

    @property
    def title(self) -> str:
        for node in self.iter_descendants():
            if isinstance(node, Element) and node.tag == "title":
                return node.text_content.strip()
        return ""

    def to_html(self) -> str:
        return self.inner_html


def _convert(node: Any) -> Node | None:
    """Convert one selectolax node (and its subtree) into our tree."""
    tag = node.tag
    if tag == "-text":
        text = node.text_content
        return Text(text) if text else None
    # Comments, doctype and other pseudo-nodes carry no content we anchor to
    if not tag or not tag[0].isalpha():
        return None

    element = Element(tag, dict(node.attributes))
    child = node.child
    while child is not None:
        converted = _convert(child)
        if converted is not None:
            element.append_child(converted)
        child = child.next
    return element


def parse_html(markup: str) -> Document:
    """Parse HTML into a Document.

    Fragments (``<p>hi</p>``) are wrapped by the parser in
    ``html``/``head``/``body`` like a browser would.
    """
    document = Document()
    if not markup:
        return document

    tree = LexborHTMLParser(markup)
    root = tree.root
    if root is None:
        return document

    converted = _convert(root)
    if converted is not None:
        document.append_child(converted)
    logger.debug("Parsed %d characters of HTML", len(markup))
    return document
