"""DOM-style ranges over the in-process tree.

A boundary point is ``(container, offset)``: a character offset when the
container is a Text leaf, a child index when it is an Element. Ranges here
are not live; after a mutation the range is repositioned by the mutating
method itself (``extract_contents`` collapses to where the content was,
``insert_node`` and ``surround_contents`` select the inserted node).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from anchorlight.dom.tree import (
    Document,
    DocumentFragment,
    Element,
    HierarchyRequestError,
    IndexSizeError,
    InvalidStateError,
    Text,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from anchorlight.dom.tree import Node


def _child_of(ancestor: Node, node: Node) -> Node:
    """Return the child of *ancestor* that is an inclusive ancestor of *node*."""
    current = node
    while current.parent is not ancestor:
        if current.parent is None:
            msg = f"{node!r} is not inside {ancestor!r}"
            raise HierarchyRequestError(msg)
        current = current.parent
    return current


class Range:
    """A pair of boundary points in one tree."""

    def __init__(
        self,
        start_container: Node,
        start_offset: int,
        end_container: Node | None = None,
        end_offset: int | None = None,
    ) -> None:
        self.start_container = start_container
        self.start_offset = start_offset
        self.end_container = end_container if end_container is not None else start_container
        self.end_offset = end_offset if end_offset is not None else start_offset

    @classmethod
    def in_text(cls, leaf: Text, offset: int, length: int) -> Range:
        """Range covering ``leaf.data[offset:offset + length]``."""
        return cls(leaf, offset, leaf, offset + length)

    @classmethod
    def selecting(cls, node: Node) -> Range:
        parent = node.parent
        if parent is None:
            msg = "Cannot select a node without a parent"
            raise HierarchyRequestError(msg)
        i = parent.index_of(node)
        return cls(parent, i, parent, i + 1)

    # -- inspection ----------------------------------------------------------

    @property
    def collapsed(self) -> bool:
        return self.start_container is self.end_container and self.start_offset == self.end_offset

    @property
    def common_ancestor(self) -> Node:
        ancestors = {id(node) for node in (self.start_container, *self.start_container.ancestors())}
        node: Node | None = self.end_container
        while node is not None:
            if id(node) in ancestors:
                return node
            node = node.parent
        msg = "Range endpoints are in different trees"
        raise HierarchyRequestError(msg)

    @property
    def common_ancestor_element(self) -> Element:
        common = self.common_ancestor
        if isinstance(common, Element):
            return common
        assert common.parent is not None
        return common.parent

    def is_attached(self) -> bool:
        return self.start_container.is_attached and self.end_container.is_attached

    def _key(self, container: Node, offset: int) -> list[int]:
        return [*container.path(), offset]

    def check(self) -> None:
        """Raise unless both boundary points are in bounds and ordered."""
        for container, offset in (
            (self.start_container, self.start_offset),
            (self.end_container, self.end_offset),
        ):
            if offset < 0 or offset > container.length():
                msg = f"Offset {offset} outside {container!r} (length {container.length()})"
                raise IndexSizeError(msg)
        if self.start_container.root is not self.end_container.root:
            msg = "Range endpoints are in different trees"
            raise HierarchyRequestError(msg)
        if self._key(self.start_container, self.start_offset) > self._key(
            self.end_container, self.end_offset
        ):
            msg = "Range start is after its end"
            raise IndexSizeError(msg)

    def text_spans(self) -> Iterator[tuple[Text, int, int]]:
        """Yield ``(leaf, begin, end)`` for every text slice inside the range."""
        sc, so = self.start_container, self.start_offset
        ec, eo = self.end_container, self.end_offset
        if sc is ec and isinstance(sc, Text):
            if so < eo:
                yield sc, so, eo
            return

        common = self.common_ancestor
        assert isinstance(common, Element)
        start_key = self._key(sc, so)
        end_key = self._key(ec, eo)
        for leaf in common.iter_text():
            leaf_path = leaf.path()
            if [*leaf_path, len(leaf.data)] <= start_key or [*leaf_path, 0] >= end_key:
                continue
            begin = so if leaf is sc else 0
            end = eo if leaf is ec else len(leaf.data)
            if begin < end:
                yield leaf, begin, end

    def to_string(self) -> str:
        return "".join(leaf.data[begin:end] for leaf, begin, end in self.text_spans())

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return (
            f"Range({self.start_container!r}, {self.start_offset}, "
            f"{self.end_container!r}, {self.end_offset})"
        )

    # -- repositioning -------------------------------------------------------

    def collapse(self, to_start: bool = True) -> None:
        if to_start:
            self.end_container, self.end_offset = self.start_container, self.start_offset
        else:
            self.start_container, self.start_offset = self.end_container, self.end_offset

    def select_node(self, node: Node) -> None:
        selected = Range.selecting(node)
        self.start_container, self.start_offset = selected.start_container, selected.start_offset
        self.end_container, self.end_offset = selected.end_container, selected.end_offset

    # -- mutation ------------------------------------------------------------

    def _partially_contained(self) -> tuple[Node | None, Node | None]:
        common = self.common_ancestor
        sc, ec = self.start_container, self.end_container
        first = None if sc.is_inclusive_ancestor_of(ec) else _child_of(common, sc)
        last = None if ec.is_inclusive_ancestor_of(sc) else _child_of(common, ec)
        return first, last

    def extract_contents(self) -> DocumentFragment:
        """Move the range's content into a new fragment and collapse the range.

        Partially selected elements are split: the fragment receives shallow
        clones holding the selected part while the originals keep the rest.
        """
        self.check()
        fragment = DocumentFragment()
        if self.collapsed:
            return fragment

        sc, so = self.start_container, self.start_offset
        ec, eo = self.end_container, self.end_offset

        if sc is ec and isinstance(sc, Text):
            fragment.append_child(Text(sc.data[so:eo]))
            sc.data = sc.data[:so] + sc.data[eo:]
            self.collapse(to_start=True)
            return fragment

        common = self.common_ancestor
        assert isinstance(common, Element)
        first_partial, last_partial = self._partially_contained()

        start_i = first_partial.index() + 1 if first_partial is not None else so
        end_i = last_partial.index() if last_partial is not None else eo
        contained = common.children[start_i:end_i]

        if sc.is_inclusive_ancestor_of(ec):
            new_node, new_offset = sc, so
        else:
            reference = sc
            while reference.parent is not None and not reference.parent.is_inclusive_ancestor_of(ec):
                reference = reference.parent
            assert reference.parent is not None
            new_node, new_offset = reference.parent, reference.index() + 1

        if isinstance(first_partial, Text):
            fragment.append_child(Text(first_partial.data[so:]))
            first_partial.data = first_partial.data[:so]
        elif isinstance(first_partial, Element):
            clone = first_partial.clone()
            fragment.append_child(clone)
            clone.append_child(Range(sc, so, first_partial, first_partial.length()).extract_contents())

        for child in contained:
            fragment.append_child(child)

        if isinstance(last_partial, Text):
            fragment.append_child(Text(last_partial.data[:eo]))
            last_partial.data = last_partial.data[eo:]
        elif isinstance(last_partial, Element):
            clone = last_partial.clone()
            fragment.append_child(clone)
            clone.append_child(Range(last_partial, 0, ec, eo).extract_contents())

        self.start_container = self.end_container = new_node
        self.start_offset = self.end_offset = new_offset
        return fragment

    def insert_node(self, node: Node) -> None:
        """Insert *node* at the range start, splitting a text container if needed."""
        sc, so = self.start_container, self.start_offset
        if isinstance(sc, Text):
            parent = sc.parent
            if parent is None:
                msg = "Cannot insert into a detached text leaf"
                raise HierarchyRequestError(msg)
            if so == 0:
                reference: Node | None = sc
            elif so >= len(sc.data):
                reference = sc.next_sibling
            else:
                reference = sc.split_text(so)
        else:
            assert isinstance(sc, Element)
            parent = sc
            reference = sc.children[so] if so < len(sc.children) else None

        if isinstance(node, DocumentFragment):
            parent.insert_before(node, reference)
            return
        parent.insert_before(node, reference)
        self.select_node(node)

    def surround_contents(self, new_parent: Element) -> None:
        """Wrap the range's content in *new_parent*.

        Raises InvalidStateError when the range partially selects an element,
        which is the case the extract-and-reinsert path exists for.
        """
        self.check()
        if isinstance(new_parent, (Document, DocumentFragment)):
            msg = f"{new_parent!r} cannot wrap content"
            raise HierarchyRequestError(msg)
        if not (self.start_container is self.end_container and isinstance(self.start_container, Text)):
            first_partial, last_partial = self._partially_contained()
            if isinstance(first_partial, Element) or isinstance(last_partial, Element):
                msg = "Range partially selects a non-text node"
                raise InvalidStateError(msg)

        contents = self.extract_contents()
        for child in list(new_parent.children):
            new_parent.remove_child(child)
        self.insert_node(new_parent)
        new_parent.append_child(contents)
