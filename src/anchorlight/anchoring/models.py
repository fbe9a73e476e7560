"""Data models for anchoring.

Fragments are the durable, persisted description of a highlight (pydantic,
immutable once captured). Everything else here is transient: references
into the live tree that are only meaningful while their nodes stay attached,
and the frozen result dataclasses the engine returns instead of raising.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from anchorlight.dom.range import Range
from anchorlight.dom.tree import Element

if TYPE_CHECKING:
    from anchorlight.dom.layout import Rect
    from anchorlight.dom.tree import Node, Text

T = TypeVar("T")

MARKER_TAG = "span"
MARKER_CLASS = "anchorlight-marker"
HIGHLIGHT_ID_ATTR = "data-highlight-id"

_BASE36 = string.digits + string.ascii_lowercase


def generate_fragment_id(now_ms: int | None = None) -> str:
    """Return ``highlight_<epoch ms>_<9 random base36 chars>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"highlight_{now_ms}_{suffix}"


# ---------------------------------------------------------------------------
# Persisted
# ---------------------------------------------------------------------------
class Position(BaseModel):
    """Document-relative rectangle recorded at capture time."""

    model_config = ConfigDict(frozen=True)

    top: float
    left: float
    width: float = 0.0
    height: float = 0.0

    @classmethod
    def from_rect(cls, rect: Rect) -> Position:
        return cls(top=rect.top, left=rect.left, width=rect.width, height=rect.height)


class Fragment(BaseModel):
    """A captured highlight.

    Attributes:
        id: Stable identifier, also written to the marker's data attribute.
        text: The exact selected text.
        context_text: Text around the selection, used to disambiguate repeats.
        approx_position: Where the selection was on the page when captured.
        captured_at: Capture time (UTC).
        url: Page the fragment belongs to.
        title: Page title at capture time.
        domain: Host of ``url``.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=generate_fragment_id)
    text: str = Field(min_length=1, max_length=1000)
    context_text: str | None = Field(default=None, max_length=250)
    approx_position: Position | None = None
    captured_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    url: str = ""
    title: str = ""
    domain: str = ""


# ---------------------------------------------------------------------------
# Transient references into the live tree
# ---------------------------------------------------------------------------
@dataclass
class RangeDescriptor:
    """Live range endpoints captured with a selection. Never persisted."""

    start_container: Node
    start_offset: int
    end_container: Node
    end_offset: int

    @classmethod
    def from_range(cls, range_: Range) -> RangeDescriptor:
        return cls(
            range_.start_container,
            range_.start_offset,
            range_.end_container,
            range_.end_offset,
        )

    def to_range(self) -> Range:
        return Range(self.start_container, self.start_offset, self.end_container, self.end_offset)


@dataclass
class Anchor:
    """A located occurrence: ``leaf.data[offset_in_leaf:offset_in_leaf + length]``."""

    leaf: Text
    offset_in_leaf: int
    length: int

    def to_range(self) -> Range:
        return Range.in_text(self.leaf, self.offset_in_leaf, self.length)


@dataclass
class Candidate:
    """A leaf containing the fragment text, with the first match index."""

    leaf: Text
    match_index: int

    def anchor(self, length: int) -> Anchor:
        return Anchor(self.leaf, self.match_index, length)


@dataclass
class CacheEntry(Generic[T]):
    key: str
    value: T
    timestamp: float  # ms


@dataclass
class PendingSelection:
    """The capture awaiting a save: the fragment plus its live range."""

    fragment: Fragment
    descriptor: RangeDescriptor


def create_marker(fragment_id: str) -> Element:
    return Element(MARKER_TAG, {"class": MARKER_CLASS, HIGHLIGHT_ID_ATTR: fragment_id})


def is_marker(node: Node, fragment_id: str | None = None) -> bool:
    if not isinstance(node, Element) or not node.has_class(MARKER_CLASS):
        return False
    return fragment_id is None or node.get_attribute(HIGHLIGHT_ID_ATTR) == fragment_id


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class MaterializeState(StrEnum):
    """Which step of the marking fallback chain produced the marker."""

    REPLAY = "replay"
    EXTRACT = "extract"
    REMARK = "remark"
    FAILED = "failed"


@dataclass(frozen=True)
class MaterializeResult:
    """Outcome of marking one fragment.

    Attributes:
        success: Whether a marker is now in the tree.
        fragment_id: The fragment that was marked.
        state: The fallback step that succeeded, or FAILED.
        marker: The marker element (if successful).
        error: Error code if marking failed.
    """

    success: bool
    fragment_id: str
    state: MaterializeState
    marker: Element | None = None
    error: str | None = None


@dataclass(frozen=True)
class SaveResult:
    """Outcome of persisting and marking the pending selection.

    Attributes:
        success: Whether the fragment was stored.
        fragment: The stored fragment.
        materialized: Marking outcome (None if the store failed).
        error: Error code if the save failed.
    """

    success: bool
    fragment: Fragment | None = None
    materialized: MaterializeResult | None = None
    error: str | None = None


@dataclass(frozen=True)
class SummaryResult:
    """Outcome of summarising a fragment."""

    success: bool
    summary: str | None = None
    cached: bool = False
    error: str | None = None


@dataclass(frozen=True)
class DeepLinkResult:
    """Outcome of opening a deep link.

    Attributes:
        success: Whether the page was scrolled (exactly or approximately).
        text: The decoded highlight text.
        approximate: True when the text was not found and ``pos`` was used.
        scroll_top: The scroll offset applied.
        rect: The match rectangle after the scroll settled.
        attempts: How many lookups were made.
        error: Error code if nothing could be scrolled to.
    """

    success: bool
    text: str | None = None
    approximate: bool = False
    scroll_top: float | None = None
    rect: Rect | None = None
    attempts: int = 0
    error: str | None = None


@dataclass(frozen=True)
class BatchReport(Generic[T]):
    """Summary of a chunked batch run."""

    processed: int
    failed: int
    chunks: int
    yields: int
    results: list[T] = field(default_factory=list)


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading fragments from the store."""

    success: bool
    count: int = 0
    error: str | None = None
