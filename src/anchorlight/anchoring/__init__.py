"""Text anchoring: locate stored fragments in a document and mark them.

Usage:
    from anchorlight.anchoring.engine import HighlightEngine
    from anchorlight.dom import parse_html
    from anchorlight.store import MemoryFragmentStore

    engine = HighlightEngine(parse_html(markup), MemoryFragmentStore(), page_url=url)
    engine.capture_selection(selection_range)
    result = await engine.save_pending()
"""

from anchorlight.anchoring.errors import (
    AnchorError,
    CollaboratorError,
    NodeDetachedError,
    RangeInvalidError,
    TextNotFoundError,
)
from anchorlight.anchoring.models import (
    Anchor,
    BatchReport,
    Candidate,
    DeepLinkResult,
    Fragment,
    LoadResult,
    MaterializeResult,
    MaterializeState,
    Position,
    RangeDescriptor,
    SaveResult,
    SummaryResult,
)

__all__ = [
    "Anchor",
    "AnchorError",
    "BatchReport",
    "Candidate",
    "CollaboratorError",
    "DeepLinkResult",
    "Fragment",
    "LoadResult",
    "MaterializeResult",
    "MaterializeState",
    "NodeDetachedError",
    "Position",
    "RangeDescriptor",
    "RangeInvalidError",
    "SaveResult",
    "SummaryResult",
    "TextNotFoundError",
]
