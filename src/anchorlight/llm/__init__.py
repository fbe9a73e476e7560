"""Claude-backed summaries for highlights."""

from anchorlight.llm.client import ClaudeSummariser
from anchorlight.llm.factory import get_summariser

__all__ = ["ClaudeSummariser", "get_summariser"]
