"""Summariser factory.

Builds the Claude summariser from configuration when an API key is set.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from anchorlight.config import get_settings

if TYPE_CHECKING:
    from anchorlight.config import Settings
    from anchorlight.summary import Summariser

logger = logging.getLogger(__name__)


def get_summariser(settings: Settings | None = None) -> Summariser | None:
    """Get the summariser configured in ``settings.llm``.

    Returns:
        A ClaudeSummariser, or None when LLM__API_KEY is not set.
    """
    settings = settings or get_settings()
    if not settings.llm.api_key.get_secret_value():
        logger.debug("LLM__API_KEY not set, summaries disabled")
        return None

    from anchorlight.llm.client import ClaudeSummariser  # noqa: PLC0415

    logger.info("Summaries enabled with model %s", settings.llm.model)
    return ClaudeSummariser.from_config(settings.llm)
