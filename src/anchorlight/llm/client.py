"""Claude API client for highlight summaries."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, cast

import anthropic

from anchorlight.llm.prompt import SYSTEM_PROMPT, build_messages

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from anchorlight.config import LlmConfig
    from anchorlight.summary import SummaryContext


class ClaudeSummariser:
    """Summariser backed by the Claude API.

    Uses the async Anthropic client for non-blocking API calls.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 150,
        temperature: float = 0.8,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the summariser.

        Args:
            api_key: Anthropic API key. If not provided, reads from ANTHROPIC_API_KEY.
            model: Model identifier to use.
            max_tokens: Upper bound on summary length.
            temperature: Sampling temperature.
            timeout_seconds: Per-request timeout handed to the SDK.

        Raises:
            ValueError: If no API key is available.
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("API key required. Set ANTHROPIC_API_KEY or pass api_key.")

        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=timeout_seconds)

    @classmethod
    def from_config(cls, config: LlmConfig) -> ClaudeSummariser:
        return cls(
            api_key=config.api_key.get_secret_value() or None,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout_seconds=config.timeout_seconds,
        )

    async def summarise(self, text: str, context: SummaryContext) -> str:
        """Summarise a highlight.

        Args:
            text: The highlighted text.
            context: Page metadata for the highlight.

        Returns:
            The summary text.

        Raises:
            ValueError: If Claude returns an empty or non-text response.
        """
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=SYSTEM_PROMPT,
            messages=build_messages(text, context),
        )

        if not response.content:
            raise ValueError("Empty response from Claude API")

        first_block = response.content[0]
        if not isinstance(first_block, anthropic.types.TextBlock):
            raise ValueError(f"Unexpected response type: {first_block.type}")

        summary = cast("str", first_block.text).strip()
        logger.debug("Received %d-character summary from %s", len(summary), self.model)
        return summary
