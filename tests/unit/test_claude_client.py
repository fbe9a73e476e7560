"""Tests for the Claude-backed summariser."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from anthropic.types import TextBlock
from pydantic import SecretStr

from anchorlight.config import LlmConfig
from anchorlight.llm.client import ClaudeSummariser
from anchorlight.llm.prompt import SYSTEM_PROMPT, build_user_prompt
from anchorlight.summary import SummaryContext


@pytest.fixture
def context() -> SummaryContext:
    """Sample page context for testing."""
    return SummaryContext(
        url="https://example.com/foxes",
        title="All about foxes",
        domain="example.com",
        context_text="The quick brown fox jumps over the lazy dog...",
    )


class TestClaudeSummariser:
    """Tests for ClaudeSummariser construction."""

    def test_init_with_api_key(self) -> None:
        """Summariser initializes with API key."""
        summariser = ClaudeSummariser(api_key="test-key")
        assert summariser.api_key == "test-key"

    def test_init_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Summariser reads API key from environment."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        summariser = ClaudeSummariser()
        assert summariser.api_key == "env-key"

    def test_init_no_key_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Missing API key raises ValueError."""
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError, match="API key"):
            ClaudeSummariser()

    def test_from_config(self) -> None:
        """Model settings come from LlmConfig."""
        config = LlmConfig(api_key=SecretStr("cfg-key"), model="claude-test", max_tokens=99)
        summariser = ClaudeSummariser.from_config(config)
        assert summariser.api_key == "cfg-key"
        assert summariser.model == "claude-test"
        assert summariser.max_tokens == 99


class TestSummarise:
    """Tests for requesting summaries."""

    @pytest.fixture
    def mock_create(self):
        """Mock the async client's messages.create."""
        with patch("anchorlight.llm.client.anthropic.AsyncAnthropic") as mock_client:
            create = AsyncMock()
            mock_client.return_value.messages.create = create
            yield create

    @pytest.mark.asyncio
    async def test_returns_stripped_text(
        self, context: SummaryContext, mock_create: AsyncMock
    ) -> None:
        """summarise returns the first text block, stripped."""
        mock_create.return_value = MagicMock(
            content=[TextBlock(type="text", text="  Foxes are quick.  ")]
        )

        summariser = ClaudeSummariser(api_key="test-key")
        summary = await summariser.summarise("quick brown fox", context)

        assert summary == "Foxes are quick."

    @pytest.mark.asyncio
    async def test_sends_prompt_and_settings(
        self, context: SummaryContext, mock_create: AsyncMock
    ) -> None:
        """The request carries the system prompt, model settings and page context."""
        mock_create.return_value = MagicMock(content=[TextBlock(type="text", text="ok")])

        summariser = ClaudeSummariser(api_key="test-key", model="claude-test", temperature=0.2)
        await summariser.summarise("quick brown fox", context)

        kwargs = mock_create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["temperature"] == 0.2
        assert kwargs["system"] == SYSTEM_PROMPT
        assert kwargs["messages"] == [
            {"role": "user", "content": build_user_prompt("quick brown fox", context)}
        ]

    @pytest.mark.asyncio
    async def test_empty_response_raises(
        self, context: SummaryContext, mock_create: AsyncMock
    ) -> None:
        """An empty content list raises ValueError."""
        mock_create.return_value = MagicMock(content=[])

        summariser = ClaudeSummariser(api_key="test-key")
        with pytest.raises(ValueError, match="Empty response"):
            await summariser.summarise("x", context)

    @pytest.mark.asyncio
    async def test_non_text_block_raises(
        self, context: SummaryContext, mock_create: AsyncMock
    ) -> None:
        """A non-text first block raises ValueError."""
        mock_create.return_value = MagicMock(content=[MagicMock(type="tool_use")])

        summariser = ClaudeSummariser(api_key="test-key")
        with pytest.raises(ValueError, match="Unexpected response type"):
            await summariser.summarise("x", context)


class TestPrompt:
    """Tests for prompt assembly."""

    def test_includes_page_metadata(self, context: SummaryContext) -> None:
        prompt = build_user_prompt("quick brown fox", context)
        assert 'Highlight: "quick brown fox"' in prompt
        assert "Page title: All about foxes" in prompt
        assert "Domain: example.com" in prompt
        assert "Surrounding text: The quick brown fox" in prompt

    def test_omits_empty_metadata(self) -> None:
        prompt = build_user_prompt("x", SummaryContext())
        assert "Page title" not in prompt
        assert "Surrounding text" not in prompt
