"""Prompt assembly for highlight summaries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, TypedDict

if TYPE_CHECKING:
    from anchorlight.summary import SummaryContext


SYSTEM_PROMPT = (
    "You write concise summaries of passages a reader has highlighted on a web page. "
    "Reply with two or three sentences that capture the key point of the highlight "
    "and how it relates to the page it came from. Do not add a preamble."
)


class MessageDict(TypedDict):
    """Message format compatible with Claude API."""

    role: Literal["user", "assistant"]
    content: str


def build_user_prompt(text: str, context: SummaryContext) -> str:
    """Render the highlight and its page metadata as the user turn.

    Lines for empty metadata are left out.
    """
    lines = [f'Highlight: "{text}"']
    if context.title:
        lines.append(f"Page title: {context.title}")
    if context.domain:
        lines.append(f"Domain: {context.domain}")
    if context.context_text:
        lines.append(f"Surrounding text: {context.context_text}")
    return "Summarise this highlighted text.\n\n" + "\n".join(lines)


def build_messages(text: str, context: SummaryContext) -> list[MessageDict]:
    return [{"role": "user", "content": build_user_prompt(text, context)}]
