"""Head/tail windowing of long text to fit a character budget."""

from __future__ import annotations

from pydantic import BaseModel

TRUNCATION_MARKER = "\n\n... [middle section truncated - {omitted} characters omitted] ...\n\n"


class TruncatedText(BaseModel):
    """Text prepared for a prompt, plus whether its middle was dropped."""

    text: str
    truncated: bool
    original_length: int
    omitted: int = 0


def truncate_middle(content: str, budget: int) -> TruncatedText:
    """Keep the first and last ``budget // 2`` characters of ``content``.

    Content within budget is returned untouched.
    """
    length = len(content)
    if length <= budget:
        return TruncatedText(text=content, truncated=False, original_length=length)

    half = budget // 2
    omitted = length - 2 * half
    head = content[:half]
    tail = content[length - half :]
    return TruncatedText(
        text=head + TRUNCATION_MARKER.format(omitted=omitted) + tail,
        truncated=True,
        original_length=length,
        omitted=omitted,
    )
