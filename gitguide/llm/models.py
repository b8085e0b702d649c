"""Pydantic models for the LLM subsystem."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")


class FailureReason(str, Enum):
    """Why a single generation attempt did not produce text."""

    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"
    API_ERROR = "api_error"
    SAFETY_BLOCKED = "safety_blocked"
    RECITATION_BLOCKED = "recitation_blocked"
    TRUNCATED_OUTPUT = "truncated_output"
    STOPPED = "stopped"
    EMPTY_CANDIDATES = "empty_candidates"
    NO_TEXT = "no_text"
    MALFORMED_RESPONSE = "malformed_response"
    TRANSPORT_ERROR = "transport_error"


class LLMError(Exception):
    """One failed generation attempt, with enough context to report it."""

    def __init__(
        self,
        reason: FailureReason,
        model: str,
        detail: Any = None,
        retry_after: float | None = None,
    ) -> None:
        self.reason = reason
        self.model = model
        self.detail = detail
        self.retry_after = retry_after
        super().__init__(f"{model}: {reason.value}: {detail}")

    @property
    def is_rate_limit(self) -> bool:
        return self.reason is FailureReason.RATE_LIMITED


class Explanation(BaseModel):
    """Normalized result of any explanation request."""

    content: str
    code_snippets: list[str] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> Explanation:
        return cls(content=text, code_snippets=extract_code_snippets(text))


class FunctionSource(BaseModel):
    """A named function body submitted for explanation."""

    name: str
    code: str


class GenerationConfig(BaseModel):
    """``generationConfig`` block of a generateContent request."""

    model_config = ConfigDict(populate_by_name=True)

    temperature: float
    max_output_tokens: int = Field(alias="maxOutputTokens")
    top_k: int = Field(alias="topK")
    top_p: float = Field(alias="topP")
    response_mime_type: str | None = Field(default=None, alias="responseMimeType")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Part(BaseModel):
    text: str | None = None


class Content(BaseModel):
    parts: list[Part] = Field(default_factory=list)


class Candidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: Content | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")


class GenerateContentResponse(BaseModel):
    """Decoded generateContent response body; unknown fields are ignored."""

    candidates: list[Candidate] | None = None
    error: Any = None

    @property
    def text(self) -> str | None:
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0].text or None

    @property
    def finish_reason(self) -> str | None:
        if not self.candidates:
            return None
        return self.candidates[0].finish_reason


def extract_code_snippets(text: str) -> list[str]:
    """Return every triple-backtick fenced block in ``text``, fences included."""
    return _CODE_FENCE_RE.findall(text)
