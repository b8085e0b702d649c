"""Gemini client, request pacing and result models."""

from gitguide.llm.gemini import RATE_LIMIT_MESSAGE, GeminiClient, all_models_failed_message
from gitguide.llm.models import (
    Explanation,
    FailureReason,
    FunctionSource,
    GenerationConfig,
    LLMError,
    extract_code_snippets,
)
from gitguide.llm.rate_limiter import MIN_CALL_INTERVAL, RateLimiter

__all__ = [
    "MIN_CALL_INTERVAL",
    "RATE_LIMIT_MESSAGE",
    "Explanation",
    "FailureReason",
    "FunctionSource",
    "GeminiClient",
    "GenerationConfig",
    "LLMError",
    "RateLimiter",
    "all_models_failed_message",
    "extract_code_snippets",
]
