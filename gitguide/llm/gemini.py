"""Gemini generateContent client.

Uses the REST endpoint through httpx rather than an SDK: the retry logic
needs the raw status code, the ``Retry-After`` header and the candidate
``finishReason`` of every attempt.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import httpx
from pydantic import ValidationError

from gitguide.config.models import LLMSettings
from gitguide.errors import DiagramGenerationError, GitGuideError, RateLimitedError
from gitguide.llm.models import (
    Explanation,
    FailureReason,
    GenerateContentResponse,
    GenerationConfig,
    LLMError,
)
from gitguide.llm.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MESSAGE = """\
**Gemini API Rate Limit Exceeded**

**Free Tier Limits:**
- 15 requests per minute
- 1500 requests per day

**What to do:**
1. Wait 60 seconds and try again
2. Use AI features sparingly
3. Upgrade your API tier at [Google AI Studio](https://aistudio.google.com)

**Tip:** batch function explanations cover many functions with a single request."""

_FINISH_REASONS: dict[str, FailureReason] = {
    "SAFETY": FailureReason.SAFETY_BLOCKED,
    "RECITATION": FailureReason.RECITATION_BLOCKED,
    "MAX_TOKENS": FailureReason.TRUNCATED_OUTPUT,
}

_FAILURE_TEXT: dict[FailureReason, str] = {
    FailureReason.SAFETY_BLOCKED: "Content blocked by safety filters",
    FailureReason.RECITATION_BLOCKED: "Content blocked due to recitation",
    FailureReason.TRUNCATED_OUTPUT: "Response too long, truncated",
    FailureReason.EMPTY_CANDIDATES: "API returned empty candidates array - possible content filter",
    FailureReason.NO_TEXT: "No text in response",
}


def all_models_failed_message(models: Sequence[str], last: LLMError | None) -> str:
    """User-facing text for a call where every model and retry failed."""
    if last is None:
        error_text = "Unknown error"
    elif isinstance(last.detail, (dict, list)):
        error_text = json.dumps(last.detail, indent=2, default=str)
    else:
        error_text = str(last.detail or last.reason.value)

    return (
        "Unable to generate AI explanation.\n\n"
        "**All API models failed.** Please check:\n\n"
        "- Your API key is valid and active\n"
        "- You have an internet connection\n"
        "- The Gemini API is accessible from your location\n"
        "- Your API key has the proper permissions\n\n"
        f"**Models tried:** {', '.join(models)}\n\n"
        f"**Last error:** {error_text}\n\n"
        "Check your API key at: https://aistudio.google.com/app/apikey"
    )


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    if not math.isfinite(seconds):
        return None
    return max(seconds, 0.0)


def _error_body(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError:
        return response.text or {}


class GeminiClient:
    """Calls generateContent with model fallback, retries and backoff.

    ``generate`` never raises for API trouble: exhausting every model yields
    an Explanation whose content explains the failure. ``generate_structured``
    is the JSON-mode variant used for diagrams and does raise.
    """

    def __init__(
        self,
        api_key: str,
        settings: LLMSettings | None = None,
        rate_limiter: RateLimiter | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.settings = settings or LLMSettings()
        self._api_key = api_key
        self._rate_limiter = rate_limiter or RateLimiter(self.settings.min_call_interval)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.timeout)
        self._sleep = sleep

    async def __aenter__(self) -> GeminiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def generation_config(self) -> GenerationConfig:
        s = self.settings
        return GenerationConfig(
            temperature=s.temperature,
            max_output_tokens=s.max_output_tokens,
            top_k=s.top_k,
            top_p=s.top_p,
        )

    @property
    def diagram_generation_config(self) -> GenerationConfig:
        d = self.settings.diagram
        return GenerationConfig(
            temperature=d.temperature,
            max_output_tokens=d.max_output_tokens,
            top_k=d.top_k,
            top_p=d.top_p,
            response_mime_type="application/json",
        )

    async def generate(self, prompt: str) -> Explanation:
        """Generate an explanation, falling back through the configured models."""
        await self._rate_limiter.wait_turn()

        models = self.settings.models
        max_retries = self.settings.max_retries
        config = self.generation_config
        last: LLMError | None = None

        for model in models:
            for attempt in range(max_retries):
                if attempt > 0:
                    delay = 2**attempt * self.settings.backoff_base
                    logger.info(
                        "Retry attempt %d/%d for %s, waiting %.1fs",
                        attempt + 1,
                        max_retries,
                        model,
                        delay,
                    )
                    await self._sleep(delay)

                try:
                    text = await self._post(model, prompt, config)
                except LLMError as e:
                    last = e
                    logger.warning("Model %s attempt %d failed: %s", model, attempt + 1, e)
                    if e.is_rate_limit:
                        if attempt < max_retries - 1:
                            wait = self._rate_limit_wait(e, attempt)
                            logger.warning("Rate limited, waiting %.1fs before retry", wait)
                            await self._sleep(wait)
                            continue
                        break
                    if e.reason is FailureReason.TRANSPORT_ERROR:
                        continue
                    break

                logger.info("Generated with model %s", model)
                return Explanation.from_text(text)

        logger.error("All models failed. Last error: %s", last)
        if last is not None and last.is_rate_limit:
            return Explanation(content=RATE_LIMIT_MESSAGE)
        return Explanation(content=all_models_failed_message(models, last))

    async def generate_structured(self, prompt: str, parse: Callable[[str], T]) -> T:
        """Request JSON output and return ``parse(text)``.

        A failing ``parse`` counts as a failed attempt. A 429 waits and moves
        on to the next attempt, so total elapsed time can exceed what the
        attempt count alone suggests.
        """
        diagram = self.settings.diagram
        config = self.diagram_generation_config

        await self._rate_limiter.wait_turn()

        last: Exception | None = None
        for attempt in range(diagram.max_attempts):
            if attempt > 0:
                delay = 2**attempt * diagram.backoff_base
                logger.info(
                    "Retry attempt %d/%d for JSON generation, waiting %.1fs",
                    attempt + 1,
                    diagram.max_attempts,
                    delay,
                )
                await self._sleep(delay)

            try:
                text = await self._post(diagram.model, prompt, config)
                return parse(text)
            except LLMError as e:
                last = e
                logger.warning("JSON generation attempt %d failed: %s", attempt + 1, e)
                if e.is_rate_limit:
                    wait = self._rate_limit_wait(e, attempt)
                    logger.warning("Rate limited during JSON generation, waiting %.1fs", wait)
                    await self._sleep(wait)
            except (GitGuideError, ValueError) as e:
                last = e
                logger.warning("JSON generation attempt %d unusable: %s", attempt + 1, e)

        if isinstance(last, LLMError) and last.is_rate_limit:
            raise RateLimitedError(
                "Rate limit exceeded. Please wait a moment and try again."
            ) from last
        raise DiagramGenerationError(f"Failed to generate diagram: {last}") from last

    def _rate_limit_wait(self, error: LLMError, attempt: int) -> float:
        if error.retry_after is not None:
            return error.retry_after
        return 2 ** (attempt + 2) * self.settings.backoff_base

    async def _post(self, model: str, prompt: str, config: GenerationConfig) -> str:
        """Issue one generateContent request and return its text or raise LLMError."""
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": config.to_payload(),
        }
        logger.debug("Calling %s (prompt %d chars)", model, len(prompt))
        try:
            response = await self._client.post(
                f"{self.settings.endpoint}/{model}:generateContent",
                params={"key": self._api_key},
                json=body,
            )
        except httpx.HTTPError as e:
            raise LLMError(FailureReason.TRANSPORT_ERROR, model, str(e)) from e

        if response.status_code == 429:
            raise LLMError(
                FailureReason.RATE_LIMITED,
                model,
                _error_body(response),
                retry_after=_parse_retry_after(response),
            )
        if not response.is_success:
            raise LLMError(
                FailureReason.HTTP_ERROR,
                model,
                {"status": response.status_code, "body": _error_body(response)},
            )

        try:
            decoded = GenerateContentResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise LLMError(FailureReason.MALFORMED_RESPONSE, model, str(e)) from e

        if decoded.error:
            raise LLMError(FailureReason.API_ERROR, model, decoded.error)

        text = decoded.text
        if not text:
            reason = _classify_missing_text(decoded)
            detail = _FAILURE_TEXT.get(reason) or f"Generation stopped: {decoded.finish_reason}"
            raise LLMError(reason, model, detail)
        return text


def _classify_missing_text(decoded: GenerateContentResponse) -> FailureReason:
    finish = decoded.finish_reason
    if finish in _FINISH_REASONS:
        return _FINISH_REASONS[finish]
    if finish:
        return FailureReason.STOPPED
    if not decoded.candidates:
        return FailureReason.EMPTY_CANDIDATES
    return FailureReason.NO_TEXT
