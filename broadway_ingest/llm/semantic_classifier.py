"""LLM relevance/sentiment check for fetched documents.

Providers are tried in a fixed order (Gemini, OpenAI, Anthropic), skipping
any without an API key. Each provider call goes through its vendor SDK with
the SDK's own retries switched off; attempts are driven by
``run_with_retry`` with the configured backoff:

| Failure                                   | Treatment                        |
|-------------------------------------------|----------------------------------|
| 429, 5xx, timeout, connection error       | retried on the same provider     |
| unparseable or invalid JSON answer        | retried with the strict prompt   |
| other API error (auth, bad request, ...)  | next provider                    |
| provider's rate limiter exhausted         | next provider, nothing waited on |

The check can only ever demote a document: the pipeline treats
``relevant=False`` as invalid content and ignores the label otherwise.
"""

import asyncio
import functools
import json
import re
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import anthropic
import google.generativeai as genai
import openai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types.generation_types import BlockedPromptException
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator
from tenacity import RetryCallState

from broadway_ingest.config.prompts import (
    SEMANTIC_CHECK_PROMPT,
    SENTIMENT_LABELS,
    STRICT_SCHEMA_NOTE,
)
from broadway_ingest.config.settings import Settings, settings
from broadway_ingest.crawlers.retry_policy import RetryPolicy, run_with_retry
from broadway_ingest.llm.rate_limiter import RateLimiter, estimate_tokens

MAX_PROMPT_TEXT_CHARS = 6000
ANTHROPIC_MAX_TOKENS = 256

_TRANSIENT_GOOGLE_ERRORS = (
    google_exceptions.TooManyRequests,
    google_exceptions.ResourceExhausted,
    google_exceptions.InternalServerError,
    google_exceptions.BadGateway,
    google_exceptions.ServiceUnavailable,
    google_exceptions.GatewayTimeout,
    google_exceptions.DeadlineExceeded,
)


class LLMProvider(str, Enum):
    """Semantic classifier backends, in fallback order."""

    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class LLMCallError(Exception):
    """A provider gave no usable answer."""


class TransientLLMError(LLMCallError):
    """Rate limit, server error or network failure worth retrying."""


class InvalidAnswerError(LLMCallError):
    """The model answered, but not with a valid verdict."""


class ProviderThrottledError(LLMCallError):
    """The provider's local rate limiter has no capacity left."""


class SemanticVerdict(BaseModel):
    """Validated model answer."""

    relevant: bool = Field(..., description="Whether the text is about the target show")
    label: Optional[str] = Field(default=None, description="Sentiment label when relevant")
    provider: Optional[LLMProvider] = Field(default=None, description="Provider that answered")

    model_config = {"frozen": True}

    @field_validator("relevant", mode="before")
    @classmethod
    def _strict_bool(cls, value: Any) -> Any:
        if not isinstance(value, bool):
            raise ValueError("relevant must be a JSON boolean")
        return value

    @field_validator("label", mode="before")
    @classmethod
    def _known_label(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str) or value.strip().lower() not in SENTIMENT_LABELS:
            raise ValueError(f"label must be one of {', '.join(SENTIMENT_LABELS)}")
        return value.strip().lower()


def extract_json_object(response_text: str) -> dict[str, Any]:
    """
    Pull a JSON object out of a model response.

    Handles raw JSON, JSON in a markdown code block and JSON surrounded by
    prose.

    Raises:
        ValueError: If no JSON object can be decoded
    """
    text = response_text.strip()

    fence = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if fence:
        text = fence.group(1).strip()

    obj = re.search(r"\{[\s\S]*\}", text)
    if obj:
        text = obj.group(0)

    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def to_llm_error(provider: LLMProvider, error: Exception) -> LLMCallError:
    """Map a vendor SDK exception to a retryable or terminal LLMCallError."""
    message = f"{provider.value}: {type(error).__name__}: {error}"

    if isinstance(error, (openai.APIStatusError, anthropic.APIStatusError)):
        if error.status_code == 429 or error.status_code >= 500:
            return TransientLLMError(message)
        return LLMCallError(message)
    if isinstance(error, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return TransientLLMError(message)
    if isinstance(error, _TRANSIENT_GOOGLE_ERRORS):
        return TransientLLMError(message)
    return LLMCallError(message)


class SemanticClassifier:
    """
    Multi-provider LLM check with retries and fallback.

    SDK clients are created lazily from settings when not injected. The
    Gemini client is the ``google.generativeai`` module itself (configured
    with the API key), matching how the rest of the codebase injects it.

    Attributes:
        providers: Providers with configured keys, in fallback order
        retry_policy: Attempts and backoff per provider
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        gemini_client: Optional[Any] = None,
        openai_client: Optional[openai.AsyncOpenAI] = None,
        anthropic_client: Optional[anthropic.AsyncAnthropic] = None,
        rate_limiters: Optional[dict[LLMProvider, RateLimiter]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or settings
        self._gemini_client = gemini_client
        self._openai_client = openai_client
        self._anthropic_client = anthropic_client
        self._keys = {
            LLMProvider.GEMINI: self.config.gemini_api_key,
            LLMProvider.OPENAI: self.config.openai_api_key,
            LLMProvider.ANTHROPIC: self.config.anthropic_api_key,
        }
        self.providers = [kind for kind in LLMProvider if self._keys[kind]]
        self.rate_limiters = rate_limiters or {
            kind: RateLimiter(
                max_rpm=self.config.max_rpm, max_tpm=self.config.max_tpm, name=kind.value
            )
            for kind in self.providers
        }
        self.retry_policy = retry_policy or RetryPolicy.from_delays(self.config.llm_backoff_seconds)
        self._sleep = sleep
        self.logger = logger.bind(component="SemanticClassifier")

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    @property
    def gemini_client(self) -> Any:
        if self._gemini_client is None:
            genai.configure(api_key=self._keys[LLMProvider.GEMINI])
            self._gemini_client = genai
        return self._gemini_client

    @property
    def openai_client(self) -> openai.AsyncOpenAI:
        if self._openai_client is None:
            self._openai_client = openai.AsyncOpenAI(
                api_key=self._keys[LLMProvider.OPENAI],
                timeout=self.config.llm_timeout_seconds,
                max_retries=0,
            )
        return self._openai_client

    @property
    def anthropic_client(self) -> anthropic.AsyncAnthropic:
        if self._anthropic_client is None:
            self._anthropic_client = anthropic.AsyncAnthropic(
                api_key=self._keys[LLMProvider.ANTHROPIC],
                timeout=self.config.llm_timeout_seconds,
                max_retries=0,
            )
        return self._anthropic_client

    async def close(self) -> None:
        if self._openai_client is not None:
            await self._openai_client.close()
            self._openai_client = None
        if self._anthropic_client is not None:
            await self._anthropic_client.close()
            self._anthropic_client = None

    def build_prompt(self, text: str, subject_title: str, strict: bool = False) -> str:
        prompt = SEMANTIC_CHECK_PROMPT.format(
            subject_title=subject_title,
            text=text[:MAX_PROMPT_TEXT_CHARS],
        )
        return prompt + STRICT_SCHEMA_NOTE if strict else prompt

    async def classify(self, text: str, subject_title: str) -> Optional[SemanticVerdict]:
        """
        Ask the configured providers whether ``text`` is about ``subject_title``.

        Returns:
            The first valid verdict, or None once every provider is exhausted
            (no keys, throttled, API failures or unparseable answers)
        """
        for provider in self.providers:
            verdict = await self._classify_with(provider, text, subject_title)
            if verdict is not None:
                return verdict

        if self.providers:
            self.logger.warning(f"All LLM providers exhausted for '{subject_title}'")
        return None

    async def _classify_with(
        self,
        provider: LLMProvider,
        text: str,
        subject_title: str,
    ) -> Optional[SemanticVerdict]:
        limiter = self.rate_limiters.get(provider)
        strict = False

        async def attempt() -> SemanticVerdict:
            nonlocal strict
            prompt = self.build_prompt(text, subject_title, strict=strict)
            if limiter is not None and not limiter.can_proceed(estimate_tokens(prompt)):
                raise ProviderThrottledError(f"{provider.value} rate limiter exhausted")

            raw = await self._call(provider, prompt)
            try:
                payload = extract_json_object(raw)
                return SemanticVerdict(
                    relevant=payload.get("relevant"),
                    label=payload.get("label"),
                    provider=provider,
                )
            except (ValueError, ValidationError) as e:
                strict = True
                raise InvalidAnswerError(f"{provider.value} returned invalid JSON: {e}") from e

        try:
            verdict = await run_with_retry(
                attempt,
                self.retry_policy,
                retry_on=(TransientLLMError, InvalidAnswerError),
                sleep=self._sleep,
                on_retry=functools.partial(self._on_retry, provider),
            )
        except ProviderThrottledError:
            self.logger.info(f"{provider.value} throttled, skipping provider")
            return None
        except LLMCallError as e:
            self.logger.warning(f"{provider.value} gave no usable answer: {e}")
            return None

        self.logger.debug(
            f"{provider.value} verdict for '{subject_title}': "
            f"relevant={verdict.relevant} label={verdict.label}"
        )
        return verdict

    def _on_retry(self, provider: LLMProvider, retry_state: RetryCallState) -> None:
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            f"{provider.value} attempt {retry_state.attempt_number}/"
            f"{self.retry_policy.max_attempts} failed ({error}); retrying in {delay:.0f}s"
        )

    async def _call(self, provider: LLMProvider, prompt: str) -> str:
        """Send one prompt to ``provider`` and return the response text."""
        try:
            if provider is LLMProvider.GEMINI:
                return await self._call_gemini(prompt)
            if provider is LLMProvider.OPENAI:
                return await self._call_openai(prompt)
            return await self._call_anthropic(prompt)
        except (
            openai.APIError,
            anthropic.APIError,
            google_exceptions.GoogleAPIError,
            BlockedPromptException,
        ) as e:
            raise to_llm_error(provider, e) from e

    async def _call_gemini(self, prompt: str) -> str:
        model = self.gemini_client.GenerativeModel(
            self.config.gemini_model,
            generation_config={"temperature": 0.1},
        )
        response = await model.generate_content_async(prompt)
        try:
            return response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or empty
            raise InvalidAnswerError(f"gemini returned no text: {e}") from e

    async def _call_openai(self, prompt: str) -> str:
        response = await self.openai_client.chat.completions.create(
            model=self.config.openai_model,
            temperature=0.1,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.choices[0].message.content or ""

    async def _call_anthropic(self, prompt: str) -> str:
        response = await self.anthropic_client.messages.create(
            model=self.config.anthropic_model,
            max_tokens=ANTHROPIC_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")
