"""Tests for SemanticClassifier.

OpenAI and Anthropic run through their SDKs over httpx.MockTransport;
Gemini is an injected mock of the ``google.generativeai`` module.

Tests cover:
- Response parsing (fences, prose, strict schema)
- Stricter prompt after an unparseable answer
- Backoff retries on transient failures, no retry on terminal ones
- Provider fallback and exhaustion
- Rate-limited providers skipped
"""

import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError

from broadway_ingest.llm import (
    LLMCallError,
    LLMProvider,
    RateLimiter,
    SemanticClassifier,
    SemanticVerdict,
    TransientLLMError,
    extract_json_object,
    to_llm_error,
)

REVIEW = "The Outsiders is a bruising, tender new musical with a staggering rumble."


def openai_body(content: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1712800000,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "finish_reason": "stop",
                "message": {"role": "assistant", "content": content},
            }
        ],
    }


def anthropic_body(content: str) -> dict:
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "model": "claude-3-5-haiku-latest",
        "content": [{"type": "text", "text": content}],
        "stop_reason": "end_turn",
        "usage": {"input_tokens": 10, "output_tokens": 10},
    }


class Router:
    """Mock transport handler that replays responses per provider host."""

    def __init__(self, **responses) -> None:
        self.responses = {host: list(items) for host, items in responses.items()}
        self.requests: list[httpx.Request] = []

    def hits(self, fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if fragment in r.url.host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for fragment, items in self.responses.items():
            if fragment in request.url.host:
                item = items.pop(0) if len(items) > 1 else items[0]
                if isinstance(item, int):
                    return httpx.Response(item, json={"error": {"message": f"HTTP {item}"}})
                return httpx.Response(200, json=item)
        return httpx.Response(404, json={"error": {"message": "unknown host"}})


def fake_genai(*outcomes) -> MagicMock:
    """Stand-in for the google.generativeai module replaying model outcomes."""
    model = MagicMock()
    model.generate_content_async = AsyncMock(
        side_effect=[o if isinstance(o, Exception) else MagicMock(text=o) for o in outcomes]
    )
    genai = MagicMock()
    genai.GenerativeModel.return_value = model
    return genai


def gemini_model(genai: MagicMock) -> MagicMock:
    return genai.GenerativeModel.return_value


def make_classifier(
    test_settings,
    clock,
    router: Router = None,
    gemini: MagicMock = None,
    rate_limiters=None,
    **keys,
) -> SemanticClassifier:
    config = test_settings.model_copy(update=keys)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(router or Router()))
    return SemanticClassifier(
        config=config,
        gemini_client=gemini,
        openai_client=openai.AsyncOpenAI(
            api_key=keys.get("openai_api_key") or "unset",
            http_client=http_client,
            max_retries=0,
        ),
        anthropic_client=anthropic.AsyncAnthropic(
            api_key=keys.get("anthropic_api_key") or "unset",
            http_client=http_client,
            max_retries=0,
        ),
        rate_limiters=rate_limiters,
        sleep=clock.sleep,
    )


def unavailable() -> google_exceptions.ServiceUnavailable:
    return google_exceptions.ServiceUnavailable("model overloaded")


# ── Parsing Tests ────────────────────────────────────────────────────────


class TestParsing:
    def test_plain_json(self) -> None:
        assert extract_json_object('{"relevant": true, "label": "mixed"}') == {
            "relevant": True,
            "label": "mixed",
        }

    def test_fenced_json(self) -> None:
        text = 'Sure!\n```json\n{"relevant": false, "label": null}\n```'
        assert extract_json_object(text) == {"relevant": False, "label": None}

    def test_json_inside_prose(self) -> None:
        assert extract_json_object('Answer: {"relevant": true} hope that helps')["relevant"] is True

    @pytest.mark.parametrize("text", ["[1, 2]", "no json here", ""])
    def test_invalid(self, text) -> None:
        with pytest.raises(ValueError):
            extract_json_object(text)

    def test_verdict_normalizes_label(self) -> None:
        assert SemanticVerdict(relevant=True, label=" Positive ").label == "positive"

    @pytest.mark.parametrize(
        "payload",
        [{"relevant": "yes"}, {"relevant": 1}, {"relevant": True, "label": "great"}],
    )
    def test_verdict_rejects_loose_values(self, payload) -> None:
        with pytest.raises(ValidationError):
            SemanticVerdict(**payload)


class TestErrorMapping:
    @pytest.mark.parametrize(
        "error",
        [
            google_exceptions.ServiceUnavailable("down"),
            google_exceptions.ResourceExhausted("quota"),
            google_exceptions.DeadlineExceeded("slow"),
        ],
    )
    def test_transient_google_errors(self, error) -> None:
        assert isinstance(to_llm_error(LLMProvider.GEMINI, error), TransientLLMError)

    def test_permission_denied_is_terminal(self) -> None:
        mapped = to_llm_error(LLMProvider.GEMINI, google_exceptions.PermissionDenied("bad key"))
        assert isinstance(mapped, LLMCallError)
        assert not isinstance(mapped, TransientLLMError)
        assert "PermissionDenied" in str(mapped)


# ── Classifier Tests ─────────────────────────────────────────────────────


class TestSemanticClassifier:
    @pytest.mark.asyncio
    async def test_disabled_without_keys(self, test_settings, clock) -> None:
        router = Router()
        classifier = make_classifier(test_settings, clock, router)
        assert classifier.enabled is False
        assert await classifier.classify(REVIEW, "The Outsiders") is None
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_gemini_answer(self, test_settings, clock) -> None:
        genai = fake_genai('{"relevant": true, "label": "positive"}')
        router = Router()
        classifier = make_classifier(
            test_settings, clock, router, gemini=genai, gemini_api_key="g-key", openai_api_key="sk-test"
        )

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict == SemanticVerdict(relevant=True, label="positive", provider=LLMProvider.GEMINI)
        assert genai.GenerativeModel.call_args.args[0] == test_settings.gemini_model
        prompt = gemini_model(genai).generate_content_async.await_args.args[0]
        assert '"The Outsiders"' in prompt
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_openai_fenced_answer(self, test_settings, clock) -> None:
        router = Router(openai=[openai_body('```json\n{"relevant": true, "label": "Positive"}\n```')])
        classifier = make_classifier(test_settings, clock, router, openai_api_key="sk-test")

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict == SemanticVerdict(relevant=True, label="positive", provider=LLMProvider.OPENAI)
        request = router.requests[0]
        assert request.headers["authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == test_settings.openai_model
        assert '"The Outsiders"' in body["messages"][0]["content"]
        assert REVIEW in body["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_strict_prompt_after_bad_json(self, test_settings, clock) -> None:
        router = Router(
            openai=[
                openai_body("I think it is relevant and positive."),
                openai_body('{"relevant": false, "label": null}'),
            ]
        )
        classifier = make_classifier(test_settings, clock, router, openai_api_key="sk-test")

        verdict = await classifier.classify(REVIEW, "Hamilton")

        assert verdict.relevant is False
        prompts = [json.loads(r.content)["messages"][0]["content"] for r in router.requests]
        assert "You MUST respond with ONLY a JSON object" not in prompts[0]
        assert "You MUST respond with ONLY a JSON object" in prompts[1]
        assert clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_rate_limit_retried_with_backoff(self, test_settings, clock) -> None:
        router = Router(openai=[429, openai_body('{"relevant": true, "label": "mixed"}')])
        classifier = make_classifier(test_settings, clock, router, openai_api_key="sk-test")

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict.provider is LLMProvider.OPENAI
        assert len(router.hits("openai")) == 2
        assert clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_transient_failures_back_off_then_fall_back(self, test_settings, clock) -> None:
        genai = fake_genai(unavailable(), unavailable(), unavailable())
        router = Router(openai=[openai_body('{"relevant": true, "label": "mixed"}')])
        classifier = make_classifier(
            test_settings, clock, router, gemini=genai, gemini_api_key="g-key", openai_api_key="sk-test"
        )

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict.provider is LLMProvider.OPENAI
        assert gemini_model(genai).generate_content_async.await_count == 3
        assert clock.sleeps == [2.0, 5.0]

    @pytest.mark.asyncio
    async def test_auth_failure_falls_back_without_retry(self, test_settings, clock) -> None:
        router = Router(
            openai=[401],
            anthropic=[anthropic_body('{"relevant": true, "label": "neutral"}')],
        )
        classifier = make_classifier(
            test_settings, clock, router, openai_api_key="sk-bad", anthropic_api_key="a-key"
        )

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict.provider is LLMProvider.ANTHROPIC
        assert len(router.hits("openai")) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_anthropic_request_shape(self, test_settings, clock) -> None:
        router = Router(anthropic=[anthropic_body('{"relevant": true, "label": "enthusiastic"}')])
        classifier = make_classifier(test_settings, clock, router, anthropic_api_key="a-key")

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict.label == "enthusiastic"
        request = router.requests[0]
        assert request.headers["x-api-key"] == "a-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["max_tokens"] == 256
        assert body["model"] == test_settings.anthropic_model

    @pytest.mark.asyncio
    async def test_none_when_all_exhausted(self, test_settings, clock) -> None:
        genai = fake_genai(unavailable(), unavailable(), unavailable())
        router = Router(openai=[openai_body('{"relevant": "yes"}')])
        classifier = make_classifier(
            test_settings, clock, router, gemini=genai, gemini_api_key="g-key", openai_api_key="sk-test"
        )

        assert await classifier.classify(REVIEW, "The Outsiders") is None
        assert gemini_model(genai).generate_content_async.await_count == 3
        assert len(router.hits("openai")) == 3

    @pytest.mark.asyncio
    async def test_throttled_provider_skipped(self, test_settings, clock) -> None:
        limiter = RateLimiter(max_rpm=1, max_tpm=1_000_000, name="gemini", clock=clock)
        assert limiter.can_proceed(1)

        genai = fake_genai('{"relevant": true, "label": "positive"}')
        router = Router(openai=[openai_body('{"relevant": true, "label": "neutral"}')])
        classifier = make_classifier(
            test_settings,
            clock,
            router,
            gemini=genai,
            rate_limiters={LLMProvider.GEMINI: limiter},
            gemini_api_key="g-key",
            openai_api_key="sk-test",
        )

        verdict = await classifier.classify(REVIEW, "The Outsiders")

        assert verdict.provider is LLMProvider.OPENAI
        gemini_model(genai).generate_content_async.assert_not_awaited()
        assert clock.sleeps == []

    def test_prompt_text_truncated(self, test_settings, clock) -> None:
        classifier = make_classifier(test_settings, clock)
        prompt = classifier.build_prompt("x" * 10_000, "Wicked")
        assert "x" * 6000 in prompt
        assert "x" * 6001 not in prompt
