"""Shared fakes for gateway, store and pipeline tests."""

from typing import Any, Callable, Iterable, Optional

import pytest

from broadway_ingest.config.settings import Settings
from broadway_ingest.crawlers import (
    BaseProvider,
    FetchGateway,
    GatewayState,
    RateLimitTiers,
    RetryPolicy,
)
from broadway_ingest.data_management.schemas import (
    ContentFormat,
    FetchRequest,
    FetchResult,
    ProviderKind,
)


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedProvider(BaseProvider):
    """Provider that replays a list of outcomes.

    Each outcome is an exception to raise, a string body to return, or an
    async callable taking the request. Once the script runs out the
    provider keeps returning ``default_body``.
    """

    def __init__(
        self,
        kind: ProviderKind,
        outcomes: Optional[Iterable[Any]] = None,
        configured: bool = True,
        content_format: ContentFormat = ContentFormat.MARKDOWN,
        default_body: str = "# Review\n\nA full review body.",
    ) -> None:
        self.kind = kind
        self.content_format = content_format
        super().__init__()
        self.outcomes = list(outcomes or [])
        self.configured = configured
        self.default_body = default_body
        self.calls = 0
        self.requests: list[FetchRequest] = []

    def is_configured(self) -> bool:
        return self.configured

    async def fetch(self, request: FetchRequest) -> FetchResult:
        self.calls += 1
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default_body
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome(request)
        return self._result(request, outcome, 200)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        brightdata_api_token=None,
        scrapingbee_api_key=None,
        gemini_api_key=None,
        openai_api_key=None,
        anthropic_api_key=None,
        disabled_providers="",
        render_required_domains="broadwayworld.com",
        guardian_override_subjects="",
    )


@pytest.fixture
def make_gateway(clock: FakeClock, test_settings: Settings) -> Callable[..., FetchGateway]:
    """Build a FetchGateway over scripted providers with a fake clock."""

    def _make(
        brightdata: Optional[ScriptedProvider] = None,
        scrapingbee: Optional[ScriptedProvider] = None,
        playwright: Optional[ScriptedProvider] = None,
        policy: Optional[RetryPolicy] = None,
        config: Optional[Settings] = None,
        cooldown_seconds: float = 300.0,
    ) -> FetchGateway:
        providers = {
            ProviderKind.BRIGHTDATA: brightdata or ScriptedProvider(ProviderKind.BRIGHTDATA),
            ProviderKind.SCRAPINGBEE: scrapingbee or ScriptedProvider(ProviderKind.SCRAPINGBEE),
            ProviderKind.PLAYWRIGHT: playwright
            or ScriptedProvider(ProviderKind.PLAYWRIGHT, content_format=ContentFormat.HTML),
        }
        state = GatewayState(
            tiers=RateLimitTiers(),
            cooldown_seconds=cooldown_seconds,
            clock=clock,
        )
        return FetchGateway(
            providers=providers,
            state=state,
            retry_policy=policy or RetryPolicy(max_attempts=4, delays=(30.0, 60.0, 120.0)),
            config=config or test_settings,
            sleep=clock.sleep,
        )

    return _make


@pytest.fixture
def scripted() -> type[ScriptedProvider]:
    """The ScriptedProvider class, for tests that build their own providers."""
    return ScriptedProvider
