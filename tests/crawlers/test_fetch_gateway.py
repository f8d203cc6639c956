"""Tests for FetchGateway.

Tests cover:
- Provider chain ordering (priority, preference, render-required hosts, kill switch)
- Retry, rate-limit accounting and fallback
- Hard blocks, cooldown and the single probe call
- Concurrent requests sharing provider sessions
- Exhaustion and cancellation
"""

import asyncio

import httpx
import pytest

from broadway_ingest.config.settings import Settings
from broadway_ingest.crawlers import (
    Admission,
    AllProvidersExhausted,
    BrightDataProvider,
    ConfigurationError,
    FetchGateway,
    GatewayState,
    HardBlockedError,
    ProviderResponseError,
    ProviderUnavailableError,
    RateLimitedError,
    RateLimitTiers,
    RateTier,
    RetryPolicy,
)
from broadway_ingest.data_management.schemas import (
    ContentFormat,
    FetchRequest,
    FetchResult,
    ProviderKind,
)

BD = ProviderKind.BRIGHTDATA
SB = ProviderKind.SCRAPINGBEE
PW = ProviderKind.PLAYWRIGHT


def rate_limited(kind: ProviderKind) -> RateLimitedError:
    return RateLimitedError(f"{kind.value} rate limited", kind, 429)


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def request_() -> FetchRequest:
    return FetchRequest(url="https://www.nytimes.com/2024/04/11/theater/the-outsiders-review.html")


# ── Provider Chain Tests ─────────────────────────────────────────────────


class TestProviderChain:
    def test_priority_order_by_default(self, make_gateway, request_) -> None:
        gateway = make_gateway()
        assert gateway.provider_chain(request_) == [BD, SB, PW]

    def test_preferred_provider_goes_first(self, make_gateway) -> None:
        gateway = make_gateway()
        request = FetchRequest(url="https://example.com/review", prefer_provider=SB)
        assert gateway.provider_chain(request) == [SB, BD, PW]

    def test_render_required_domain_prefers_browser(self, make_gateway) -> None:
        gateway = make_gateway()
        request = FetchRequest(url="https://www.broadwayworld.com/article/review-roundup")
        assert gateway.provider_chain(request)[0] is PW

    def test_unconfigured_provider_left_out(self, make_gateway, scripted, request_) -> None:
        gateway = make_gateway(brightdata=scripted(BD, configured=False))
        assert gateway.provider_chain(request_) == [SB, PW]
        assert gateway.is_available(BD) is False

    def test_kill_switch_disables_provider(self, make_gateway, test_settings, request_) -> None:
        config = test_settings.model_copy(update={"disabled_providers": "scrapingbee"})
        gateway = make_gateway(config=config)
        assert gateway.provider_chain(request_) == [BD, PW]

    def test_missing_backend_is_configuration_error(self, scripted, test_settings) -> None:
        with pytest.raises(ConfigurationError):
            FetchGateway(providers={BD: scripted(BD)}, config=test_settings)


# ── Fetch Tests ──────────────────────────────────────────────────────────


class TestFetch:
    @pytest.mark.asyncio
    async def test_primary_success(self, make_gateway, scripted, request_) -> None:
        primary = scripted(BD, ["# The Outsiders\n\nA bruising, tender musical."])
        gateway = make_gateway(brightdata=primary)

        result = await gateway.fetch(request_)

        assert result.provider_used is BD
        assert result.attempts == 1
        assert "bruising" in result.content
        assert gateway.stats.successes[BD] == 1
        assert gateway.stats.fallbacks == 0

    @pytest.mark.asyncio
    async def test_rate_limit_then_success_retries_same_provider(
        self, make_gateway, scripted, clock, request_
    ) -> None:
        primary = scripted(BD, [rate_limited(BD), "# Body\n\ntext"])
        secondary = scripted(SB)
        gateway = make_gateway(brightdata=primary, scrapingbee=secondary)

        result = await gateway.fetch(request_)

        assert result.provider_used is BD
        assert result.attempts == 2
        assert primary.calls == 2
        assert secondary.calls == 0
        assert gateway.stats.rate_limits == 1
        assert gateway.stats.backoff_retries == 1
        assert clock.sleeps == [30.0]

    @pytest.mark.asyncio
    async def test_two_rate_limited_providers_fall_through(
        self, make_gateway, scripted, request_
    ) -> None:
        gateway = make_gateway(
            brightdata=scripted(BD, [rate_limited(BD)]),
            scrapingbee=scripted(SB, [rate_limited(SB)]),
            playwright=scripted(PW, ["<html><body>ok</body></html>"]),
            policy=RetryPolicy.single_attempt(),
        )

        result = await gateway.fetch(request_)

        assert result.provider_used is PW
        assert gateway.stats.rate_limits == 2
        assert gateway.stats.fallbacks == 2
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_every_rate_limit_is_counted_across_retries(
        self, make_gateway, scripted, request_
    ) -> None:
        gateway = make_gateway(
            brightdata=scripted(BD, [rate_limited(BD)] * 4),
            scrapingbee=scripted(SB, [rate_limited(SB)] * 4),
            playwright=scripted(PW, ["<html><body>ok</body></html>"]),
        )

        result = await gateway.fetch(request_)

        assert result.provider_used is PW
        assert gateway.stats.rate_limits == 8
        assert gateway.stats.backoff_retries == 6
        assert gateway.stats.calls[BD] == 4
        assert gateway.stats.calls[SB] == 4

    @pytest.mark.asyncio
    async def test_rate_limits_ratchet_the_call_delay(
        self, make_gateway, scripted, request_
    ) -> None:
        gateway = make_gateway(
            brightdata=scripted(BD, [rate_limited(BD)] * 2 + ["# ok\n\nbody"]),
        )
        await gateway.fetch(request_)

        assert gateway.state.tiers.tier_for(gateway.state.sessions[BD].rate_limit_count) is RateTier.CAUTIOUS
        assert gateway.state.current_delay(BD) == 12.0

    @pytest.mark.asyncio
    async def test_response_error_falls_through_without_retry(
        self, make_gateway, scripted, request_
    ) -> None:
        primary = scripted(BD, [ProviderResponseError("brightdata HTTP 404", BD, 404)])
        gateway = make_gateway(brightdata=primary)

        result = await gateway.fetch(request_)

        assert result.provider_used is SB
        assert primary.calls == 1
        assert gateway.stats.errors == 1
        assert gateway.state.is_down(BD) is False

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, make_gateway, scripted, request_) -> None:
        primary = scripted(BD, [ProviderUnavailableError("brightdata HTTP 503", BD, 503), "# ok\n\nbody"])
        gateway = make_gateway(brightdata=primary)

        result = await gateway.fetch(request_)

        assert result.provider_used is BD
        assert gateway.stats.rate_limits == 0
        assert gateway.stats.backoff_retries == 1

    @pytest.mark.asyncio
    async def test_redirect_loop_falls_through(self, make_gateway, request_) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

        primary = BrightDataProvider(
            api_token="tok", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        gateway = make_gateway(brightdata=primary)

        result = await gateway.fetch(request_)

        assert result.provider_used is SB
        assert gateway.stats.calls[BD] == 1
        assert gateway.stats.errors == 1
        assert gateway.state.is_down(BD) is False

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_through(self, make_gateway, scripted, request_) -> None:
        gateway = make_gateway(brightdata=scripted(BD, [RuntimeError("parser bug")]))

        result = await gateway.fetch(request_)

        assert result.provider_used is SB
        assert gateway.stats.errors == 1

    @pytest.mark.asyncio
    async def test_rate_limit_gate_spaces_calls(self, make_gateway, clock, request_) -> None:
        gateway = make_gateway()

        await gateway.fetch(request_)
        await gateway.fetch(request_)

        # Second call on the same provider waits the normal-tier delay
        assert clock.sleeps == [7.0]


# ── Hard Block and Cooldown Tests ────────────────────────────────────────


class TestHardBlockCooldown:
    @pytest.mark.asyncio
    async def test_hard_block_marks_down_and_falls_through(
        self, make_gateway, scripted, request_
    ) -> None:
        primary = scripted(BD, [HardBlockedError("brightdata HTTP 403", BD, 403)])
        gateway = make_gateway(brightdata=primary)

        result = await gateway.fetch(request_)

        assert result.provider_used is SB
        assert primary.calls == 1
        assert gateway.stats.hard_blocks == 1
        assert gateway.state.is_down(BD) is True

    @pytest.mark.asyncio
    async def test_down_provider_skipped_during_cooldown(
        self, make_gateway, scripted, clock, request_
    ) -> None:
        primary = scripted(BD, [HardBlockedError("blocked", BD, 403)])
        gateway = make_gateway(brightdata=primary)
        await gateway.fetch(request_)

        clock.advance(60)
        result = await gateway.fetch(request_)

        assert result.provider_used is SB
        assert primary.calls == 1

    @pytest.mark.asyncio
    async def test_probe_after_cooldown_restores_provider(
        self, make_gateway, scripted, clock, request_
    ) -> None:
        primary = scripted(BD, [HardBlockedError("blocked", BD, 403), "# back\n\nbody"])
        gateway = make_gateway(brightdata=primary)
        await gateway.fetch(request_)

        clock.advance(301)
        result = await gateway.fetch(request_)

        assert result.provider_used is BD
        assert gateway.state.is_down(BD) is False

    @pytest.mark.asyncio
    async def test_failed_probe_restarts_cooldown_without_retries(
        self, make_gateway, scripted, clock, request_
    ) -> None:
        primary = scripted(BD, [HardBlockedError("blocked", BD, 403), rate_limited(BD)])
        gateway = make_gateway(brightdata=primary)
        await gateway.fetch(request_)

        clock.advance(301)
        result = await gateway.fetch(request_)

        assert result.provider_used is SB
        assert primary.calls == 2  # one probe call, no retries
        assert gateway.state.is_down(BD) is True
        assert gateway.state.sessions[BD].retry_at == pytest.approx(clock.now + 300, abs=1)

    @pytest.mark.asyncio
    async def test_cancelled_probe_releases_slot(self, make_gateway, scripted, clock, request_) -> None:
        started = asyncio.Event()
        never = asyncio.Event()

        async def hang(request):
            started.set()
            await never.wait()

        primary = scripted(BD, [hang])
        gateway = make_gateway(
            brightdata=primary,
            scrapingbee=scripted(SB, configured=False),
            playwright=scripted(PW, configured=False),
        )
        await gateway.state.mark_down(BD, "blocked earlier")
        clock.advance(301)

        task = asyncio.create_task(gateway.fetch(request_))
        await started.wait()
        assert gateway.state.sessions[BD].probe_in_flight is True

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert gateway.state.sessions[BD].probe_in_flight is False

    @pytest.mark.asyncio
    async def test_unexpected_error_after_cooldown_restarts_it(
        self, make_gateway, scripted, clock, request_
    ) -> None:
        primary = scripted(BD, [RuntimeError("parser bug")])
        gateway = make_gateway(brightdata=primary)
        await gateway.state.mark_down(BD, "blocked earlier")
        clock.advance(301)

        result = await gateway.fetch(request_)

        session = gateway.state.sessions[BD]
        assert result.provider_used is SB
        assert session.probe_in_flight is False
        assert session.retry_at == pytest.approx(clock.now + 300, abs=1)

        clock.advance(10_000)
        assert await gateway.state.admit(BD) is Admission.PROBE


# ── Concurrency Tests ────────────────────────────────────────────────────


class FrozenSleeper:
    """Sleep that yields to other tasks without moving the clock."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)
        await asyncio.sleep(0)


def yielding(outcome):
    """Provider outcome that lets other requests run before it resolves."""

    async def _outcome(request: FetchRequest) -> FetchResult:
        await asyncio.sleep(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return FetchResult(
            url=request.url,
            content=outcome,
            content_format=ContentFormat.MARKDOWN,
            provider_used=BD,
            status_code=200,
        )

    return _outcome


class TestConcurrentRequests:
    @pytest.fixture
    def sleeper(self) -> FrozenSleeper:
        return FrozenSleeper()

    @pytest.fixture
    def shared_gateway(self, scripted, clock, test_settings, sleeper):
        def _build(primary) -> FetchGateway:
            return FetchGateway(
                providers={
                    BD: primary,
                    SB: scripted(SB, configured=False),
                    PW: scripted(PW, configured=False),
                },
                state=GatewayState(tiers=RateLimitTiers(), clock=clock),
                retry_policy=RetryPolicy(max_attempts=4, delays=(30.0, 60.0, 120.0)),
                config=test_settings,
                sleep=sleeper,
            )

        return _build

    @pytest.mark.asyncio
    async def test_concurrent_requests_queue_behind_reserved_slots(
        self, shared_gateway, scripted, clock, sleeper
    ) -> None:
        primary = scripted(BD, [yielding("# Review\n\nbody") for _ in range(3)])
        gateway = shared_gateway(primary)
        urls = [f"https://example.com/review-{i}" for i in range(3)]

        results = await asyncio.gather(*(gateway.fetch(FetchRequest(url=u)) for u in urls))

        assert [r.url for r in results] == urls
        assert list(gateway.state.sessions[BD].recent_calls) == [1000.0, 1007.0, 1014.0]
        assert sorted(sleeper.waits) == [7.0, 14.0]
        assert gateway.stats.calls[BD] == 3

    @pytest.mark.asyncio
    async def test_concurrent_rate_limits_add_up(
        self, shared_gateway, scripted, sleeper
    ) -> None:
        outcomes = [yielding(rate_limited(BD)), yielding(rate_limited(BD))]
        outcomes += [yielding("# Review\n\nbody") for _ in range(4)]
        gateway = shared_gateway(scripted(BD, outcomes))

        results = await asyncio.gather(
            *(gateway.fetch(FetchRequest(url=f"https://example.com/{i}")) for i in range(4))
        )

        assert all(r.provider_used is BD for r in results)
        assert sum(r.attempts for r in results) == 6
        assert gateway.stats.rate_limits == 2
        assert gateway.stats.backoff_retries == 2
        assert gateway.stats.calls[BD] == 6
        assert gateway.state.sessions[BD].rate_limit_count == 2
        assert gateway.state.current_delay(BD) == 12.0

        slots = list(gateway.state.sessions[BD].recent_calls)
        assert len(slots) == 6
        assert all(later - earlier >= 7.0 for earlier, later in zip(slots, slots[1:]))

    @pytest.mark.asyncio
    async def test_cancelled_call_propagates_without_side_effects(
        self, make_gateway, scripted, request_
    ) -> None:
        started = asyncio.Event()
        never = asyncio.Event()

        async def hang(request):
            started.set()
            await never.wait()

        fallback = scripted(SB)
        gateway = make_gateway(brightdata=scripted(BD, [hang]), scrapingbee=fallback)

        task = asyncio.create_task(gateway.fetch(request_))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=1.0)

        assert fallback.calls == 0
        assert gateway.stats.errors == 0
        assert gateway.state.is_down(BD) is False
        assert await gateway.state.admit(BD) is Admission.ALLOWED


# ── Exhaustion Tests ─────────────────────────────────────────────────────


class TestExhaustion:
    @pytest.mark.asyncio
    async def test_all_providers_fail(self, make_gateway, scripted, request_) -> None:
        gateway = make_gateway(
            brightdata=scripted(BD, [HardBlockedError("blocked", BD, 403)]),
            scrapingbee=scripted(SB, [ProviderResponseError("bad", SB, 404)]),
            playwright=scripted(PW, [ProviderResponseError("browser error", PW)]),
        )

        with pytest.raises(AllProvidersExhausted) as exc_info:
            await gateway.fetch(request_)

        assert [kind for kind, _ in exc_info.value.attempts] == [BD, SB, PW]
        assert exc_info.value.url == request_.url

    @pytest.mark.asyncio
    async def test_no_configured_providers(self, scripted, test_settings, request_) -> None:
        gateway = FetchGateway(
            providers={kind: scripted(kind, configured=False) for kind in ProviderKind},
            config=test_settings,
        )

        with pytest.raises(AllProvidersExhausted, match="no providers available"):
            await gateway.fetch(request_)

    @pytest.mark.asyncio
    async def test_default_providers_without_credentials(self, request_) -> None:
        config = Settings(
            _env_file=None,
            brightdata_api_token=None,
            scrapingbee_api_key=None,
            playwright_enabled=False,
        )
        gateway = FetchGateway(config=config)

        assert gateway.provider_chain(request_) == []
        with pytest.raises(AllProvidersExhausted):
            await gateway.fetch(request_)


# ── Batch and Stats Tests ────────────────────────────────────────────────


class TestFetchMany:
    @pytest.mark.asyncio
    async def test_results_in_input_order(self, make_gateway) -> None:
        gateway = make_gateway()
        requests = [FetchRequest(url=f"https://example.com/review/{i}") for i in range(3)]

        results = await gateway.fetch_many(requests, max_at_once=2)

        assert [r.url for r in results] == [r.url for r in requests]

    @pytest.mark.asyncio
    async def test_failures_returned_not_raised(self, make_gateway, scripted) -> None:
        gateway = make_gateway(
            brightdata=scripted(BD, configured=False),
            scrapingbee=scripted(SB, configured=False),
            playwright=scripted(PW, configured=False),
        )

        results = await gateway.fetch_many([FetchRequest(url="https://example.com/x")])

        assert isinstance(results[0], AllProvidersExhausted)

    @pytest.mark.asyncio
    async def test_reset_stats(self, make_gateway, request_) -> None:
        gateway = make_gateway()
        await gateway.fetch(request_)
        gateway.reset_stats()

        assert gateway.stats.as_dict()["calls"] == {}
        assert gateway.stats.rate_limits == 0
