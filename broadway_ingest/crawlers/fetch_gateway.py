"""Fetch gateway: one logical fetch across several unreliable providers.

Flow for a single request:
1. Build the provider chain: fixed priority order, preferred provider first,
   kill-switched or unconfigured providers left out.
2. For each provider in turn: ask GatewayState for admission (skip while
   cooling down, single probe call once the cooldown elapsed), wait for the
   rate-limit gate, call the provider.
3. Rate limits and other transient failures are retried on the same
   provider per the RetryPolicy before moving on.
4. A hard block marks the provider down and falls through immediately.
5. If nothing succeeds, raise AllProvidersExhausted. There is no cached or
   default fallback.

Providers are attempted strictly in order and a provider's retries finish
before the next provider starts. Independent requests may run concurrently
and share provider sessions through GatewayState.

Usage:
    async with FetchGateway() as gateway:
        result = await gateway.fetch(FetchRequest(url="https://example.com/review"))
"""

import asyncio
import functools
from typing import Awaitable, Callable, Mapping, Optional, Sequence, Union
from urllib.parse import urlparse

import aiometer
from loguru import logger
from tenacity import RetryCallState

from broadway_ingest.config.settings import Settings, settings as default_settings
from broadway_ingest.crawlers.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    FetchError,
    HardBlockedError,
    RateLimitedError,
    TransientFetchError,
)
from broadway_ingest.crawlers.provider_session import (
    Admission,
    GatewayState,
    GatewayStats,
    RateLimitTiers,
)
from broadway_ingest.crawlers.providers import BaseProvider, build_default_providers
from broadway_ingest.crawlers.retry_policy import RetryPolicy, run_with_retry
from broadway_ingest.data_management.schemas import FetchRequest, FetchResult, ProviderKind


class FetchGateway:
    """
    Fetches resources through a prioritized chain of providers.

    Attributes:
        providers: Backend per ProviderKind (every kind must be present)
        state: Shared provider sessions and counters
        retry_policy: Retry budget for transient failures
    """

    def __init__(
        self,
        providers: Optional[Mapping[ProviderKind, BaseProvider]] = None,
        state: Optional[GatewayState] = None,
        retry_policy: Optional[RetryPolicy] = None,
        config: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            providers: Backends keyed by kind (defaults built from settings)
            state: Session state (a fresh one per gateway by default)
            retry_policy: Retry policy (defaults to the configured backoff sequence)
            config: Settings to read credentials, flags and tiers from
            sleep: Awaitable sleep, injectable for tests

        Raises:
            ConfigurationError: If a ProviderKind has no backend
        """
        config = config or default_settings
        self.providers: dict[ProviderKind, BaseProvider] = dict(
            providers if providers is not None else build_default_providers(config)
        )
        missing = [kind.value for kind in ProviderKind if kind not in self.providers]
        if missing:
            raise ConfigurationError(f"No backend for provider kind(s): {', '.join(missing)}")

        self.state = state or GatewayState(
            tiers=RateLimitTiers(
                normal=config.delay_normal_seconds,
                cautious=config.delay_cautious_seconds,
                slow=config.delay_slow_seconds,
                cautious_after=config.cautious_after,
                slow_after=config.slow_after,
                max_calls_per_window=config.max_calls_per_window,
            ),
            cooldown_seconds=config.provider_cooldown_seconds,
        )
        self.retry_policy = retry_policy or RetryPolicy.from_delays(config.rate_limit_backoff_seconds)
        self.disabled_providers = config.disabled_provider_set
        self.render_required_domains = config.render_required_domain_set
        self._sleep = sleep
        self.logger = logger.bind(component="FetchGateway")

        unavailable = [k.value for k in ProviderKind if not self.is_available(k)]
        if unavailable:
            self.logger.info(f"Providers unavailable (no credentials or disabled): {', '.join(unavailable)}")

    @property
    def stats(self) -> GatewayStats:
        return self.state.stats

    def reset_stats(self) -> None:
        self.state.reset()

    def is_available(self, kind: ProviderKind) -> bool:
        """Whether ``kind`` is enabled and configured."""
        if kind.value in self.disabled_providers:
            return False
        return self.providers[kind].is_configured()

    def _requires_rendering(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == d or host.endswith("." + d) for d in self.render_required_domains)

    def provider_chain(self, request: FetchRequest) -> list[ProviderKind]:
        """Providers to try for ``request``, in order."""
        preferred = request.prefer_provider
        if preferred is None and self._requires_rendering(request.url):
            preferred = ProviderKind.PLAYWRIGHT

        order = ProviderKind.priority_order()
        if preferred is not None:
            order = [preferred] + [kind for kind in order if kind is not preferred]
        return [kind for kind in order if self.is_available(kind)]

    async def fetch(self, request: FetchRequest) -> FetchResult:
        """
        Fetch a resource, falling back across providers.

        Args:
            request: What to fetch and how

        Returns:
            FetchResult from the first provider that succeeded

        Raises:
            AllProvidersExhausted: If every provider and retry failed
        """
        chain = self.provider_chain(request)
        attempts: list[tuple[ProviderKind, str]] = []
        calls_made = 0

        for kind in chain:
            if attempts:
                self.stats.fallbacks += 1
                self.logger.info(f"Falling back to {kind.value} for {request.url}")

            admission = await self.state.admit(kind)
            if admission is Admission.SKIPPED:
                self.logger.debug(f"Skipping {kind.value}: cooling down")
                attempts.append((kind, "cooling down after hard block"))
                continue

            policy = self.retry_policy if admission is Admission.ALLOWED else RetryPolicy.single_attempt()

            async def call_provider(kind: ProviderKind = kind) -> FetchResult:
                nonlocal calls_made
                calls_made += 1
                return await self._call_provider(kind, request)

            try:
                result = await run_with_retry(
                    call_provider,
                    policy,
                    retry_on=(TransientFetchError,),
                    sleep=self._sleep,
                    on_retry=functools.partial(self._on_retry, kind, request.url),
                )
            except HardBlockedError as e:
                self.stats.hard_blocks += 1
                await self.state.mark_down(kind, str(e))
                attempts.append((kind, str(e)))
            except FetchError as e:
                self.stats.errors += 1
                self.logger.warning(f"{kind.value} failed for {request.url}: {e}")
                if admission is Admission.PROBE:
                    await self.state.mark_down(kind, f"probe failed: {e}")
                attempts.append((kind, str(e)))
            except asyncio.CancelledError:
                if admission is Admission.PROBE:
                    self.state.release_probe(kind)
                raise
            except Exception as e:
                # A backend bug counts as a failed provider and frees the cooldown slot
                self.stats.errors += 1
                self.logger.exception(f"{kind.value} raised unexpectedly for {request.url}: {e}")
                if admission is Admission.PROBE:
                    await self.state.mark_down(kind, f"probe failed: {type(e).__name__}")
                attempts.append((kind, f"{type(e).__name__}: {e}"))
            else:
                await self.state.mark_healthy(kind)
                self.stats.successes[kind] += 1
                self.logger.info(
                    f"Fetched {request.url} via {kind.value} "
                    f"({len(result.content)} chars, {calls_made} call(s))"
                )
                return result.model_copy(update={"attempts": calls_made})

        self.logger.error(f"All providers exhausted for {request.url}")
        raise AllProvidersExhausted(request.url, attempts)

    async def _call_provider(self, kind: ProviderKind, request: FetchRequest) -> FetchResult:
        wait = await self.state.reserve_slot(kind)
        if wait > 0:
            self.logger.debug(f"Rate-limit gate: waiting {wait:.1f}s before {kind.value}")
            await self._sleep(wait)

        self.stats.calls[kind] += 1
        try:
            return await self.providers[kind].fetch(request)
        except RateLimitedError:
            await self.state.record_rate_limit(kind)
            raise

    def _on_retry(self, kind: ProviderKind, url: str, retry_state: RetryCallState) -> None:
        self.stats.backoff_retries += 1
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self.logger.warning(
            f"{kind.value} attempt {retry_state.attempt_number} failed for {url} "
            f"({error}); retrying in {delay:.0f}s"
        )

    async def fetch_many(
        self,
        requests: Sequence[FetchRequest],
        max_at_once: int = 4,
    ) -> list[Union[FetchResult, AllProvidersExhausted]]:
        """
        Fetch several independent requests concurrently.

        Each request is its own logical flow; they share provider sessions,
        so the per-provider rate-limit gate still applies across them.

        Returns:
            One entry per request, in input order: the result, or the
            AllProvidersExhausted error for that request.
        """
        if not requests:
            return []

        async def _fetch_one(request: FetchRequest) -> Union[FetchResult, AllProvidersExhausted]:
            try:
                return await self.fetch(request)
            except AllProvidersExhausted as e:
                return e

        return await aiometer.run_all(
            [functools.partial(_fetch_one, request) for request in requests],
            max_at_once=max_at_once,
        )

    async def close(self) -> None:
        for provider in self.providers.values():
            await provider.close()

    async def __aenter__(self) -> "FetchGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
