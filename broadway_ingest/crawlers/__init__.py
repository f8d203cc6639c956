"""Fetch gateway and provider backends.

- FetchGateway: prioritized, rate-limited, circuit-broken fetching
- BrightDataProvider / ScrapingBeeProvider / PlaywrightProvider: backends
- GatewayState: per-provider sessions and counters
- RetryPolicy / run_with_retry: retry budget and driver
"""

from broadway_ingest.crawlers.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    FetchError,
    HardBlockedError,
    ProviderResponseError,
    ProviderUnavailableError,
    RateLimitedError,
    TransientFetchError,
)
from broadway_ingest.crawlers.fetch_gateway import FetchGateway
from broadway_ingest.crawlers.provider_session import (
    Admission,
    GatewayState,
    GatewayStats,
    RateLimitTiers,
    RateTier,
)
from broadway_ingest.crawlers.providers import (
    BaseProvider,
    BrightDataProvider,
    PlaywrightProvider,
    ScrapingBeeProvider,
    build_default_providers,
)
from broadway_ingest.crawlers.retry_policy import RetryPolicy, run_with_retry

__all__ = [
    "FetchGateway",
    "GatewayState",
    "GatewayStats",
    "RateLimitTiers",
    "RateTier",
    "Admission",
    "RetryPolicy",
    "run_with_retry",
    "BaseProvider",
    "BrightDataProvider",
    "ScrapingBeeProvider",
    "PlaywrightProvider",
    "build_default_providers",
    "FetchError",
    "TransientFetchError",
    "RateLimitedError",
    "ProviderUnavailableError",
    "HardBlockedError",
    "ProviderResponseError",
    "AllProvidersExhausted",
    "ConfigurationError",
]
