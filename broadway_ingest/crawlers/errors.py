"""Typed failures raised by fetch providers and the gateway.

Transient failures are retried inside the gateway and never escape it when
a retry eventually succeeds. Structural failures (hard block, malformed
response, every provider exhausted) reach the caller as these types.
"""

from typing import Optional

from broadway_ingest.data_management.schemas import ProviderKind


class ConfigurationError(Exception):
    """Gateway wired inconsistently (e.g. a provider kind without a backend)."""


class FetchError(Exception):
    """Base class for provider call failures."""

    def __init__(
        self,
        message: str,
        provider: Optional[ProviderKind] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Failure worth retrying on the same provider."""


class RateLimitedError(TransientFetchError):
    """Provider answered with a rate-limit status (HTTP 429)."""


class ProviderUnavailableError(TransientFetchError):
    """Timeout, network failure or 5xx from the provider."""


class HardBlockedError(FetchError):
    """Provider actively refused the request or answered in the wrong shape.

    The provider is marked down for a cooldown interval and not retried.
    """


class ProviderResponseError(FetchError):
    """Any other unusable response (4xx, empty body). Falls through without retry."""


class AllProvidersExhausted(FetchError):
    """Every eligible provider and every retry failed for a request."""

    def __init__(self, url: str, attempts: list[tuple[ProviderKind, str]]) -> None:
        summary = "; ".join(f"{kind.value}: {reason}" for kind, reason in attempts)
        super().__init__(
            f"All providers exhausted for {url}" + (f" ({summary})" if summary else " (no providers available)")
        )
        self.url = url
        self.attempts = attempts
