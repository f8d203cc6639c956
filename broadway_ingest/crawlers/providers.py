"""Fetch provider backends.

Each backend wraps one external service and turns its responses into either
a FetchResult or one of the typed failures in ``crawlers.errors``:

| Response                                   | Raised                      |
|--------------------------------------------|-----------------------------|
| 429                                        | RateLimitedError            |
| 401 / 403, or HTML where markdown expected | HardBlockedError            |
| 5xx, timeout, network error                | ProviderUnavailableError    |
| other 4xx, empty body, redirect loop,      | ProviderResponseError       |
| undecodable body                           |                             |

A backend without its credential reports ``is_configured() == False`` and
the gateway leaves it out of the chain; nothing raises at construction.
"""

import asyncio
import random
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
from loguru import logger

from broadway_ingest.config.settings import Settings, settings as default_settings
from broadway_ingest.crawlers.errors import (
    HardBlockedError,
    ProviderResponseError,
    ProviderUnavailableError,
    RateLimitedError,
)
from broadway_ingest.data_management.schemas import (
    ContentFormat,
    FetchRequest,
    FetchResult,
    ProviderKind,
)


USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Safari/605.1.15",
]

_HTML_DOCUMENT = re.compile(r"\A\s*(?:<!doctype html|<html[\s>]|<head[\s>]|<body[\s>])", re.IGNORECASE)


def looks_like_html(body: str) -> bool:
    """Whether a response body is an HTML document rather than markdown/JSON."""
    return bool(_HTML_DOCUMENT.match(body))


def raise_for_provider_status(kind: ProviderKind, status_code: int, body: str = "") -> None:
    """Map an upstream HTTP status to the gateway's failure types."""
    if status_code < 400:
        return
    snippet = body[:200].replace("\n", " ")
    if status_code == 429:
        raise RateLimitedError(f"{kind.value} rate limited", kind, status_code)
    if status_code in (401, 402, 403):
        raise HardBlockedError(f"{kind.value} HTTP {status_code}: {snippet}", kind, status_code)
    if status_code >= 500:
        raise ProviderUnavailableError(f"{kind.value} HTTP {status_code}", kind, status_code)
    raise ProviderResponseError(f"{kind.value} HTTP {status_code}: {snippet}", kind, status_code)


class BaseProvider(ABC):
    """
    Abstract fetch provider.

    Subclasses set ``kind`` and ``content_format`` and implement ``fetch``.
    HTTP-based providers share one lazily created httpx.AsyncClient.

    Attributes:
        kind: Provider identity
        content_format: Format the provider returns
        timeout: Per-call timeout in seconds
    """

    kind: ProviderKind
    content_format: ContentFormat

    def __init__(
        self,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self.logger = logger.bind(component=f"provider.{self.kind.value}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    def _get_user_agent(self) -> str:
        return random.choice(USER_AGENTS)

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials/feature flags allow this provider to run."""

    @abstractmethod
    async def fetch(self, request: FetchRequest) -> FetchResult:
        """Fetch ``request.url`` or raise a typed FetchError."""

    async def _http_get(self, url: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.get(url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(
                f"{self.kind.value} timed out after {self.timeout}s", self.kind
            ) from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"{self.kind.value} network error: {e}", self.kind) from e
        except (httpx.TooManyRedirects, httpx.DecodingError) as e:
            # The target page misbehaves the same way on a retry
            raise ProviderResponseError(
                f"{self.kind.value} unusable response: {type(e).__name__}: {e}", self.kind
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(
                f"{self.kind.value} request failed: {type(e).__name__}: {e}", self.kind
            ) from e

    def _result(self, request: FetchRequest, body: str, status_code: Optional[int]) -> FetchResult:
        if not body or not body.strip():
            raise ProviderResponseError(f"{self.kind.value} returned an empty body", self.kind, status_code)
        return FetchResult(
            url=request.url,
            content=body,
            content_format=self.content_format,
            provider_used=self.kind,
            status_code=status_code,
        )

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class BrightDataProvider(BaseProvider):
    """Bright Data request API returning page content as markdown."""

    kind = ProviderKind.BRIGHTDATA
    content_format = ContentFormat.MARKDOWN
    API_URL = "https://api.brightdata.com/request"

    def __init__(
        self,
        api_token: Optional[str],
        zone: str = "web_unlocker1",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_token = api_token
        self.zone = zone

    def is_configured(self) -> bool:
        return bool(self.api_token)

    async def fetch(self, request: FetchRequest) -> FetchResult:
        response = await self._http_get(
            self.API_URL,
            params={"zone": self.zone, "url": request.url, "format": "markdown"},
            headers={"Authorization": f"Bearer {self.api_token}"},
        )
        body = response.text
        raise_for_provider_status(self.kind, response.status_code, body)

        # Markdown was requested; an HTML document means an interstitial or block page
        if looks_like_html(body):
            raise HardBlockedError(
                f"{self.kind.value} returned HTML where markdown was expected",
                self.kind,
                response.status_code,
            )
        return self._result(request, body, response.status_code)


class ScrapingBeeProvider(BaseProvider):
    """ScrapingBee API returning HTML, with optional JavaScript rendering."""

    kind = ProviderKind.SCRAPINGBEE
    content_format = ContentFormat.HTML
    API_URL = "https://app.scrapingbee.com/api/v1/"

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch(self, request: FetchRequest) -> FetchResult:
        response = await self._http_get(
            self.API_URL,
            params={
                "api_key": self.api_key,
                "url": request.url,
                "render_js": "true" if request.render_js else "false",
            },
        )
        body = response.text
        raise_for_provider_status(self.kind, response.status_code, body)
        return self._result(request, body, response.status_code)


class PlaywrightProvider(BaseProvider):
    """Local headless Chromium. Most expensive provider, used as the last resort."""

    kind = ProviderKind.PLAYWRIGHT
    content_format = ContentFormat.HTML

    def __init__(self, enabled: bool = True, timeout: float = 45.0) -> None:
        super().__init__(timeout=timeout)
        self.enabled = enabled
        self._playwright_available: Optional[bool] = None

    def _check_playwright_available(self) -> bool:
        if self._playwright_available is None:
            try:
                import playwright  # noqa: F401
                self._playwright_available = True
            except ImportError:
                self._playwright_available = False
                self.logger.warning("Playwright not installed, browser provider disabled")
        return self._playwright_available

    def is_configured(self) -> bool:
        return self.enabled and self._check_playwright_available()

    async def fetch(self, request: FetchRequest) -> FetchResult:
        # Page load and network-idle each get the timeout, plus browser startup
        overall = self.timeout * 2 + 15
        try:
            status, html = await asyncio.wait_for(self._render(request.url), timeout=overall)
        except asyncio.TimeoutError as e:
            raise ProviderUnavailableError(
                f"{self.kind.value} timed out after {overall:.0f}s", self.kind
            ) from e

        raise_for_provider_status(self.kind, status or 200, html)
        return self._result(request, html, status)

    async def _render(self, url: str) -> tuple[Optional[int], str]:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError
        from playwright.async_api import async_playwright

        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(headless=True)
                try:
                    page = await browser.new_page(user_agent=self._get_user_agent())
                    response = await page.goto(
                        url, timeout=self.timeout * 1000, wait_until="domcontentloaded"
                    )
                    try:
                        await page.wait_for_load_state("networkidle", timeout=self.timeout * 1000)
                    except PlaywrightTimeoutError:
                        # Ad-heavy pages never go idle; the DOM is already there
                        self.logger.debug(f"networkidle not reached for {url}, using current DOM")
                    html = await page.content()
                    return (response.status if response else None), html
                finally:
                    await browser.close()
        except PlaywrightTimeoutError as e:
            raise ProviderUnavailableError(f"{self.kind.value} page load timed out: {e}", self.kind) from e
        except PlaywrightError as e:
            raise ProviderResponseError(f"{self.kind.value} browser error: {e}", self.kind) from e


def build_default_providers(
    config: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[ProviderKind, BaseProvider]:
    """Build one backend per ProviderKind from settings."""
    config = config or default_settings
    return {
        ProviderKind.BRIGHTDATA: BrightDataProvider(
            api_token=config.brightdata_api_token,
            zone=config.brightdata_zone,
            timeout=config.provider_timeout_seconds,
            client=client,
        ),
        ProviderKind.SCRAPINGBEE: ScrapingBeeProvider(
            api_key=config.scrapingbee_api_key,
            timeout=config.provider_timeout_seconds,
            client=client,
        ),
        ProviderKind.PLAYWRIGHT: PlaywrightProvider(
            enabled=config.playwright_enabled,
            timeout=config.playwright_timeout_seconds,
        ),
    }
