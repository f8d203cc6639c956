"""Fetch request/result schemas shared by the gateway and its callers.

FetchRequest is created per call and carries no state. FetchResult is
immutable and handed to the caller once a provider returned content.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProviderKind(str, Enum):
    """Closed set of fetch providers, declared in priority order.

    BRIGHTDATA: Request API returning markdown (cheapest per call)
    SCRAPINGBEE: Scraping API returning HTML, optional JS rendering
    PLAYWRIGHT: Local headless Chromium (most expensive, last resort)
    """

    BRIGHTDATA = "brightdata"
    SCRAPINGBEE = "scrapingbee"
    PLAYWRIGHT = "playwright"

    @classmethod
    def priority_order(cls) -> list["ProviderKind"]:
        return list(cls)


class ContentFormat(str, Enum):
    """Format of the content a provider returns."""

    MARKDOWN = "markdown"
    HTML = "html"
    JSON = "json"
    TEXT = "text"


class FetchRequest(BaseModel):
    """A resource locator plus fetch options."""

    url: str = Field(..., description="Resource to fetch")
    render_js: bool = Field(
        default=True,
        description="Ask providers that support it to execute page scripts",
    )
    prefer_provider: Optional[ProviderKind] = Field(
        default=None,
        description="Provider to try first (e.g. a site that needs full rendering)",
    )
    subject_id: Optional[str] = Field(
        default=None,
        description="Show the fetch is for, used for logging and audit notes",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "url": "https://www.nytimes.com/2024/04/25/theater/the-outsiders-review.html",
                    "render_js": True,
                    "prefer_provider": None,
                    "subject_id": "the-outsiders-2024",
                }
            ]
        },
    }


class FetchResult(BaseModel):
    """Content returned by the first provider that succeeded."""

    url: str = Field(..., description="Requested URL")
    content: str = Field(..., description="Raw page content")
    content_format: ContentFormat = Field(..., description="Format of content")
    provider_used: ProviderKind = Field(..., description="Provider that served the content")
    status_code: Optional[int] = Field(default=None, description="Upstream HTTP status")
    attempts: int = Field(default=1, ge=1, description="Provider calls made for this request")
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}
