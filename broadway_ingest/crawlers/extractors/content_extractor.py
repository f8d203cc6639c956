"""Plain-text extraction from provider responses.

HTML goes through trafilatura (precision mode, then recall mode) with a
BeautifulSoup text dump as the last resort. Markdown and plain text only
need normalization. The result feeds the content quality classifier, which
decides whether what came out is usable.
"""

from typing import Optional

import trafilatura
from loguru import logger

from broadway_ingest.data_management.schemas import ContentFormat, FetchResult
from broadway_ingest.sifters.quality.text_cleaning import clean_text


class ContentExtractor:
    """
    Converts a FetchResult into plain text.

    Attributes:
        min_content_length: Shortest extraction accepted before trying the next strategy
    """

    def __init__(self, min_content_length: int = 200) -> None:
        self.min_content_length = min_content_length
        self.logger = logger.bind(component="ContentExtractor")

    def extract(self, result: FetchResult) -> str:
        """Return normalized plain text for a fetch result (empty string if nothing usable)."""
        if result.content_format is ContentFormat.HTML:
            text = self.extract_html(result.content, result.url)
            return clean_text(text or "")
        return clean_text(result.content)

    def _long_enough(self, text: Optional[str]) -> bool:
        return bool(text) and len(text.strip()) >= self.min_content_length

    def extract_html(self, html: str, url: str) -> Optional[str]:
        """
        Extract main content with fallback chain.

        Args:
            html: Raw HTML content
            url: Source URL for context

        Returns:
            Extracted text, or the best short extraction if every strategy
            came up short, or None if nothing at all was extracted
        """
        content = trafilatura.extract(
            html,
            url=url,
            include_comments=False,
            include_tables=False,
            favor_precision=True,
        )
        if self._long_enough(content):
            self.logger.debug(f"Extracted {len(content)} chars with trafilatura from {url}")
            return content

        recall = trafilatura.extract(
            html,
            url=url,
            include_comments=False,
            include_tables=False,
            favor_recall=True,
        )
        if self._long_enough(recall):
            self.logger.debug(f"Extracted {len(recall)} chars with trafilatura (recall mode) from {url}")
            return recall

        from bs4 import BeautifulSoup

        soup = BeautifulSoup(html, "html.parser")
        for element in soup(["script", "style", "nav", "header", "footer", "noscript"]):
            element.decompose()
        text = soup.get_text(separator="\n", strip=True)
        if self._long_enough(text):
            self.logger.debug(f"Extracted {len(text)} chars with BeautifulSoup fallback from {url}")
            return text

        self.logger.warning(f"All content extractors returned insufficient content for {url}")
        # Short output still goes to the classifier, which grades it stub/invalid
        return content or recall or text or None
