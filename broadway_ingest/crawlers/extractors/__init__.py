"""Extraction of plain text from fetched pages."""

from broadway_ingest.crawlers.extractors.content_extractor import ContentExtractor

__all__ = ["ContentExtractor"]
