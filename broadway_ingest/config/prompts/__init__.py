"""Prompt templates for LLM-backed checks.

Modules:
    semantic_prompts: Relevance/sentiment prompt for fetched documents
"""

from broadway_ingest.config.prompts.semantic_prompts import (
    SEMANTIC_CHECK_PROMPT,
    SENTIMENT_LABELS,
    STRICT_SCHEMA_NOTE,
)

__all__ = [
    "SEMANTIC_CHECK_PROMPT",
    "STRICT_SCHEMA_NOTE",
    "SENTIMENT_LABELS",
]
