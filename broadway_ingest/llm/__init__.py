"""LLM helpers: semantic relevance check and request throttling."""

from broadway_ingest.llm.rate_limiter import RateLimiter, TokenBucket, estimate_tokens
from broadway_ingest.llm.semantic_classifier import (
    InvalidAnswerError,
    LLMCallError,
    LLMProvider,
    ProviderThrottledError,
    SemanticClassifier,
    SemanticVerdict,
    TransientLLMError,
    extract_json_object,
    to_llm_error,
)

__all__ = [
    "InvalidAnswerError",
    "LLMCallError",
    "LLMProvider",
    "ProviderThrottledError",
    "RateLimiter",
    "SemanticClassifier",
    "SemanticVerdict",
    "TokenBucket",
    "TransientLLMError",
    "estimate_tokens",
    "extract_json_object",
    "to_llm_error",
]
