"""Pipeline orchestration for document ingestion and change review."""

from broadway_ingest.pipeline.ingestion_pipeline import (
    ChangeDecision,
    DocumentOutcome,
    IngestionPipeline,
    PipelineStats,
)

__all__ = [
    "IngestionPipeline",
    "DocumentOutcome",
    "ChangeDecision",
    "PipelineStats",
]
