"""Broadway ingestion and trust pipeline.

Subpackages:
    crawlers: FetchGateway and provider backends
    sifters: content quality, source corroboration, verified-data guard
    llm: semantic relevance check
    data_management: schemas and stores
    pipeline: IngestionPipeline orchestration
    cli: typer command-line interface
"""

__version__ = "0.1.0"
