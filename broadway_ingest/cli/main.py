"""Command-line interface for the Broadway ingestion pipeline using Typer and Rich."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from broadway_ingest import __version__
from broadway_ingest.config.logging import get_logger
from broadway_ingest.config.settings import settings
from broadway_ingest.data_management.schemas import (
    AssessmentContext,
    ContentTier,
    FetchRequest,
    ProviderKind,
)

app = typer.Typer(
    help="Broadway ingestion CLI - fetch, grade and guard show data",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")

TIER_STYLES = {
    ContentTier.COMPLETE: "green",
    ContentTier.TRUNCATED: "yellow",
    ContentTier.EXCERPT: "yellow",
    ContentTier.STUB: "red",
    ContentTier.INVALID: "red",
}


def _parse_value(raw: str) -> Any:
    """Interpret a CLI argument as JSON when possible (numbers, booleans, lists, null)."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@app.command()
def status() -> None:
    """Show fetch provider availability and LLM configuration."""
    from broadway_ingest.crawlers import FetchGateway

    gateway = FetchGateway()

    table = Table(title="Fetch Providers", show_header=True, header_style="bold magenta")
    table.add_column("Provider", style="cyan", width=14)
    table.add_column("Status", width=18)
    table.add_column("Details", style="yellow")

    for kind in ProviderKind.priority_order():
        if kind.value in settings.disabled_provider_set:
            table.add_row(kind.value, "[red]✗ Disabled[/red]", "Kill switch (DISABLED_PROVIDERS)")
        elif gateway.is_available(kind):
            table.add_row(kind.value, "[green]✓ Available[/green]", "")
        else:
            table.add_row(kind.value, "[yellow]⚠ Not Configured[/yellow]", "Missing credentials")

    console.print(table)

    llm = Table(title="Semantic Check", show_header=True, header_style="bold magenta")
    llm.add_column("Provider", style="cyan", width=14)
    llm.add_column("Status", width=18)
    llm.add_column("Model", style="yellow")
    for name, key, model in (
        ("gemini", settings.gemini_api_key, settings.gemini_model),
        ("openai", settings.openai_api_key, settings.openai_model),
        ("anthropic", settings.anthropic_api_key, settings.anthropic_model),
    ):
        llm.add_row(name, "[green]✓ Configured[/green]" if key else "[dim]– No key[/dim]", model)
    console.print(llm)

    console.print(
        f"[dim]Logging: {settings.log_level} ({settings.log_format}) | "
        f"Cooldown: {settings.provider_cooldown_seconds:.0f}s | "
        f"Backoff: {', '.join(f'{d:.0f}s' for d in settings.rate_limit_backoff_seconds)}[/dim]"
    )


@app.command()
def assess(
    file: Path = typer.Argument(..., exists=True, readable=True, help="Text file to grade"),
    subject_id: Optional[str] = typer.Option(None, "--subject-id", help="Expected show id"),
    title: Optional[str] = typer.Option(None, "--title", help="Expected show title"),
) -> None:
    """Grade a text file with the content quality classifier."""
    from broadway_ingest.sifters.quality import ContentQualityClassifier

    text = file.read_text(encoding="utf-8", errors="replace")
    context = AssessmentContext(subject_id=subject_id, subject_title=title, source_url=str(file))
    assessment = ContentQualityClassifier().assess(text, context)

    style = TIER_STYLES[assessment.tier]
    body = (
        f"[bold {style}]{assessment.tier.value.upper()}[/bold {style}]\n"
        f"{assessment.reason}\n\n"
        f"Words: {assessment.word_count}  Chars: {assessment.char_count}\n"
        f"Signals: {', '.join(assessment.signals) or 'none'}"
    )
    console.print(Panel(body, title=file.name, border_style=style))
    logger.info(f"Assessed {file} as {assessment.tier.value}")


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL to fetch"),
    provider: Optional[str] = typer.Option(
        None, "--provider", "-p", help="Preferred provider (brightdata, scrapingbee, playwright)"
    ),
    no_render: bool = typer.Option(False, "--no-render", help="Skip JavaScript rendering"),
) -> None:
    """Fetch a URL through the provider chain and show what came back."""
    from broadway_ingest.crawlers import AllProvidersExhausted, FetchGateway

    preferred = None
    if provider:
        try:
            preferred = ProviderKind(provider.lower())
        except ValueError:
            console.print(f"[red]✗[/red] Unknown provider: {provider}")
            raise typer.Exit(2)

    request = FetchRequest(url=url, render_js=not no_render, prefer_provider=preferred)

    async def _run():
        async with FetchGateway() as gateway:
            try:
                return await gateway.fetch(request), gateway.stats.as_dict()
            except AllProvidersExhausted as e:
                return e, gateway.stats.as_dict()

    outcome, stats = asyncio.run(_run())

    if isinstance(outcome, AllProvidersExhausted):
        console.print(f"\n[red]✗[/red] {outcome}")
        for kind, reason in outcome.attempts:
            console.print(f"  [dim]{kind.value}: {reason}[/dim]")
        logger.error(f"Fetch failed for {url}")
        raise typer.Exit(1)

    preview = outcome.content[:500]
    if len(outcome.content) > 500:
        preview += "..."
    console.print(
        Panel(
            preview,
            title=f"{outcome.provider_used.value} ({outcome.content_format.value})",
            border_style="green",
        )
    )
    console.print(
        f"\n[green]✓[/green] {len(outcome.content)} chars in {outcome.attempts} call(s); "
        f"fallbacks: {stats['fallbacks']}, rate limits: {stats['rate_limits']}"
    )


@app.command()
def severity(
    field: str = typer.Argument(..., help="Field name, e.g. capitalization"),
    old: str = typer.Argument(..., help="Current/verified value"),
    new: str = typer.Argument(..., help="Proposed value"),
) -> None:
    """Rate how serious a change from OLD to NEW would be for FIELD."""
    from broadway_ingest.sifters.corroboration import assess_severity, describe_discrepancy

    previous, proposed = _parse_value(old), _parse_value(new)
    level = assess_severity(field, previous, proposed)
    blocking = "[red]blocked on verified fields[/red]" if level.is_blocking else "[green]allowed[/green]"
    console.print(f"[bold]{field}[/bold]: {describe_discrepancy(field, previous, proposed)}")
    console.print(f"Severity: [bold]{level.value}[/bold] ({blocking})")


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]Broadway Ingest[/bold]")
    console.print(f"Version: {__version__}")


if __name__ == "__main__":
    app()
