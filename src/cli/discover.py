"""Discover command: related papers for one source paper."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from src.cli.utils import display_result, handle_errors, load_settings
from src.models.config import EngineSettings
from src.models.discovery import DiscoveryConfiguration, DiscoveryResult, DiscoveryStatus
from src.models.paper import SourcePaper
from src.services.discovery_service import build_engine
from src.utils.hash import stable_candidate_id

PRESETS = {
    "fast": DiscoveryConfiguration.fast,
    "comprehensive": DiscoveryConfiguration.comprehensive,
    "citations-only": DiscoveryConfiguration.citations_only,
}


async def _run_discovery(
    settings: EngineSettings,
    source: SourcePaper,
    config: DiscoveryConfiguration,
) -> DiscoveryResult:
    engine = build_engine(settings)
    try:
        return await engine.discover(source, config)
    finally:
        await engine.close()


def build_request_config(
    base: DiscoveryConfiguration,
    preset: Optional[str],
    citations: bool,
    semantic: bool,
    trends: bool,
    timeout: Optional[float],
    max_results: Optional[int],
) -> DiscoveryConfiguration:
    """Merge preset and command-line overrides into a configuration."""
    if preset is not None:
        if preset not in PRESETS:
            raise typer.BadParameter(
                f"unknown preset '{preset}' (choose from {', '.join(PRESETS)})",
                param_hint="--preset",
            )
        base = PRESETS[preset]()

    overrides = {}
    if not citations:
        overrides["include_citation_network"] = False
    if not semantic:
        overrides["include_semantic_similarity"] = False
    if not trends:
        overrides["include_trends"] = False
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
    if max_results is not None:
        overrides["max_total_results"] = max_results
    if not overrides:
        return base
    # Re-validate so disabling every provider is rejected
    return DiscoveryConfiguration.model_validate({**base.model_dump(), **overrides})


@handle_errors
def discover_command(
    title: str = typer.Option(..., "--title", "-t", help="Source paper title"),
    doi: Optional[str] = typer.Option(None, "--doi", help="Source paper DOI"),
    authors: Optional[List[str]] = typer.Option(
        None, "--author", "-a", help="Author name (repeatable)"
    ),
    venue: Optional[str] = typer.Option(None, "--venue", help="Publication venue"),
    year: Optional[int] = typer.Option(None, "--year", help="Publication year"),
    abstract: Optional[str] = typer.Option(None, "--abstract", help="Abstract text"),
    paper_id: Optional[str] = typer.Option(
        None, "--paper-id", help="Caller's id for the source paper"
    ),
    preset: Optional[str] = typer.Option(
        None, "--preset", help="fast, comprehensive or citations-only"
    ),
    citations: bool = typer.Option(True, "--citations/--no-citations"),
    semantic: bool = typer.Option(True, "--semantic/--no-semantic"),
    trends: bool = typer.Option(True, "--trends/--no-trends"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Deadline in seconds"),
    max_results: Optional[int] = typer.Option(None, "--max-results", help="Total result cap"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    config_path: Path = typer.Option(
        "config/discovery_config.yaml", "--config", "-c", help="Path to config YAML"
    ),
):
    """Find papers related to a source paper across all providers."""
    settings = load_settings(config_path)

    source = SourcePaper(
        paper_id=paper_id or stable_candidate_id("source", doi, title),
        title=title,
        doi=doi,
        authors=authors or [],
        venue=venue,
        year=year,
        abstract=abstract,
    )
    config = build_request_config(
        settings.discovery, preset, citations, semantic, trends, timeout, max_results
    )

    result = asyncio.run(_run_discovery(settings, source, config))

    if json_output:
        typer.echo(result.model_dump_json(indent=2))
    else:
        display_result(result)

    if result.status == DiscoveryStatus.FAILED:
        raise typer.Exit(code=2)
