"""Shared CLI utilities.

Provides common functionality for all CLI commands.
"""

import functools
from pathlib import Path
from typing import Callable, TypeVar

import structlog
import typer

from src.models.config import EngineSettings
from src.models.discovery import DiscoveryResult
from src.observability.logging import configure_logging
from src.services.config_manager import ConfigManager
from src.utils.exceptions import ConfigurationError

# Console output by default; a loaded config may switch to JSON
configure_logging(json_output=False)
logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)


def load_settings(config_path: Path, required: bool = False) -> EngineSettings:
    """Load engine settings and apply their logging section.

    Args:
        config_path: Path to configuration file.
        required: Fail when the file is missing instead of using defaults.

    Returns:
        Validated EngineSettings.

    Raises:
        typer.Exit: If configuration is missing (when required) or invalid.
    """
    manager = ConfigManager(config_path=str(config_path))
    try:
        settings = manager.load_settings() if required else manager.load_or_default()
    except (FileNotFoundError, ConfigurationError) as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    configure_logging(
        level=settings.logging.level, json_output=settings.logging.json_output
    )
    return settings


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling.

    Catches exceptions and displays user-friendly error messages.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)


def display_result(result: DiscoveryResult, limit: int = 20) -> None:
    """Print a discovery result as a provider summary plus a ranked list."""
    display_info(
        f"Discovery {result.status.value} for '{result.source_title}' "
        f"in {result.elapsed_ms} ms"
    )
    for report in result.provider_reports:
        line = f"  {report.provider.value:<20} {report.status.value:<8} {report.candidate_count:>4}"
        if report.error_message:
            line += f"  ({report.error_type}: {report.error_message})"
        if report.status.contributed:
            typer.echo(line)
        else:
            display_warning(line)

    if not result.candidates:
        display_warning("No related papers found.")
        return

    typer.echo("")
    for rank, candidate in enumerate(result.top(limit), start=1):
        year = candidate.year or "----"
        typer.echo(
            f"{rank:>3}. [{candidate.relevance_score:.2f}] {candidate.title} ({year})"
        )
        typer.echo(
            f"     {candidate.relationship.value} via "
            f"{', '.join(p.value for p in candidate.discovered_by or [candidate.provider])}"
            + (f"  doi:{candidate.doi}" if candidate.doi else "")
        )
    if len(result.candidates) > limit:
        display_info(f"... {len(result.candidates) - limit} more (use --json for all)")
