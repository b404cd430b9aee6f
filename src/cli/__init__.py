"""Related-paper discovery CLI.

Usage:
    python -m src.cli discover --title "Attention Is All You Need" --doi 10.48550/arXiv.1706.03762
    python -m src.cli validate config/discovery_config.yaml
    python -m src.cli cache-stats
    python -m src.cli serve-health --port 8000
"""

import typer

from src.cli.discover import discover_command
from src.cli.validate import validate_command
from src.cli.cache import cache_stats_command
from src.cli.health import serve_health_command

app = typer.Typer(help="Related-paper discovery across citation, semantic and trend providers")

app.command(name="discover")(discover_command)
app.command(name="validate")(validate_command)
app.command(name="cache-stats")(cache_stats_command)
app.command(name="serve-health")(serve_health_command)

__all__ = [
    "app",
    "discover_command",
    "validate_command",
    "cache_stats_command",
    "serve_health_command",
]
