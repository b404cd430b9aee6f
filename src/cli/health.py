"""Serve-health command: run the health/metrics server."""

from pathlib import Path
from typing import Optional

import typer

from src.cli.utils import display_info, handle_errors, load_settings


@handle_errors
def serve_health_command(
    config_path: Path = typer.Option(
        "config/discovery_config.yaml", "--config", "-c", help="Path to config YAML"
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Override bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override bind port"),
):
    """Start the health server with cache maintenance.

    Blocks until interrupted.
    """
    from src.health.server import run_health_server

    settings = load_settings(config_path)
    overrides = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if overrides:
        settings = settings.model_copy(
            update={"health_server": settings.health_server.model_copy(update=overrides)}
        )

    display_info(
        f"Starting health server at http://{settings.health_server.host}:{settings.health_server.port}"
    )
    run_health_server(settings)
