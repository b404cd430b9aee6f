"""Cache-stats command: inspect the durable discovery cache."""

from pathlib import Path

import typer

from src.cli.utils import display_info, display_warning, handle_errors, load_settings
from src.services.durable_store import DiskCacheStore


@handle_errors
def cache_stats_command(
    config_path: Path = typer.Option(
        "config/discovery_config.yaml", "--config", "-c", help="Path to config YAML"
    ),
    clear: bool = typer.Option(False, "--clear", help="Remove every cached result"),
):
    """Show durable cache size and limits."""
    settings = load_settings(config_path)
    cache_cfg = settings.cache
    if not cache_cfg.enabled:
        display_warning("Cache is disabled in this configuration.")
        return

    store = DiskCacheStore(cache_cfg.cache_dir, size_limit_mb=cache_cfg.durable_size_limit_mb)
    try:
        if clear:
            removed = store.delete_prefix("discovery:")
            display_info(f"Removed {removed} cached results")
        display_info(f"Cache directory: {cache_cfg.cache_dir}")
        typer.echo(f"  Entries:        {store.count()}")
        typer.echo(f"  Volume:         {store.volume_bytes() / (1024 * 1024):.2f} MB")
        typer.echo(f"  Size limit:     {cache_cfg.durable_size_limit_mb} MB")
        typer.echo(f"  TTL:            {cache_cfg.ttl_seconds}s (partial {cache_cfg.partial_ttl_seconds}s)")
        typer.echo(f"  Memory tier max {cache_cfg.max_entries} entries")
    finally:
        store.close()
