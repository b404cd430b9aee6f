"""Validate command for configuration files."""

from pathlib import Path

import typer

from src.cli.utils import display_info, display_success, display_warning, handle_errors, load_settings
from src.models.paper import ProviderType


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    settings = load_settings(config_path, required=True)
    display_success("Configuration is valid! ✅")

    providers = settings.providers
    credentials = {
        ProviderType.CITATION_NETWORK: providers.crossref_mailto,
        ProviderType.SEMANTIC_RELEVANCE: providers.semantic_scholar_api_key,
        ProviderType.TREND_DISCOVERY: providers.perplexity_api_key,
    }
    for provider in settings.discovery.enabled_providers():
        admission = providers.admission_for(provider)
        display_info(
            f"  {provider.value}: bucket {admission.rate_limit.capacity:g} tokens "
            f"@ {admission.rate_limit.refill_per_second:g}/s, "
            f"breaker threshold {admission.circuit_breaker.failure_threshold}"
        )
        if not credentials[provider]:
            note = (
                "no API key: provider returns no results"
                if provider == ProviderType.TREND_DISCOVERY
                else "no credentials: anonymous (lower) rate limits"
            )
            display_warning(f"    {note}")
