from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from src.models.admission import (
    AdmissionConfig,
    CircuitBreakerConfig,
    RetryConfig,
    TokenBucketConfig,
)
from src.models.cache import CacheConfig
from src.models.concurrency import ConcurrencyConfig
from src.models.discovery import DiscoveryConfiguration
from src.models.paper import ProviderType


def _default_admission() -> Dict[ProviderType, AdmissionConfig]:
    # Crossref is generous, Semantic Scholar's unauthenticated tier is strict,
    # Perplexity is metered per minute.
    return {
        ProviderType.CITATION_NETWORK: AdmissionConfig(
            rate_limit=TokenBucketConfig(capacity=45.0, refill_per_second=45.0),
        ),
        ProviderType.SEMANTIC_RELEVANCE: AdmissionConfig(
            rate_limit=TokenBucketConfig(capacity=1.0, refill_per_second=0.3),
        ),
        ProviderType.TREND_DISCOVERY: AdmissionConfig(
            rate_limit=TokenBucketConfig(capacity=10.0, refill_per_second=10.0 / 60),
            circuit_breaker=CircuitBreakerConfig(failure_threshold=3),
        ),
    }


class ProviderSettings(BaseModel):
    """Connection settings for the external discovery services"""

    crossref_base_url: str = Field("https://api.crossref.org")
    crossref_mailto: Optional[str] = Field(
        None, description="Contact address for Crossref's polite pool"
    )
    semantic_scholar_base_url: str = Field("https://api.semanticscholar.org")
    semantic_scholar_api_key: Optional[str] = Field(
        None, description="Semantic Scholar API key"
    )
    perplexity_base_url: str = Field("https://api.perplexity.ai")
    perplexity_api_key: Optional[str] = Field(None, description="Perplexity API key")
    perplexity_model: str = Field("sonar")

    retry: RetryConfig = Field(default_factory=RetryConfig)
    admission: Dict[ProviderType, AdmissionConfig] = Field(
        default_factory=_default_admission
    )

    @field_validator(
        "semantic_scholar_api_key", "perplexity_api_key", "crossref_mailto"
    )
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        # Unset ${VAR} placeholders survive safe_substitute verbatim
        if v is None or not v.strip() or v.strip().startswith("${"):
            return None
        return v.strip()

    def admission_for(self, provider: ProviderType) -> AdmissionConfig:
        return self.admission.get(provider) or _default_admission()[provider]


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_output: bool = True


class MaintenanceSettings(BaseModel):
    """Background cache maintenance intervals"""

    enabled: bool = True
    ttl_sweep_minutes: int = Field(30, ge=1, le=1440)
    capacity_check_minutes: int = Field(5, ge=1, le=1440)


class HealthServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)


class EngineSettings(BaseModel):
    """Root configuration for the discovery engine"""

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    maintenance: MaintenanceSettings = Field(default_factory=MaintenanceSettings)
    health_server: HealthServerSettings = Field(default_factory=HealthServerSettings)
    discovery: DiscoveryConfiguration = Field(
        default_factory=DiscoveryConfiguration,
        description="Default configuration used when a caller passes none",
    )
