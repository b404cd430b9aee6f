"""Data models for a single discovery request and its outcome.

DiscoveryConfiguration drives provider calls and doubles as the cache key
material; DiscoveryResult is the immutable payload stored in the cache.
"""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.paper import (
    CandidatePaper,
    ProviderType,
    RelationshipType,
    SourcePaper,
)


class ScoringWeights(BaseModel):
    """Relative weights of the relevance signals.

    Each signal is normalized to [0, 1] before weighting; the weights are
    tunable and must sum to ~1.0.
    """

    model_config = ConfigDict(frozen=True)

    citations: float = Field(0.20, ge=0.0, le=1.0)
    author_overlap: float = Field(0.20, ge=0.0, le=1.0)
    recency: float = Field(0.15, ge=0.0, le=1.0)
    venue_match: float = Field(0.10, ge=0.0, le=1.0)
    topic_overlap: float = Field(0.25, ge=0.0, le=1.0)
    completeness: float = Field(0.10, ge=0.0, le=1.0)

    # Signal caps and horizon
    citation_cap: int = Field(1000, ge=1)
    recency_horizon_years: int = Field(10, ge=1, le=100)

    @model_validator(mode="after")
    def validate_weights_sum(self) -> "ScoringWeights":
        total = (
            self.citations
            + self.author_overlap
            + self.recency
            + self.venue_match
            + self.topic_overlap
            + self.completeness
        )
        if not 0.99 <= total <= 1.01:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.3f}")
        return self


class DiscoveryConfiguration(BaseModel):
    """Per-request discovery options"""

    model_config = ConfigDict(frozen=True)

    max_results_per_provider: int = Field(25, ge=1, le=100)
    timeout_seconds: float = Field(300.0, gt=0.0, le=3600.0)
    include_citation_network: bool = True
    include_semantic_similarity: bool = True
    include_trends: bool = True
    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)

    max_total_results: int = Field(100, ge=1, le=1000)
    min_relevance_score: float = Field(0.0, ge=0.0, le=1.0)
    wait_for_admission: bool = False

    @model_validator(mode="after")
    def validate_any_provider(self) -> "DiscoveryConfiguration":
        if not self.enabled_providers():
            raise ValueError("At least one discovery provider must be enabled")
        return self

    def enabled_providers(self) -> List[ProviderType]:
        flags = {
            ProviderType.CITATION_NETWORK: self.include_citation_network,
            ProviderType.SEMANTIC_RELEVANCE: self.include_semantic_similarity,
            ProviderType.TREND_DISCOVERY: self.include_trends,
        }
        return [provider for provider, enabled in flags.items() if enabled]

    def fingerprint(self, paper_id: str) -> str:
        """Deterministic hash of every field plus the source paper id"""
        payload = {"paper_id": paper_id, "config": self.model_dump(mode="json")}
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]

    @classmethod
    def fast(cls) -> "DiscoveryConfiguration":
        return cls(
            max_results_per_provider=10,
            timeout_seconds=60.0,
            include_trends=False,
            max_total_results=30,
        )

    @classmethod
    def comprehensive(cls) -> "DiscoveryConfiguration":
        return cls(
            max_results_per_provider=50,
            timeout_seconds=600.0,
            max_total_results=200,
        )

    @classmethod
    def citations_only(cls) -> "DiscoveryConfiguration":
        return cls(
            include_semantic_similarity=False,
            include_trends=False,
        )


class ProviderStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"

    @property
    def contributed(self) -> bool:
        return self in (ProviderStatus.SUCCESS, ProviderStatus.PARTIAL)


class DiscoveryStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class ProviderReport(BaseModel):
    """Outcome of one provider within a discovery call"""

    model_config = ConfigDict(frozen=True)

    provider: ProviderType
    status: ProviderStatus
    candidate_count: int = Field(0, ge=0)
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    elapsed_ms: int = Field(0, ge=0)


class DiscoveryResult(BaseModel):
    """Deduplicated, scored outcome of one discovery request"""

    model_config = ConfigDict(frozen=True)

    source_paper_id: str
    source_title: str
    status: DiscoveryStatus
    candidates: List[CandidatePaper] = Field(default_factory=list)
    provider_reports: List[ProviderReport] = Field(default_factory=list)
    elapsed_ms: int = Field(0, ge=0)
    config_fingerprint: str
    discovered_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("candidates")
    @classmethod
    def candidates_scored(cls, v: List[CandidatePaper]) -> List[CandidatePaper]:
        for candidate in v:
            if not candidate.is_scored:
                raise ValueError(f"Candidate '{candidate.title}' has not been scored")
        return v

    @property
    def providers_invoked(self) -> List[ProviderType]:
        return [
            r.provider for r in self.provider_reports if r.status != ProviderStatus.SKIPPED
        ]

    @property
    def providers_succeeded(self) -> List[ProviderType]:
        return [r.provider for r in self.provider_reports if r.status.contributed]

    @property
    def is_partial(self) -> bool:
        return self.status == DiscoveryStatus.PARTIAL_SUCCESS

    def report_for(self, provider: ProviderType) -> Optional[ProviderReport]:
        for report in self.provider_reports:
            if report.provider == provider:
                return report
        return None

    def candidates_by_relationship(self) -> Dict[RelationshipType, List[CandidatePaper]]:
        grouped: Dict[RelationshipType, List[CandidatePaper]] = {}
        for candidate in self.candidates:
            grouped.setdefault(candidate.relationship, []).append(candidate)
        return grouped

    def top(self, n: int) -> List[CandidatePaper]:
        return self.candidates[:n]

    @classmethod
    def failed(
        cls,
        source: SourcePaper,
        fingerprint: str,
        reports: List[ProviderReport],
        elapsed_ms: int,
    ) -> "DiscoveryResult":
        return cls(
            source_paper_id=source.paper_id,
            source_title=source.title,
            status=DiscoveryStatus.FAILED,
            candidates=[],
            provider_reports=reports,
            elapsed_ms=elapsed_ms,
            config_fingerprint=fingerprint,
        )
