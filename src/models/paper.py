from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderType(str, Enum):
    """External discovery sources"""

    CITATION_NETWORK = "citation_network"
    SEMANTIC_RELEVANCE = "semantic_relevance"
    TREND_DISCOVERY = "trend_discovery"

    @property
    def profile(self) -> "ProviderProfile":
        return PROVIDER_PROFILES[self]

    @property
    def trust_rank(self) -> int:
        """Higher rank wins dedup ties"""
        return self.profile.trust_rank

    @property
    def reliability(self) -> float:
        """Prior confidence in candidates from this provider"""
        return self.profile.reliability


class ProviderProfile(NamedTuple):
    label: str
    trust_rank: int
    reliability: float


PROVIDER_PROFILES: Dict[ProviderType, ProviderProfile] = {
    ProviderType.CITATION_NETWORK: ProviderProfile("Crossref", 3, 0.95),
    ProviderType.SEMANTIC_RELEVANCE: ProviderProfile("Semantic Scholar", 2, 0.90),
    ProviderType.TREND_DISCOVERY: ProviderProfile("Perplexity", 1, 0.75),
}


class RelationshipType(str, Enum):
    """How a candidate relates to the source paper"""

    CITES = "cites"
    CITED_BY = "cited_by"
    SEMANTIC_SIMILARITY = "semantic_similarity"
    AUTHOR_NETWORK = "author_network"
    VENUE_SIMILARITY = "venue_similarity"
    FIELD_RELATED = "field_related"
    TRENDING = "trending"
    OPEN_ACCESS = "open_access"
    BIBLIOGRAPHIC_COUPLING = "bibliographic_coupling"
    RECOMMENDED = "recommended"


class SourcePaper(BaseModel):
    """Paper for which related work is discovered.

    Frozen so a single instance can be shared across concurrent provider
    tasks without copies.
    """

    model_config = ConfigDict(frozen=True)

    paper_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=1000)
    authors: List[str] = Field(default_factory=list)
    doi: Optional[str] = None
    venue: Optional[str] = None
    publisher: Optional[str] = None
    year: Optional[int] = Field(None, ge=1800, le=2100)
    abstract: Optional[str] = Field(None, max_length=20000)
    topics: List[str] = Field(default_factory=list)

    @field_validator("doi")
    @classmethod
    def strip_doi(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class CandidatePaper(BaseModel):
    """Paper returned by a provider as potentially related to the source"""

    model_config = ConfigDict(frozen=True)

    # Identifiers
    paper_id: Optional[str] = None
    doi: Optional[str] = None

    # Content
    title: str = Field(..., min_length=1, max_length=1000)
    abstract: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    venue: Optional[str] = None
    year: Optional[int] = Field(None, ge=1800, le=2100)
    published_date: Optional[date] = None
    url: Optional[str] = None

    # Provenance
    provider: ProviderType
    relationship: RelationshipType
    discovered_by: List[ProviderType] = Field(default_factory=list)

    # Metrics
    citation_count: Optional[int] = Field(None, ge=0)
    influential_citation_count: Optional[int] = Field(None, ge=0)
    open_access: bool = False

    # Computed fields, None until scored
    relevance_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    confidence_score: Optional[float] = Field(None, ge=0.0, le=1.0)

    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_scored(self) -> bool:
        return self.relevance_score is not None and self.confidence_score is not None
