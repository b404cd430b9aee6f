"""
Relevance Scorer for discovered candidates.

Computes a [0, 1] relevance estimate as a weighted sum of independent
signals, each normalized to [0, 1] before weighting:
- Citation impact (log-scaled, capped)
- Author overlap with the source paper
- Recency (linear decay over a configurable horizon)
- Venue match (exact, case-insensitive)
- Topic overlap (source topics or title/abstract keywords)
- Metadata completeness (DOI, URL, venue)

The weights are tunable configuration (ScoringWeights), not fixed law.
Scoring is pure: identical inputs and reference year give identical output.
"""

import math
from datetime import date
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel

from src.models.discovery import ScoringWeights
from src.models.paper import CandidatePaper, SourcePaper
from src.utils.author_utils import author_overlap
from src.utils.hash import extract_keywords

logger = structlog.get_logger()


class ScoreBreakdown(BaseModel):
    """Normalized signal values and the resulting scores"""

    citations: float
    author_overlap: float
    recency: float
    venue_match: float
    topic_overlap: float
    completeness: float
    relevance: float
    confidence: float


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class RelevanceScorer:
    """Calculate relevance and confidence scores for candidates."""

    # Completeness increments; sum to 1.0
    DOI_INCREMENT = 0.4
    URL_INCREMENT = 0.3
    VENUE_INCREMENT = 0.3

    # Share of the provider prior that does not depend on completeness
    CONFIDENCE_FLOOR = 0.6

    def __init__(self, reference_year: Optional[int] = None):
        """Initialize relevance scorer.

        Args:
            reference_year: "Current" year for recency. Defaults to today's
                year; pass explicitly for reproducible scoring.
        """
        self.reference_year = reference_year or date.today().year

    def citation_signal(self, candidate: CandidatePaper, cap: int) -> float:
        citations = candidate.citation_count or 0
        if citations <= 0:
            return 0.0
        # Diminishing returns: log scale, saturating at the cap
        return min(1.0, math.log1p(citations) / math.log1p(cap))

    def recency_signal(self, candidate: CandidatePaper, horizon_years: int) -> float:
        year = candidate.year or (
            candidate.published_date.year if candidate.published_date else None
        )
        if year is None:
            return 0.0
        age = self.reference_year - year
        if age <= 0:
            return 1.0
        return max(0.0, 1.0 - age / horizon_years)

    def venue_signal(self, candidate: CandidatePaper, source: SourcePaper) -> float:
        if not candidate.venue or not source.venue:
            return 0.0
        same = candidate.venue.strip().casefold() == source.venue.strip().casefold()
        return 1.0 if same else 0.0

    def topic_signal(self, candidate: CandidatePaper, source: SourcePaper) -> float:
        source_terms = {t.casefold() for t in source.topics if t.strip()}
        source_terms |= extract_keywords(source.title)
        if not source_terms:
            return 0.0
        candidate_terms = extract_keywords(candidate.title) | extract_keywords(
            candidate.abstract
        )
        candidate_text = " ".join(candidate_terms)
        matched = {
            term
            for term in source_terms
            if term in candidate_terms or (" " in term and term in candidate_text)
        }
        return len(matched) / len(source_terms)

    def completeness_signal(self, candidate: CandidatePaper) -> float:
        total = 0.0
        if candidate.doi:
            total += self.DOI_INCREMENT
        if candidate.url:
            total += self.URL_INCREMENT
        if candidate.venue:
            total += self.VENUE_INCREMENT
        return _clamp(total)

    def breakdown(
        self,
        candidate: CandidatePaper,
        source: SourcePaper,
        weights: ScoringWeights,
    ) -> ScoreBreakdown:
        signals: Dict[str, float] = {
            "citations": self.citation_signal(candidate, weights.citation_cap),
            "author_overlap": author_overlap(source.authors, candidate.authors),
            "recency": self.recency_signal(candidate, weights.recency_horizon_years),
            "venue_match": self.venue_signal(candidate, source),
            "topic_overlap": self.topic_signal(candidate, source),
            "completeness": self.completeness_signal(candidate),
        }
        relevance = _clamp(
            sum(getattr(weights, name) * _clamp(value) for name, value in signals.items())
        )
        confidence = _clamp(
            candidate.provider.reliability
            * (
                self.CONFIDENCE_FLOOR
                + (1.0 - self.CONFIDENCE_FLOOR) * signals["completeness"]
            )
        )
        return ScoreBreakdown(
            **{name: round(value, 4) for name, value in signals.items()},
            relevance=round(relevance, 4),
            confidence=round(confidence, 4),
        )

    def score(
        self,
        candidate: CandidatePaper,
        source: SourcePaper,
        weights: ScoringWeights,
    ) -> CandidatePaper:
        """Return a copy of candidate with any missing scores filled in.

        Scores already set by the provider are kept.
        """
        if candidate.is_scored:
            return candidate
        result = self.breakdown(candidate, source, weights)
        return candidate.model_copy(
            update={
                "relevance_score": (
                    candidate.relevance_score
                    if candidate.relevance_score is not None
                    else result.relevance
                ),
                "confidence_score": (
                    candidate.confidence_score
                    if candidate.confidence_score is not None
                    else result.confidence
                ),
                "metadata": {
                    **candidate.metadata,
                    "score_breakdown": result.model_dump(),
                },
            }
        )

    def score_all(
        self,
        candidates: List[CandidatePaper],
        source: SourcePaper,
        weights: ScoringWeights,
    ) -> List[CandidatePaper]:
        return [self.score(candidate, source, weights) for candidate in candidates]
