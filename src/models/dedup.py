"""Data models for candidate deduplication."""

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class DedupStats(BaseModel):
    """Deduplication statistics for one merge pass"""

    model_config = ConfigDict(protected_namespaces=())

    total_candidates: int = 0
    unique_candidates: int = 0
    duplicates_found: int = 0
    duplicates_by_doi: int = 0
    duplicates_by_title: int = 0
    cross_provider_matches: int = 0
    found_by_provider_count: Dict[int, int] = Field(default_factory=dict)

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate"""
        if self.total_candidates == 0:
            return 0.0
        return self.duplicates_found / self.total_candidates
