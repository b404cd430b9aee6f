"""
Candidate deduplication.

Two candidates describe the same work when they share a case-insensitive,
non-empty DOI or a case-insensitive, whitespace-normalized title. Matches
are transitive (A~B by DOI, B~C by title puts all three in one group), so
the output never holds two candidates with the same DOI or title key.
"""

from typing import Dict, List, Tuple

import structlog

from src.models.dedup import DedupStats
from src.models.paper import CandidatePaper
from src.utils.hash import normalize_doi, title_key

logger = structlog.get_logger()


class _DisjointSet:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        # Keep the earliest index as root so group order follows arrival
        if root_b < root_a:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        return True


def _preference(candidate: CandidatePaper) -> Tuple[float, int]:
    score = candidate.relevance_score if candidate.relevance_score is not None else 0.0
    return (score, candidate.provider.trust_rank)


class Deduplicator:
    """
    Collapse candidates that refer to the same underlying work.

    The survivor of each group is the candidate with the highest relevance
    score; ties go to the more trusted provider, then to the earliest
    arrival. The survivor records every provider that found the work in
    ``discovered_by`` and borrows missing identifiers from its duplicates.
    """

    def deduplicate(
        self, candidates: List[CandidatePaper]
    ) -> Tuple[List[CandidatePaper], DedupStats]:
        stats = DedupStats(total_candidates=len(candidates))
        if not candidates:
            return [], stats

        groups = _DisjointSet(len(candidates))
        by_doi: Dict[str, int] = {}
        by_title: Dict[str, int] = {}

        for i, candidate in enumerate(candidates):
            doi = normalize_doi(candidate.doi)
            if doi:
                if doi in by_doi:
                    if groups.union(by_doi[doi], i):
                        stats.duplicates_by_doi += 1
                else:
                    by_doi[doi] = i

            key = title_key(candidate.title)
            if key:
                if key in by_title:
                    if groups.union(by_title[key], i):
                        stats.duplicates_by_title += 1
                else:
                    by_title[key] = i

        members: Dict[int, List[int]] = {}
        for i in range(len(candidates)):
            members.setdefault(groups.find(i), []).append(i)

        unique: List[CandidatePaper] = []
        for root in sorted(members):
            group = [candidates[i] for i in members[root]]
            merged = self._merge(group)
            providers = len(merged.discovered_by)
            stats.found_by_provider_count[providers] = (
                stats.found_by_provider_count.get(providers, 0) + 1
            )
            if providers > 1:
                stats.cross_provider_matches += 1
            unique.append(merged)

        stats.unique_candidates = len(unique)
        stats.duplicates_found = stats.total_candidates - stats.unique_candidates

        logger.info(
            "deduplication_complete",
            total=stats.total_candidates,
            unique=stats.unique_candidates,
            duplicates=stats.duplicates_found,
            cross_provider=stats.cross_provider_matches,
        )
        return unique, stats

    def _merge(self, group: List[CandidatePaper]) -> CandidatePaper:
        # max() keeps the first of equal elements, i.e. the earliest arrival
        winner = max(group, key=_preference)

        provenance = []
        for candidate in group:
            for provider in [candidate.provider, *candidate.discovered_by]:
                if provider not in provenance:
                    provenance.append(provider)
        provenance.sort(key=lambda p: p.trust_rank, reverse=True)

        update: Dict[str, object] = {"discovered_by": provenance}
        if len(group) > 1:
            for field in ("doi", "url", "venue", "year", "citation_count", "abstract"):
                if getattr(winner, field) is None:
                    for other in group:
                        value = getattr(other, field)
                        if value is not None:
                            update[field] = value
                            break
            update["metadata"] = {
                **winner.metadata,
                "merged_ids": [c.paper_id for c in group if c.paper_id],
                "merged_relationships": sorted({c.relationship.value for c in group}),
            }
            logger.debug(
                "duplicate_merged",
                title=winner.title[:50],
                kept_provider=winner.provider.value,
                group_size=len(group),
            )
        return winner.model_copy(update=update)
