"""Normalization and hashing helpers for discovery.

Provides the identity keys used by deduplication, self-exclusion and the
cache, plus a small keyword extractor used as a topic-overlap fallback.
"""

import hashlib
import re
import uuid
from typing import Optional, Set

_DOI_PREFIXES = re.compile(r"^(?:https?://(?:dx\.)?doi\.org/|doi:\s*)", re.IGNORECASE)

_STOPWORDS = frozenset(
    """
    a an and are as at be by for from has in into is it its of on or that the
    their this to towards using via we with without based study analysis approach
    new novel paper method methods results toward under over between
    """.split()
)

# Fixed namespace so generated ids are stable across processes
_CANDIDATE_NAMESPACE = uuid.UUID("6f1c2a4e-8d3b-5e7f-9a0b-1c2d3e4f5a6b")


def normalize_title(title: str) -> str:
    """Normalize a paper title for fuzzy matching.

    Normalizes to lowercase, removes punctuation, and collapses whitespace.
    This allows matching titles that differ only in formatting.

    Args:
        title: Original paper title.

    Returns:
        Normalized title string for comparison.
    """
    if not title:
        return ""

    normalized = title.lower()
    normalized = re.sub(r"[^a-z0-9\s]", "", normalized)
    normalized = re.sub(r"\s+", " ", normalized)

    return normalized.strip()


def title_key(title: Optional[str]) -> str:
    """Case-insensitive, whitespace-normalized title used as a dedup key"""
    if not title:
        return ""
    return " ".join(title.split()).casefold()


def normalize_doi(doi: Optional[str]) -> str:
    """Lowercase DOI without resolver prefixes, empty string if absent"""
    if not doi:
        return ""
    cleaned = _DOI_PREFIXES.sub("", doi.strip())
    return cleaned.rstrip(".,;").lower()


def extract_keywords(text: Optional[str], min_length: int = 4) -> Set[str]:
    """Content words of a title or abstract, lowercased"""
    if not text:
        return set()
    words = normalize_title(text).split()
    return {w for w in words if len(w) >= min_length and w not in _STOPWORDS}


def stable_candidate_id(prefix: str, doi: Optional[str], title: str) -> str:
    """Deterministic candidate id from the DOI, or from the title when absent"""
    doi_key = normalize_doi(doi)
    if doi_key:
        slug = re.sub(r"[^a-z0-9]+", "-", doi_key).strip("-")
        return f"{prefix}-{slug}"
    return f"{prefix}-{uuid.uuid5(_CANDIDATE_NAMESPACE, normalize_title(title))}"


def cache_key(paper_id: str, fingerprint: str) -> str:
    return f"{cache_key_prefix(paper_id)}{fingerprint}"


def cache_key_prefix(paper_id: str) -> str:
    # Hash the id so arbitrary caller ids cannot collide on the separator
    digest = hashlib.sha256(paper_id.encode("utf-8")).hexdigest()[:16]
    return f"discovery:{digest}:"
