"""Utility functions for author data handling.

Providers return authors in different shapes:
- List[dict] with a 'name' key (Semantic Scholar)
- List[dict] with 'given'/'family' keys (Crossref)
- List[str] when already normalized
- Single string, possibly comma or "and" separated (free-text answers)
- None/empty when no authors are known
"""

import re
from typing import Any, List, Sequence

_AUTHOR_SPLIT = re.compile(r"\s*(?:,|;|\band\b|&)\s*")


def normalize_authors(authors: Any) -> List[str]:
    """Convert authors from various formats to List[str].

    Examples:
        >>> normalize_authors([{"name": "John Doe", "authorId": "123"}])
        ['John Doe']
        >>> normalize_authors([{"given": "Jane", "family": "Smith"}])
        ['Jane Smith']
        >>> normalize_authors("A. Lee and B. Chen")
        ['A. Lee', 'B. Chen']
        >>> normalize_authors(None)
        []
    """
    if not authors:
        return []

    result: List[str] = []

    if isinstance(authors, list):
        for a in authors:
            if isinstance(a, dict):
                name = a.get("name")
                if name is None and (a.get("given") or a.get("family")):
                    name = " ".join(
                        part for part in (a.get("given"), a.get("family")) if part
                    )
                if name:
                    result.append(str(name).strip())
            elif a:
                result.append(str(a).strip())
    elif isinstance(authors, str):
        result.extend(p for p in _AUTHOR_SPLIT.split(authors.strip()) if p)

    return [name for name in result if name]


def author_key(name: str) -> str:
    """Surname plus first initial, lowercased ("J. Smith" == "John Smith")"""
    parts = re.sub(r"[^\w\s-]", " ", name.casefold()).split()
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    return f"{parts[-1]}_{parts[0][0]}"


def author_overlap(source: Sequence[str], candidate: Sequence[str]) -> float:
    """Fraction of the source paper's authors that also appear on the candidate"""
    source_keys = {author_key(a) for a in source if author_key(a)}
    if not source_keys:
        return 0.0
    candidate_keys = {author_key(a) for a in candidate if author_key(a)}
    return len(source_keys & candidate_keys) / len(source_keys)
