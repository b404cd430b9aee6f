import asyncio
import re
from datetime import date
from typing import Any, Awaitable, Dict, List, Optional
from urllib.parse import quote

import structlog

from src.models.discovery import DiscoveryConfiguration
from src.models.paper import (
    CandidatePaper,
    ProviderType,
    RelationshipType,
    SourcePaper,
)
from src.services.providers.base import HttpProviderClient
from src.utils.author_utils import normalize_authors
from src.utils.exceptions import ProviderParseError
from src.utils.hash import normalize_doi

logger = structlog.get_logger()

_JATS_TAG = re.compile(r"<[^>]+>")


class CitationNetworkProvider(HttpProviderClient):
    """Citation-graph discovery using the Crossref REST API

    Sub-strategies:
    - forward citations: works mentioning the source DOI (CITES)
    - backward references: the source's own reference list (CITED_BY)
    - citation overlap: works mentioning the same references
      (BIBLIOGRAPHIC_COUPLING)
    - venue network: recent works in the same container (VENUE_SIMILARITY)

    Requires a DOI; without one the provider has nothing to look up.
    """

    provider_type = ProviderType.CITATION_NETWORK

    MAX_COUPLING_REFERENCES = 3

    def __init__(
        self,
        base_url: str = "https://api.crossref.org",
        mailto: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.mailto = mailto

    def default_headers(self) -> Dict[str, str]:
        agent = "related-paper-discovery/0.4"
        if self.mailto:
            agent = f"{agent} (mailto:{self.mailto})"
        return {"User-Agent": agent}

    def build_strategies(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> Dict[str, Awaitable[List[CandidatePaper]]]:
        doi = normalize_doi(source.doi)
        if not doi:
            return {}

        limit = config.max_results_per_provider
        work_loader = _WorkLoader(self, doi)
        strategies: Dict[str, Awaitable[List[CandidatePaper]]] = {
            "forward_citations": self._forward_citations(doi, limit),
            "backward_references": self._backward_references(work_loader, limit),
            "citation_overlap": self._citation_overlap(work_loader, doi, limit),
        }
        if source.venue:
            strategies["venue_network"] = self._venue_network(source.venue, limit)
        return strategies

    async def _search_works(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        data = await self.request_json(
            "GET", f"{self.base_url}/works", params=params
        )
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ProviderParseError(
                "Crossref search response missing 'message'", provider=self.name
            )
        items = message.get("items") or []
        if not isinstance(items, list):
            raise ProviderParseError(
                "Crossref 'items' is not a list", provider=self.name
            )
        return items

    async def fetch_work(self, doi: str) -> Dict[str, Any]:
        data = await self.request_json(
            "GET", f"{self.base_url}/works/{quote(doi, safe='/')}"
        )
        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ProviderParseError(
                f"Crossref work response for {doi} missing 'message'",
                provider=self.name,
            )
        return message

    async def _forward_citations(self, doi: str, limit: int) -> List[CandidatePaper]:
        items = await self._search_works(
            {"query": doi, "rows": limit, "sort": "published", "order": "desc"}
        )
        return self._parse_items(items, RelationshipType.CITES, "forward_citations")

    async def _backward_references(
        self, work_loader: "_WorkLoader", limit: int
    ) -> List[CandidatePaper]:
        work = await work_loader.get()
        candidates = []
        for ref in (work.get("reference") or [])[:limit]:
            try:
                candidate = self._parse_reference(ref)
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.warning(
                    "paper_parse_error",
                    provider=self.name,
                    strategy="backward_references",
                    error=str(e),
                )
                continue
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    async def _citation_overlap(
        self, work_loader: "_WorkLoader", doi: str, limit: int
    ) -> List[CandidatePaper]:
        work = await work_loader.get()
        ref_dois = [
            normalize_doi(ref.get("DOI"))
            for ref in work.get("reference") or []
            if isinstance(ref, dict) and ref.get("DOI")
        ][: self.MAX_COUPLING_REFERENCES]
        if not ref_dois:
            return []

        rows = max(1, limit // len(ref_dois))
        batches = await asyncio.gather(
            *(
                self._search_works(
                    {"query": ref_doi, "rows": rows, "sort": "published", "order": "desc"}
                )
                for ref_doi in ref_dois
            )
        )
        candidates: List[CandidatePaper] = []
        for ref_doi, items in zip(ref_dois, batches):
            for candidate in self._parse_items(
                items, RelationshipType.BIBLIOGRAPHIC_COUPLING, "citation_overlap"
            ):
                if normalize_doi(candidate.doi) in (doi, ref_doi):
                    continue
                candidate.metadata["shared_reference"] = ref_doi
                candidates.append(candidate)
        return candidates

    async def _venue_network(self, venue: str, limit: int) -> List[CandidatePaper]:
        items = await self._search_works(
            {
                "query.container-title": venue,
                "rows": max(1, limit // 2),
                "sort": "published",
                "order": "desc",
            }
        )
        return self._parse_items(items, RelationshipType.VENUE_SIMILARITY, "venue_network")

    def _parse_items(
        self,
        items: List[Dict[str, Any]],
        relationship: RelationshipType,
        strategy: str,
    ) -> List[CandidatePaper]:
        papers = []
        for item in items:
            try:
                paper = self._parse_work(item, relationship, strategy)
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.warning(
                    "paper_parse_error", provider=self.name, strategy=strategy, error=str(e)
                )
                continue
            if paper is not None:
                papers.append(paper)
        return papers

    def _parse_work(
        self, item: Dict[str, Any], relationship: RelationshipType, strategy: str
    ) -> Optional[CandidatePaper]:
        titles = item.get("title") or []
        title = titles[0].strip() if titles and titles[0] else None
        if not title:
            return None

        containers = item.get("container-title") or []
        published = _parse_date_parts(
            item.get("published")
            or item.get("published-print")
            or item.get("published-online")
            or item.get("issued")
        )
        doi = item.get("DOI")
        abstract = item.get("abstract")
        return CandidatePaper(
            paper_id=f"crossref-{normalize_doi(doi)}" if doi else None,
            doi=doi,
            title=title[:1000],
            abstract=_JATS_TAG.sub("", abstract).strip() if abstract else None,
            authors=normalize_authors(item.get("author")),
            venue=containers[0] if containers else None,
            year=published.year if published else None,
            published_date=published,
            url=item.get("URL") or (f"https://doi.org/{doi}" if doi else None),
            provider=self.provider_type,
            relationship=relationship,
            citation_count=item.get("is-referenced-by-count"),
            metadata={"strategy": strategy, "publisher": item.get("publisher")},
        )

    def _parse_reference(self, ref: Any) -> Optional[CandidatePaper]:
        if not isinstance(ref, dict):
            return None
        title = ref.get("article-title") or ref.get("volume-title") or ref.get("unstructured")
        if not title:
            return None
        doi = ref.get("DOI")
        year = _safe_year(ref.get("year"))
        return CandidatePaper(
            paper_id=f"crossref-{normalize_doi(doi)}" if doi else None,
            doi=doi,
            title=title.strip()[:1000],
            authors=normalize_authors(ref.get("author")),
            venue=ref.get("journal-title"),
            year=year,
            url=f"https://doi.org/{doi}" if doi else None,
            provider=self.provider_type,
            relationship=RelationshipType.CITED_BY,
            metadata={"strategy": "backward_references", "reference_key": ref.get("key")},
        )


class _WorkLoader:
    """Fetches the source work once per discovery call for the strategies sharing it"""

    def __init__(self, provider: CitationNetworkProvider, doi: str):
        self._provider = provider
        self._doi = doi
        self._lock = asyncio.Lock()
        self._work: Optional[Dict[str, Any]] = None

    async def get(self) -> Dict[str, Any]:
        async with self._lock:
            if self._work is None:
                self._work = await self._provider.fetch_work(self._doi)
            return self._work


def _parse_date_parts(value: Any) -> Optional[date]:
    if not isinstance(value, dict):
        return None
    parts = value.get("date-parts") or []
    if not parts or not parts[0] or parts[0][0] is None:
        return None
    first = parts[0]
    try:
        year = int(first[0])
        month = int(first[1]) if len(first) > 1 else 1
        day = int(first[2]) if len(first) > 2 else 1
        return date(year, month, day)
    except (TypeError, ValueError):
        return None


def _safe_year(value: Any) -> Optional[int]:
    try:
        year = int(str(value)[:4])
    except (TypeError, ValueError):
        return None
    return year if 1800 <= year <= 2100 else None
