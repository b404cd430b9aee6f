import asyncio
from datetime import datetime
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
from src.utils.exceptions import ProviderParseError, ProviderTransportError
from src.utils.hash import normalize_doi, title_key

logger = structlog.get_logger()

PAPER_FIELDS = (
    "paperId,title,authors,venue,year,citationCount,influentialCitationCount,"
    "publicationDate,abstract,externalIds,url,isOpenAccess"
)


class SemanticRelevanceProvider(HttpProviderClient):
    """Semantic and author-network discovery using Semantic Scholar

    Sub-strategies run independently:
    - title similarity search (SEMANTIC_SIMILARITY)
    - citation graph through Semantic Scholar's own index (CITES, CITED_BY)
    - first and second author publications (AUTHOR_NETWORK)
    - recommendations for the source paper (RECOMMENDED)
    """

    provider_type = ProviderType.SEMANTIC_RELEVANCE

    def __init__(
        self,
        base_url: str = "https://api.semanticscholar.org",
        api_key: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    @property
    def graph_url(self) -> str:
        return f"{self.base_url}/graph/v1"

    def default_headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key} if self.api_key else {}

    def build_strategies(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> Dict[str, Awaitable[List[CandidatePaper]]]:
        limit = config.max_results_per_provider
        resolver = _PaperIdResolver(self, source)
        strategies: Dict[str, Awaitable[List[CandidatePaper]]] = {
            "title_similarity": self._title_similarity(source, limit),
            "citation_graph": self._citation_graph(resolver, limit),
            "recommendations": self._recommendations(resolver, limit),
        }
        if source.authors:
            strategies["author_network"] = self._author_network(source, limit)
        return strategies

    async def _title_similarity(
        self, source: SourcePaper, limit: int
    ) -> List[CandidatePaper]:
        data = await self.request_json(
            "GET",
            f"{self.graph_url}/paper/search",
            params={"query": source.title[:500], "limit": limit, "fields": PAPER_FIELDS},
        )
        return self._parse_papers(
            _require_list(data, "data", self.name),
            RelationshipType.SEMANTIC_SIMILARITY,
            "title_similarity",
        )

    async def resolve_paper_id(self, source: SourcePaper) -> Optional[str]:
        """Semantic Scholar id of the source, by DOI or exact title match"""
        doi = normalize_doi(source.doi)
        if doi:
            try:
                data = await self.request_json(
                    "GET",
                    f"{self.graph_url}/paper/DOI:{quote(doi, safe='/')}",
                    params={"fields": "paperId,title"},
                )
            except ProviderTransportError as e:
                if e.status != 404:
                    raise
                logger.debug("doi_not_indexed", provider=self.name, doi=doi)
                data = None
            if isinstance(data, dict) and data.get("paperId"):
                return data["paperId"]

        data = await self.request_json(
            "GET",
            f"{self.graph_url}/paper/search",
            params={"query": source.title[:500], "limit": 3, "fields": "paperId,title"},
        )
        wanted = title_key(source.title)
        for item in _require_list(data, "data", self.name):
            if title_key(item.get("title")) == wanted:
                return item.get("paperId")
        return None

    async def _citation_graph(
        self, resolver: "_PaperIdResolver", limit: int
    ) -> List[CandidatePaper]:
        paper_id = await resolver.get()
        if not paper_id:
            return []

        half = max(1, limit // 2)
        citations, references = await asyncio.gather(
            self.request_json(
                "GET",
                f"{self.graph_url}/paper/{paper_id}/citations",
                params={"fields": PAPER_FIELDS, "limit": half},
            ),
            self.request_json(
                "GET",
                f"{self.graph_url}/paper/{paper_id}/references",
                params={"fields": PAPER_FIELDS, "limit": half},
            ),
        )
        citing = [
            row.get("citingPaper") or {}
            for row in _require_list(citations, "data", self.name)
        ]
        cited = [
            row.get("citedPaper") or {}
            for row in _require_list(references, "data", self.name)
        ]
        return self._parse_papers(
            citing, RelationshipType.CITES, "citation_graph"
        ) + self._parse_papers(cited, RelationshipType.CITED_BY, "citation_graph")

    async def _author_network(
        self, source: SourcePaper, limit: int
    ) -> List[CandidatePaper]:
        per_author = max(1, limit // 2)
        batches = await asyncio.gather(
            *(self._papers_by_author(name, per_author) for name in source.authors[:2])
        )
        return [paper for batch in batches for paper in batch]

    async def _papers_by_author(self, name: str, limit: int) -> List[CandidatePaper]:
        data = await self.request_json(
            "GET",
            f"{self.graph_url}/author/search",
            params={"query": name, "limit": 1, "fields": "authorId,name"},
        )
        authors = _require_list(data, "data", self.name)
        if not authors or not authors[0].get("authorId"):
            return []
        papers = await self.request_json(
            "GET",
            f"{self.graph_url}/author/{authors[0]['authorId']}/papers",
            params={"fields": PAPER_FIELDS, "limit": limit},
        )
        results = self._parse_papers(
            _require_list(papers, "data", self.name),
            RelationshipType.AUTHOR_NETWORK,
            "author_network",
        )
        for paper in results:
            paper.metadata["via_author"] = name
        return results

    async def _recommendations(
        self, resolver: "_PaperIdResolver", limit: int
    ) -> List[CandidatePaper]:
        paper_id = await resolver.get()
        if not paper_id:
            return []
        data = await self.request_json(
            "GET",
            f"{self.base_url}/recommendations/v1/papers/forpaper/{paper_id}",
            params={"fields": PAPER_FIELDS, "limit": limit},
        )
        return self._parse_papers(
            _require_list(data, "recommendedPapers", self.name),
            RelationshipType.RECOMMENDED,
            "recommendations",
        )

    def _parse_papers(
        self,
        items: List[Dict[str, Any]],
        relationship: RelationshipType,
        strategy: str,
    ) -> List[CandidatePaper]:
        """Parse Semantic Scholar paper objects into candidates"""
        papers = []
        for item in items:
            if not isinstance(item, dict) or not item.get("title"):
                continue
            try:
                external_ids = item.get("externalIds") or {}
                pub_date = None
                if item.get("publicationDate"):
                    try:
                        pub_date = datetime.strptime(
                            item["publicationDate"], "%Y-%m-%d"
                        ).date()
                    except ValueError:
                        pass

                paper_id = item.get("paperId")
                papers.append(
                    CandidatePaper(
                        paper_id=f"s2-{paper_id}" if paper_id else None,
                        doi=external_ids.get("DOI"),
                        title=item["title"].strip()[:1000],
                        abstract=item.get("abstract"),
                        authors=normalize_authors(item.get("authors")),
                        venue=item.get("venue") or None,
                        year=item.get("year"),
                        published_date=pub_date,
                        url=item.get("url")
                        or (
                            f"https://www.semanticscholar.org/paper/{paper_id}"
                            if paper_id
                            else None
                        ),
                        provider=self.provider_type,
                        relationship=relationship,
                        citation_count=item.get("citationCount"),
                        influential_citation_count=item.get("influentialCitationCount"),
                        open_access=bool(item.get("isOpenAccess")),
                        metadata={
                            "strategy": strategy,
                            "semantic_scholar_id": paper_id,
                            "arxiv_id": external_ids.get("ArXiv"),
                        },
                    )
                )
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(
                    "paper_parse_error",
                    provider=self.name,
                    strategy=strategy,
                    paper_id=item.get("paperId"),
                    error=str(e),
                )
        return papers


class _PaperIdResolver:
    """Resolves the source's Semantic Scholar id once per discovery call"""

    def __init__(self, provider: SemanticRelevanceProvider, source: SourcePaper):
        self._provider = provider
        self._source = source
        self._lock = asyncio.Lock()
        self._resolved = False
        self._paper_id: Optional[str] = None

    async def get(self) -> Optional[str]:
        async with self._lock:
            if not self._resolved:
                self._paper_id = await self._provider.resolve_paper_id(self._source)
                self._resolved = True
            return self._paper_id


def _require_list(data: Any, key: str, provider: str) -> List[Dict[str, Any]]:
    if not isinstance(data, dict):
        raise ProviderParseError(
            f"Expected JSON object with '{key}'", provider=provider
        )
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ProviderParseError(f"'{key}' is not a list", provider=provider)
    return value
