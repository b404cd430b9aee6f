from datetime import date
from typing import Any, Awaitable, Dict, List, Optional

import structlog

from src.models.discovery import DiscoveryConfiguration
from src.models.paper import (
    CandidatePaper,
    ProviderType,
    RelationshipType,
    SourcePaper,
)
from src.services.providers.base import HttpProviderClient
from src.services.providers.trend_parser import TrendEntry, TrendResponseParser
from src.utils.exceptions import ProviderParseError
from src.utils.hash import stable_candidate_id

logger = structlog.get_logger()

TREND_SYSTEM_PROMPT = (
    "You are a research discovery assistant. Find and list recent trending "
    "academic papers with their titles, authors, publication details, DOIs where "
    "available, and brief descriptions. Format the response as a numbered list "
    "with one paper per entry."
)

OPEN_ACCESS_SYSTEM_PROMPT = (
    "You are a research discovery assistant specializing in open access papers. "
    "Find freely available academic papers with their titles, authors, DOIs, "
    "publication venues, and direct access links. Prioritize papers from arXiv, "
    "PubMed Central, DOAJ, and other open repositories. Format the response as a "
    "numbered list with one paper per entry."
)


class TrendDiscoveryProvider(HttpProviderClient):
    """Trend and open-access discovery through a generative search backend

    Queries the Perplexity chat completions API twice in parallel (recent
    trending work, open-access availability) and parses the free-text answers
    heuristically. Candidates carry a low prior confidence downstream.
    """

    provider_type = ProviderType.TREND_DISCOVERY

    ABSTRACT_WORDS = 50

    def __init__(
        self,
        base_url: str = "https://api.perplexity.ai",
        api_key: Optional[str] = None,
        model: str = "sonar",
        parser: Optional[TrendResponseParser] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.parser = parser or TrendResponseParser()

    def default_headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def build_strategies(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> Dict[str, Awaitable[List[CandidatePaper]]]:
        if not self.api_key:
            logger.debug("trend_provider_disabled", reason="missing_api_key")
            return {}
        return {
            "trending": self._run_query(
                TREND_SYSTEM_PROMPT,
                build_trend_query(source, self.ABSTRACT_WORDS),
                RelationshipType.TRENDING,
            ),
            "open_access": self._run_query(
                OPEN_ACCESS_SYSTEM_PROMPT,
                build_open_access_query(source),
                RelationshipType.OPEN_ACCESS,
            ),
        }

    async def ask(self, system_prompt: str, query: str) -> str:
        data = await self.request_json(
            "POST",
            f"{self.base_url}/chat/completions",
            json_body={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": query},
                ],
                "temperature": 0.1,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderParseError(
                f"Unexpected chat completion shape: {e}", provider=self.name
            ) from e
        if not isinstance(content, str):
            raise ProviderParseError("Completion content is not text", provider=self.name)
        return content

    async def _run_query(
        self, system_prompt: str, query: str, relationship: RelationshipType
    ) -> List[CandidatePaper]:
        answer = await self.ask(system_prompt, query)
        entries = self.parser.parse(answer)
        logger.debug(
            "trend_answer_parsed",
            relationship=relationship.value,
            entries=len(entries),
            answer_chars=len(answer),
        )
        candidates = []
        for entry in entries:
            try:
                candidates.append(self._to_candidate(entry, relationship))
            except ValueError as e:
                logger.warning("trend_entry_rejected", title=entry.title, error=str(e))
        return candidates

    def _to_candidate(
        self, entry: TrendEntry, relationship: RelationshipType
    ) -> CandidatePaper:
        url = entry.url
        if not url and entry.arxiv_id:
            url = f"https://arxiv.org/abs/{entry.arxiv_id}"
        if not url and entry.doi:
            url = f"https://doi.org/{entry.doi}"
        return CandidatePaper(
            paper_id=stable_candidate_id("trend", entry.doi, entry.title),
            doi=entry.doi,
            title=entry.title[:1000],
            authors=entry.authors,
            venue=entry.venue,
            year=entry.year,
            published_date=date(entry.year, 1, 1) if entry.year else None,
            url=url,
            provider=self.provider_type,
            relationship=relationship,
            open_access=relationship == RelationshipType.OPEN_ACCESS
            or bool(entry.arxiv_id or entry.pmid),
            metadata={
                "strategy": relationship.value,
                "arxiv_id": entry.arxiv_id,
                "pmid": entry.pmid,
                "description": entry.description,
                "parsed_fields": entry.field_count,
            },
        )


def build_trend_query(source: SourcePaper, abstract_words: int = 50) -> str:
    current_year = date.today().year
    query = (
        f"Find recent trending research papers from {current_year - 1}-{current_year} "
        f"related to: {source.title}"
    )
    if source.abstract and source.abstract.strip():
        snippet = " ".join(source.abstract.split()[:abstract_words])
        query += f" Keywords: {snippet}"
    query += (
        " Please provide paper titles, authors, publication venues, DOIs,"
        " and brief descriptions."
    )
    return query


def build_open_access_query(source: SourcePaper) -> str:
    return (
        "Find open access research papers freely available online related to: "
        f"{source.title} Include arXiv, PubMed Central, DOAJ, and institutional "
        "repositories. Provide paper titles, authors, DOIs, download links, and "
        "publication details."
    )
