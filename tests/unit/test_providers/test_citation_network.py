"""Tests for the Crossref citation network provider."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from src.models.discovery import DiscoveryConfiguration, ProviderStatus
from src.models.paper import RelationshipType, SourcePaper
from src.services.providers.citation_network import CitationNetworkProvider
from src.utils.exceptions import ProviderTransportError

WORK = {
    "reference": [
        {
            "key": "r1",
            "DOI": "10.5/ref1",
            "article-title": "Referenced Work One",
            "year": "2015",
            "journal-title": "Old Journal",
        },
        {"key": "r2", "unstructured": "Some unstructured reference text"},
        {"key": "r3"},
    ]
}

FORWARD = [
    {
        "title": ["Citing Paper One"],
        "DOI": "10.7/c1",
        "author": [{"given": "Ann", "family": "Lee"}],
        "container-title": ["Journal X"],
        "published": {"date-parts": [[2023, 5, 2]]},
        "is-referenced-by-count": 4,
        "abstract": "<jats:p>Abstract text</jats:p>",
    },
    {"title": ["Deep Learning for X-ray Diagnosis"], "DOI": "10.1/abc"},
    {"title": []},
]

COUPLING = [
    {"title": ["Coupled Paper"], "DOI": "10.8/cp"},
    {"title": ["Referenced Work One"], "DOI": "10.5/ref1"},
]

VENUE = [
    {"title": ["Venue Neighbor"], "DOI": "10.9/vn", "container-title": ["Radiology"]},
]


def _router(work_error=None, work=None):
    async def fake_request(method, url, params=None, json_body=None, headers=None):
        params = params or {}
        if url.endswith("/works/10.1/abc"):
            if work_error is not None:
                raise work_error
            return {"message": work if work is not None else WORK}
        if "query.container-title" in params:
            return {"message": {"items": VENUE}}
        if params.get("query") == "10.1/abc":
            return {"message": {"items": FORWARD}}
        if params.get("query") == "10.5/ref1":
            return {"message": {"items": COUPLING}}
        raise AssertionError(f"unexpected request {url} {params}")

    return fake_request


@pytest.fixture
def provider():
    return CitationNetworkProvider(mailto="ops@example.org")


class TestCitationNetworkProvider:
    @pytest.mark.asyncio
    async def test_runs_all_strategies(self, provider, source_paper):
        with patch.object(provider, "request_json", AsyncMock(side_effect=_router())):
            outcome = await provider.discover(source_paper, DiscoveryConfiguration())

        assert outcome.status == ProviderStatus.SUCCESS
        titles = [c.title for c in outcome.candidates]
        assert titles == [
            "Citing Paper One",
            "Referenced Work One",
            "Some unstructured reference text",
            "Coupled Paper",
            "Venue Neighbor",
        ]
        relationships = {c.title: c.relationship for c in outcome.candidates}
        assert relationships["Citing Paper One"] == RelationshipType.CITES
        assert relationships["Referenced Work One"] == RelationshipType.CITED_BY
        assert relationships["Coupled Paper"] == RelationshipType.BIBLIOGRAPHIC_COUPLING
        assert relationships["Venue Neighbor"] == RelationshipType.VENUE_SIMILARITY

    @pytest.mark.asyncio
    async def test_parses_work_fields(self, provider, source_paper):
        with patch.object(provider, "request_json", AsyncMock(side_effect=_router())):
            outcome = await provider.discover(source_paper, DiscoveryConfiguration())

        citing = outcome.candidates[0]
        assert citing.paper_id == "crossref-10.7/c1"
        assert citing.authors == ["Ann Lee"]
        assert citing.venue == "Journal X"
        assert citing.year == 2023
        assert citing.published_date == date(2023, 5, 2)
        assert citing.citation_count == 4
        assert citing.abstract == "Abstract text"
        assert citing.url == "https://doi.org/10.7/c1"

        reference = outcome.candidates[1]
        assert reference.year == 2015
        assert reference.venue == "Old Journal"
        assert reference.metadata["reference_key"] == "r1"

        coupled = outcome.candidates[3]
        assert coupled.metadata["shared_reference"] == "10.5/ref1"

    @pytest.mark.asyncio
    async def test_source_work_fetched_once(self, provider, source_paper):
        mock = AsyncMock(side_effect=_router())
        with patch.object(provider, "request_json", mock):
            await provider.discover(source_paper, DiscoveryConfiguration())
        work_calls = [c for c in mock.call_args_list if c.args[1].endswith("/works/10.1/abc")]
        assert len(work_calls) == 1

    @pytest.mark.asyncio
    async def test_without_doi_does_nothing(self, provider):
        source = SourcePaper(paper_id="p", title="No Identifier Paper")
        mock = AsyncMock()
        with patch.object(provider, "request_json", mock):
            outcome = await provider.discover(source, DiscoveryConfiguration())
        assert outcome.status == ProviderStatus.SUCCESS
        assert outcome.candidates == []
        mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_venue_skips_venue_network(self, provider):
        source = SourcePaper(paper_id="p", title="Deep Learning for X-ray Diagnosis", doi="10.1/abc")
        strategies = provider.build_strategies(source, DiscoveryConfiguration())
        assert "venue_network" not in strategies
        for coro in strategies.values():
            coro.close()

    @pytest.mark.asyncio
    async def test_failed_work_lookup_is_partial(self, provider, source_paper):
        error = ProviderTransportError("boom", provider="citation_network", status=500)
        with patch.object(
            provider, "request_json", AsyncMock(side_effect=_router(work_error=error))
        ):
            outcome = await provider.discover(source_paper, DiscoveryConfiguration())

        assert outcome.status == ProviderStatus.PARTIAL
        assert outcome.strategies_failed == 2
        assert [c.title for c in outcome.candidates] == ["Citing Paper One", "Venue Neighbor"]

    @pytest.mark.asyncio
    async def test_malformed_reference_is_skipped(self, provider, source_paper):
        work = {
            "reference": [
                {"key": "bad-title", "article-title": "   "},
                {"key": "bad-text", "unstructured": 12345},
                *WORK["reference"],
            ]
        }
        with patch.object(provider, "request_json", AsyncMock(side_effect=_router(work=work))):
            outcome = await provider.discover(source_paper, DiscoveryConfiguration())

        assert outcome.status == ProviderStatus.SUCCESS
        backward = [c for c in outcome.candidates if c.relationship == RelationshipType.CITED_BY]
        assert [c.title for c in backward] == [
            "Referenced Work One",
            "Some unstructured reference text",
        ]

    def test_user_agent_carries_mailto(self, provider):
        assert "mailto:ops@example.org" in provider.default_headers()["User-Agent"]
        assert "mailto" not in CitationNetworkProvider().default_headers()["User-Agent"]
