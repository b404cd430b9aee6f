"""Tests for candidate deduplication."""

import pytest

from src.models.paper import ProviderType, RelationshipType
from src.services.dedup_service import Deduplicator


@pytest.fixture
def dedup():
    return Deduplicator()


def test_empty_input(dedup):
    unique, stats = dedup.deduplicate([])
    assert unique == []
    assert stats.total_candidates == 0
    assert stats.dedup_rate == 0.0


def test_distinct_candidates_kept(dedup, make_candidate):
    unique, stats = dedup.deduplicate(
        [make_candidate(title="First Paper Title"), make_candidate(title="Second Paper Title")]
    )
    assert len(unique) == 2
    assert stats.duplicates_found == 0


def test_doi_match_is_case_insensitive_and_keeps_higher_score(dedup, make_candidate):
    low = make_candidate(title="Paper A", doi="10.2/DEF", relevance_score=0.6)
    high = make_candidate(
        title="Paper A (preprint)",
        doi="10.2/def",
        provider=ProviderType.SEMANTIC_RELEVANCE,
        relevance_score=0.8,
    )
    unique, stats = dedup.deduplicate([low, high])
    assert len(unique) == 1
    assert unique[0].relevance_score == 0.8
    assert unique[0].provider == ProviderType.SEMANTIC_RELEVANCE
    assert stats.duplicates_by_doi == 1
    assert stats.cross_provider_matches == 1


def test_title_match_ignores_case_and_whitespace(dedup, make_candidate):
    unique, stats = dedup.deduplicate(
        [
            make_candidate(title="Graph  Neural Networks"),
            make_candidate(title="graph neural networks ", provider=ProviderType.TREND_DISCOVERY),
        ]
    )
    assert len(unique) == 1
    assert stats.duplicates_by_title == 1


def test_matching_is_transitive(dedup, make_candidate):
    a = make_candidate(title="Title One", doi="10.9/x")
    b = make_candidate(title="Title Two", doi="10.9/X", provider=ProviderType.SEMANTIC_RELEVANCE)
    c = make_candidate(title="title two", provider=ProviderType.TREND_DISCOVERY)
    unique, stats = dedup.deduplicate([a, b, c])
    assert len(unique) == 1
    assert unique[0].discovered_by == [
        ProviderType.CITATION_NETWORK,
        ProviderType.SEMANTIC_RELEVANCE,
        ProviderType.TREND_DISCOVERY,
    ]
    assert stats.found_by_provider_count == {3: 1}


def test_score_tie_goes_to_more_trusted_provider(dedup, make_candidate):
    trend = make_candidate(
        title="Same Work", provider=ProviderType.TREND_DISCOVERY, relevance_score=0.5
    )
    crossref = make_candidate(title="Same Work", relevance_score=0.5)
    unique, _ = dedup.deduplicate([trend, crossref])
    assert unique[0].provider == ProviderType.CITATION_NETWORK


def test_full_tie_goes_to_earliest(dedup, make_candidate):
    first = make_candidate(title="Same Work", paper_id="first")
    second = make_candidate(title="Same Work", paper_id="second")
    unique, _ = dedup.deduplicate([first, second])
    assert unique[0].paper_id == "first"
    assert unique[0].metadata["merged_ids"] == ["first", "second"]


def test_survivor_borrows_missing_fields(dedup, make_candidate):
    winner = make_candidate(title="Same Work", relevance_score=0.9)
    donor = make_candidate(
        title="Same Work",
        provider=ProviderType.SEMANTIC_RELEVANCE,
        relationship=RelationshipType.SEMANTIC_SIMILARITY,
        doi="10.5/zz",
        url="https://example.org/p",
        year=2021,
        citation_count=12,
        relevance_score=0.2,
    )
    unique, _ = dedup.deduplicate([winner, donor])
    merged = unique[0]
    assert merged.relevance_score == 0.9
    assert merged.doi == "10.5/zz"
    assert merged.url == "https://example.org/p"
    assert merged.year == 2021
    assert merged.citation_count == 12
    assert merged.metadata["merged_relationships"] == ["cites", "semantic_similarity"]


def test_output_preserves_first_arrival_order(dedup, make_candidate):
    items = [
        make_candidate(title="Alpha Paper"),
        make_candidate(title="Beta Paper"),
        make_candidate(title="alpha paper"),
        make_candidate(title="Gamma Paper"),
    ]
    unique, stats = dedup.deduplicate(items)
    assert [c.title for c in unique] == ["Alpha Paper", "Beta Paper", "Gamma Paper"]
    assert stats.duplicates_found == 1
    assert stats.dedup_rate == pytest.approx(0.25)
