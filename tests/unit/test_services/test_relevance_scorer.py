"""Tests for relevance and confidence scoring."""

import pytest

from src.models.discovery import ScoringWeights
from src.models.paper import ProviderType, SourcePaper
from src.services.relevance_scorer import RelevanceScorer


@pytest.fixture
def scorer():
    return RelevanceScorer(reference_year=2024)


@pytest.fixture
def weights():
    return ScoringWeights()


@pytest.fixture
def graph_source():
    return SourcePaper(
        paper_id="g",
        title="Graph Neural Networks for Molecules",
        authors=["Alice Smith"],
        venue="NeurIPS",
    )


class TestSignals:
    def test_citation_signal_log_scaled_and_capped(self, scorer, make_candidate):
        assert scorer.citation_signal(make_candidate(), 1000) == 0.0
        assert scorer.citation_signal(make_candidate(citation_count=1000), 1000) == pytest.approx(1.0)
        assert scorer.citation_signal(make_candidate(citation_count=50_000), 1000) == 1.0
        mid = scorer.citation_signal(make_candidate(citation_count=30), 1000)
        assert 0.4 < mid < 0.6

    def test_recency_signal(self, scorer, make_candidate):
        assert scorer.recency_signal(make_candidate(year=2024), 10) == 1.0
        assert scorer.recency_signal(make_candidate(year=2019), 10) == pytest.approx(0.5)
        assert scorer.recency_signal(make_candidate(year=1990), 10) == 0.0
        assert scorer.recency_signal(make_candidate(), 10) == 0.0

    def test_venue_signal_case_insensitive(self, scorer, make_candidate, graph_source):
        assert scorer.venue_signal(make_candidate(venue=" neurips "), graph_source) == 1.0
        assert scorer.venue_signal(make_candidate(venue="ICML"), graph_source) == 0.0
        assert scorer.venue_signal(make_candidate(), graph_source) == 0.0

    def test_topic_signal_uses_title_keywords(self, scorer, make_candidate, graph_source):
        candidate = make_candidate(title="Neural Networks on Graphs")
        assert scorer.topic_signal(candidate, graph_source) == pytest.approx(0.5)

    def test_completeness_signal(self, scorer, make_candidate):
        assert scorer.completeness_signal(make_candidate()) == 0.0
        assert scorer.completeness_signal(make_candidate(doi="10.1/x")) == pytest.approx(0.4)
        full = make_candidate(doi="10.1/x", url="https://x", venue="V")
        assert scorer.completeness_signal(full) == pytest.approx(1.0)


class TestScore:
    def test_fills_both_scores(self, scorer, weights, make_candidate, graph_source):
        scored = scorer.score(make_candidate(title="Neural Networks on Graphs"), graph_source, weights)
        assert scored.is_scored
        assert 0.0 <= scored.relevance_score <= 1.0
        assert "score_breakdown" in scored.metadata

    def test_keeps_provider_relevance(self, scorer, weights, make_candidate, graph_source):
        scored = scorer.score(make_candidate(relevance_score=0.8), graph_source, weights)
        assert scored.relevance_score == 0.8
        assert scored.confidence_score is not None

    def test_fully_scored_candidate_unchanged(self, scorer, weights, make_candidate, graph_source):
        candidate = make_candidate(relevance_score=0.3, confidence_score=0.4)
        assert scorer.score(candidate, graph_source, weights) is candidate

    def test_does_not_mutate_input(self, scorer, weights, make_candidate, graph_source):
        candidate = make_candidate()
        scorer.score(candidate, graph_source, weights)
        assert not candidate.is_scored

    def test_confidence_reflects_provider_and_completeness(
        self, scorer, weights, make_candidate, graph_source
    ):
        complete = make_candidate(doi="10.1/x", url="https://x", venue="V")
        bare_trend = make_candidate(provider=ProviderType.TREND_DISCOVERY)
        assert scorer.score(complete, graph_source, weights).confidence_score == pytest.approx(0.95)
        assert scorer.score(bare_trend, graph_source, weights).confidence_score == pytest.approx(0.45)

    def test_strong_match_outscores_weak_match(self, scorer, weights, make_candidate, graph_source):
        strong = make_candidate(
            title="Graph Neural Networks for Molecules and Proteins",
            authors=["A. Smith"],
            venue="NeurIPS",
            year=2024,
            citation_count=500,
            doi="10.1/strong",
            url="https://x",
        )
        weak = make_candidate(title="Medieval Trade Routes", year=2001)
        assert (
            scorer.score(strong, graph_source, weights).relevance_score
            > scorer.score(weak, graph_source, weights).relevance_score
        )

    def test_weights_change_ranking(self, scorer, make_candidate, graph_source):
        cited = make_candidate(title="Unrelated Highly Cited Work", citation_count=1000)
        on_topic = make_candidate(title="Graph Neural Networks for Molecules Revisited")
        citation_heavy = ScoringWeights(
            citations=0.9, author_overlap=0.02, recency=0.02,
            venue_match=0.02, topic_overlap=0.02, completeness=0.02,
        )
        topic_heavy = ScoringWeights(
            citations=0.02, author_overlap=0.02, recency=0.02,
            venue_match=0.02, topic_overlap=0.9, completeness=0.02,
        )
        assert (
            scorer.score(cited, graph_source, citation_heavy).relevance_score
            > scorer.score(on_topic, graph_source, citation_heavy).relevance_score
        )
        assert (
            scorer.score(on_topic, graph_source, topic_heavy).relevance_score
            > scorer.score(cited, graph_source, topic_heavy).relevance_score
        )

    def test_deterministic(self, scorer, weights, make_candidate, source_paper):
        candidate = make_candidate(citation_count=10, year=2020, venue="Radiology")
        first = scorer.score_all([candidate], source_paper, weights)
        second = scorer.score_all([candidate], source_paper, weights)
        assert first[0].relevance_score == second[0].relevance_score
        assert first[0].confidence_score == second[0].confidence_score
