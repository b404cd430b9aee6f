"""Tests for author normalization and overlap."""

import pytest

from src.utils.author_utils import author_key, author_overlap, normalize_authors


class TestNormalizeAuthors:
    def test_name_dicts(self):
        assert normalize_authors([{"name": "John Doe", "authorId": "1"}]) == ["John Doe"]

    def test_given_family_dicts(self):
        assert normalize_authors([{"given": "Jane", "family": "Smith"}]) == ["Jane Smith"]

    def test_family_only(self):
        assert normalize_authors([{"family": "Curie"}]) == ["Curie"]

    def test_string_list(self):
        assert normalize_authors([" A. Lee ", "", "B. Chen"]) == ["A. Lee", "B. Chen"]

    def test_free_text(self):
        assert normalize_authors("A. Lee, B. Chen and C. Wu & D. Park") == [
            "A. Lee",
            "B. Chen",
            "C. Wu",
            "D. Park",
        ]

    def test_empty(self):
        assert normalize_authors(None) == []
        assert normalize_authors([]) == []


class TestAuthorOverlap:
    def test_author_key_matches_initials(self):
        assert author_key("J. Smith") == author_key("John Smith")
        assert author_key("Madonna") == "madonna"
        assert author_key("") == ""

    def test_overlap_fraction_of_source(self):
        source = ["Alice Smith", "Bob Jones"]
        assert author_overlap(source, ["A. Smith", "Carol King"]) == pytest.approx(0.5)
        assert author_overlap(source, ["Bob Jones", "Alice Smith"]) == pytest.approx(1.0)

    def test_overlap_without_source_authors(self):
        assert author_overlap([], ["Alice Smith"]) == 0.0
