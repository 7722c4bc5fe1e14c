"""Tests for citations.py: marker grammar, resolution and the rejected side channel."""
from __future__ import annotations

import logging

import pytest

from rag_citations.citations import DEFAULT_PATTERNS, extract_citations, patterns_for, strip_citations
from rag_citations.schema import SourceType


class TestExtractCitations:
    def test_document_marker(self, sample_sources):
        answer = "Paris is the capital [Document 1]."
        extraction = extract_citations(answer, sample_sources)
        (citation,) = extraction.citations
        assert citation.citation_format == "[Document 1]"
        assert citation.source_index == 0
        assert citation.source_type is SourceType.DOCUMENT
        assert (citation.position.start, citation.position.end) == (21, 33)
        assert citation.citation_id == "citation-1"
        assert citation.source_id == "doc-1"
        assert citation.metadata.title == "Remote Work Policy"

    def test_positions_match_marker_text(self, sample_sources):
        answer = "VPN is required [1]. Travel is capped [Web Source 2] and [Ref 1]."
        extraction = extract_citations(answer, sample_sources)
        assert len(extraction.citations) == 3
        for citation in extraction.citations:
            assert answer[citation.position.start : citation.position.end] == citation.citation_format

    def test_adjacent_markers(self, sample_sources):
        extraction = extract_citations("Both agree [1][2].", sample_sources)
        assert [c.source_index for c in extraction.citations] == [0, 1]
        assert [c.citation_id for c in extraction.citations] == ["citation-1", "citation-2"]

    def test_linked_markers_agreeing_with_source(self, sample_sources, caplog):
        answer = "See [Document 1](document://doc-1) and [Web Source 2](https://example.com/travel)."
        with caplog.at_level(logging.WARNING, logger="rag_citations.citations"):
            first, second = extract_citations(answer, sample_sources).citations
        assert first.citation_format == "[Document 1](document://doc-1)"
        assert first.metadata.document_id == "doc-1"
        assert first.metadata.marker_document_id == "doc-1"
        assert second.source_type is SourceType.WEB
        assert second.metadata.marker_url == "https://example.com/travel"
        assert not first.metadata.target_mismatch
        assert not second.metadata.target_mismatch
        assert caplog.text == ""

    def test_linked_marker_naming_another_document(self, sample_sources, caplog):
        answer = "See [Document 1](document://doc-override)."
        with caplog.at_level(logging.WARNING, logger="rag_citations.citations"):
            (citation,) = extract_citations(answer, sample_sources).citations
        assert citation.source_index == 0
        assert citation.source_id == "doc-1"
        assert citation.metadata.document_id == "doc-1"
        assert citation.metadata.title == "Remote Work Policy"
        assert citation.metadata.marker_document_id == "doc-override"
        assert citation.metadata.target_mismatch
        assert "doc-override" in caplog.text

    def test_linked_marker_naming_another_url(self, sample_sources, caplog):
        answer = "Capped [Web Source 2](https://example.com/alt)."
        with caplog.at_level(logging.WARNING, logger="rag_citations.citations"):
            (citation,) = extract_citations(answer, sample_sources).citations
        assert citation.source_id == "https://example.com/travel"
        assert citation.metadata.url == "https://example.com/travel"
        assert citation.metadata.marker_url == "https://example.com/alt"
        assert citation.metadata.target_mismatch
        assert "https://example.com/alt" in caplog.text

    def test_numeric_marker_followed_by_link_is_not_a_citation(self, sample_sources):
        extraction = extract_citations("A markdown [1](https://example.com) link.", sample_sources)
        assert extraction.citations == []
        assert extraction.rejected == []

    def test_out_of_range_marker_is_rejected(self, sample_sources, caplog):
        with caplog.at_level(logging.WARNING, logger="rag_citations.citations"):
            extraction = extract_citations("Unsupported claim [Document 9].", sample_sources)
        assert extraction.citations == []
        assert extraction.ignored_count == 1
        (rejected,) = extraction.rejected
        assert rejected.parsed_index == 9
        assert rejected.citation_format == "[Document 9]"
        assert "[Document 9]" in caplog.text

    def test_zero_is_out_of_range(self, sample_sources):
        extraction = extract_citations("Nothing [0].", sample_sources)
        assert extraction.citations == []
        assert extraction.ignored_count == 1

    def test_no_sources(self):
        extraction = extract_citations("Claim [1].", [])
        assert extraction.citations == []
        assert extraction.ignored_count == 1

    def test_case_insensitive_words(self, sample_sources):
        (citation,) = extract_citations("see [document 2]", sample_sources).citations
        assert citation.source_index == 1

    def test_custom_grammar(self, sample_sources):
        extraction = extract_citations("[1] and [Document 2]", sample_sources, patterns_for(["document"]))
        assert [c.citation_format for c in extraction.citations] == ["[Document 2]"]


class TestPatternsFor:
    def test_keeps_priority_order(self):
        names = [pattern.name for pattern in patterns_for(["numeric", "document_link"])]
        assert names == ["document_link", "numeric"]

    def test_unknown_name_raises(self):
        with pytest.raises(ValueError, match="footnote"):
            patterns_for(["document", "footnote"])

    def test_all_defaults_selectable(self):
        assert patterns_for(p.name for p in DEFAULT_PATTERNS) == DEFAULT_PATTERNS


class TestStripCitations:
    def test_removes_marker_text(self, sample_sources):
        answer = "VPN is required [1][2]. Always."
        citations = extract_citations(answer, sample_sources).citations
        assert strip_citations(answer, citations) == "VPN is required . Always."
