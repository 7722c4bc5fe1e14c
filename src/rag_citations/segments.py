"""Partition an answer into plain and cited segments for rendering."""
from __future__ import annotations

import logging
from typing import Sequence

from .citations import DEFAULT_PATTERNS, CitationPattern, extract_citations
from .schema import EnhancedSource, InlineCitation, InlineCitationResult, InlineCitationSegment

LOGGER = logging.getLogger(__name__)


def _segment(answer: str, start: int, end: int, citations: Sequence[InlineCitation]) -> InlineCitationSegment:
    covering = tuple(
        citation for citation in citations if citation.position.start < end and citation.position.end > start
    )
    source_ids: list[str] = []
    for citation in covering:
        if citation.source_id is not None and citation.source_id not in source_ids:
            source_ids.append(citation.source_id)
    return InlineCitationSegment(
        text=answer[start:end],
        start_index=start,
        end_index=end,
        citations=covering,
        source_ids=tuple(source_ids),
    )


def build_segments(answer: str, citations: Sequence[InlineCitation]) -> list[InlineCitationSegment]:
    """Cut `answer` at every citation span.

    Prose between markers becomes an uncited segment; each marker becomes a
    cited segment. Empty segments are never emitted, so joining the segment
    texts reproduces `answer` exactly.
    """
    ordered = sorted(citations, key=lambda citation: (citation.position.start, citation.position.end))
    cuts = {0, len(answer)}
    for citation in ordered:
        cuts.add(citation.position.start)
        cuts.add(citation.position.end)
    boundaries = sorted(cut for cut in cuts if 0 <= cut <= len(answer))

    return [
        _segment(answer, start, end, ordered)
        for start, end in zip(boundaries, boundaries[1:])
        if end > start
    ]


def build_inline_citations(
    answer: str,
    sources: Sequence[EnhancedSource],
    patterns: Sequence[CitationPattern] = DEFAULT_PATTERNS,
) -> InlineCitationResult:
    """Extract citations from `answer` and segment it around them.

    Args:
        answer: Generated answer text.
        sources: Sources in the order the answer numbers them.
        patterns: Citation grammar to recognise.

    Returns:
        `InlineCitationResult` whose `source_map` maps each cited source
        index to its source id; unresolvable markers are kept in `rejected`.
    """
    extraction = extract_citations(answer, sources, patterns)
    segments = build_segments(answer, extraction.citations)
    source_map = {
        citation.source_index: citation.source_id
        for citation in extraction.citations
        if citation.source_id is not None
    }
    result = InlineCitationResult.build(segments, extraction.citations, source_map, extraction.rejected)
    LOGGER.debug(
        "Built %s segments for %s citations (%s ignored)",
        result.segment_count,
        result.citation_count,
        result.ignored_citation_count,
    )
    return result


# ---------------------------------------------------------------------------
# Lookups and statistics over a built result
# ---------------------------------------------------------------------------


def citations_at(result: InlineCitationResult, position: int) -> list[InlineCitation]:
    """Return citations covering `position`, else the nearest one by start offset."""
    hits = [
        citation
        for citation in result.citations
        if citation.position.start <= position < citation.position.end
    ]
    if hits or not result.citations:
        return hits
    nearest = min(result.citations, key=lambda citation: abs(citation.position.start - position))
    return [nearest]


def cited_sources(result: InlineCitationResult, sources: Sequence[EnhancedSource]) -> list[EnhancedSource]:
    """Return the distinct sources cited in `result`, in first-citation order."""
    seen: set[int] = set()
    cited = []
    for citation in result.citations:
        if citation.source_index in seen or citation.source_index >= len(sources):
            continue
        seen.add(citation.source_index)
        cited.append(sources[citation.source_index])
    return cited


def citation_statistics(result: InlineCitationResult) -> dict[str, float]:
    """Summarise citation density of an answer.

    `citation_coverage` is the percentage of answer characters that sit in
    cited segments, rounded to two decimals.
    """
    answer_length = sum(len(segment.text) for segment in result.segments)
    cited_length = sum(len(segment.text) for segment in result.segments if segment.is_cited)
    cited_segments = sum(1 for segment in result.segments if segment.is_cited)
    coverage = (cited_length / answer_length) * 100 if answer_length else 0.0
    return {
        "total_citations": result.citation_count,
        "unique_sources": len({citation.source_index for citation in result.citations}),
        "segments_with_citations": cited_segments,
        "segments_without_citations": result.segment_count - cited_segments,
        "ignored_citations": result.ignored_citation_count,
        "citation_coverage": round(coverage, 2),
    }
