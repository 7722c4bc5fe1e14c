from __future__ import annotations

import logging
from typing import Sequence

from .schema import CitationLink, CitationLinkSource, EnhancedSource, InlineCitation, SourceMetadata, SourceType

LOGGER = logging.getLogger(__name__)

DEFAULT_BASELINE_CONFIDENCE = 0.8
MISSING_METADATA_PENALTY = 0.9
TYPE_MISMATCH_PENALTY = 0.8
TARGET_MISMATCH_PENALTY = 0.7

_TYPED_MARKERS = (SourceType.DOCUMENT, SourceType.WEB)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def link_confidence(citation: InlineCitation, source: EnhancedSource, baseline: float) -> float:
    """Score how trustworthy the link between a marker and its source is.

    Starts from the mean of the source's relevance and quality scores (or
    `baseline` when it has neither), then discounts for missing required
    metadata, for a marker type that contradicts the source type and for a
    marker whose embedded document id or URL names a different source.
    Sources whose type requires no metadata are never discounted for it.
    """
    metadata = source.metadata
    scores = []
    if metadata is not None:
        scores = [
            _clamp(score)
            for score in (metadata.relevance_score, metadata.quality_score)
            if score is not None
        ]
    confidence = sum(scores) / len(scores) if scores else baseline

    if (metadata or SourceMetadata()).missing_required_fields(source.type):
        confidence *= MISSING_METADATA_PENALTY
    if citation.source_type in _TYPED_MARKERS and source.type in _TYPED_MARKERS:
        if citation.source_type is not source.type:
            confidence *= TYPE_MISMATCH_PENALTY
    if citation.metadata is not None and citation.metadata.target_mismatch:
        confidence *= TARGET_MISMATCH_PENALTY
    return _clamp(confidence)


def _project(source: EnhancedSource, index: int) -> CitationLinkSource:
    return CitationLinkSource(
        type=source.type,
        index=index,
        title=source.title,
        url=source.url,
        document_id=source.document_id,
        snippet=source.snippet,
    )


def link_citations(
    citations: Sequence[InlineCitation],
    sources: Sequence[EnhancedSource],
    baseline: float = DEFAULT_BASELINE_CONFIDENCE,
) -> list[CitationLink]:
    """Pair each citation with a projection of the source it points at.

    Args:
        citations: Citations extracted from an answer.
        sources: Sources in the order the answer numbers them.
        baseline: Confidence used when a source carries no scores.

    Returns:
        One `CitationLink` per resolvable citation, in citation order.
        Citations whose index falls outside `sources` are skipped.
    """
    links = []
    for citation in citations:
        if not 0 <= citation.source_index < len(sources):
            LOGGER.warning(
                "Skipping link for %s: source index %s out of range for %s sources",
                citation.citation_id,
                citation.source_index,
                len(sources),
            )
            continue
        source = sources[citation.source_index]
        links.append(
            CitationLink(
                citation=citation,
                source=_project(source, citation.source_index),
                confidence=link_confidence(citation, source, baseline),
            )
        )
    LOGGER.debug("Linked %s of %s citations", len(links), len(citations))
    return links
