"""Citation marker extraction from generated answers.

Markers are matched with a configurable family of patterns, scanned left to
right. Every marker whose number does not resolve to one of the answer's
sources is reported in the `rejected` side channel instead of failing the
extraction.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from .schema import (
    CitationExtraction,
    CitationMetadata,
    CitationPosition,
    EnhancedSource,
    InlineCitation,
    RejectedCitation,
    SourceType,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CitationPattern:
    """One marker form of the citation grammar.

    The regex must define a named ``index`` group holding the 1-based source
    number; ``url`` and ``document_id`` groups are picked up when present.
    """

    name: str
    regex: re.Pattern
    source_type: SourceType


DEFAULT_PATTERNS: tuple[CitationPattern, ...] = (
    CitationPattern(
        "document_link",
        re.compile(r"\[Document\s+(?P<index>\d+)\]\(document://(?P<document_id>[^)\s]+)\)", re.IGNORECASE),
        SourceType.DOCUMENT,
    ),
    CitationPattern(
        "web_link",
        re.compile(r"\[Web\s+Source\s+(?P<index>\d+)\]\((?P<url>[^)\s]+)\)", re.IGNORECASE),
        SourceType.WEB,
    ),
    CitationPattern(
        "document",
        re.compile(r"\[Document\s+(?P<index>\d+)\]", re.IGNORECASE),
        SourceType.DOCUMENT,
    ),
    CitationPattern(
        "web",
        re.compile(r"\[Web\s+Source\s+(?P<index>\d+)\]", re.IGNORECASE),
        SourceType.WEB,
    ),
    CitationPattern(
        "source",
        re.compile(r"\[(?:Source|Ref|Reference)\s+(?P<index>\d+)\](?!\()", re.IGNORECASE),
        SourceType.REFERENCE,
    ),
    CitationPattern(
        "numeric",
        re.compile(r"\[(?P<index>\d+)\](?!\()"),
        SourceType.REFERENCE,
    ),
)

_PATTERNS_BY_NAME = {pattern.name: pattern for pattern in DEFAULT_PATTERNS}


def patterns_for(names: Iterable[str]) -> tuple[CitationPattern, ...]:
    """Select default patterns by name, keeping their priority order.

    Raises:
        ValueError: If a name is not one of the default pattern names.
    """
    wanted = {name.strip() for name in names if name.strip()}
    unknown = wanted - set(_PATTERNS_BY_NAME)
    if unknown:
        raise ValueError(f"Unknown citation pattern(s): {', '.join(sorted(unknown))}")
    return tuple(pattern for pattern in DEFAULT_PATTERNS if pattern.name in wanted)


def _scan(answer: str, patterns: Sequence[CitationPattern]) -> list[tuple[CitationPattern, re.Match]]:
    """Return non-overlapping matches; ties go to the longest, then higher-priority form."""
    found = []
    for priority, pattern in enumerate(patterns):
        for match in pattern.regex.finditer(answer):
            found.append((match.start(), match.start() - match.end(), priority, pattern, match))
    found.sort(key=lambda item: item[:3])

    accepted = []
    covered_until = 0
    for start, _, _, pattern, match in found:
        if start < covered_until:
            continue
        covered_until = match.end()
        accepted.append((pattern, match))
    return accepted


def extract_citations(
    answer: str,
    sources: Sequence[EnhancedSource],
    patterns: Sequence[CitationPattern] = DEFAULT_PATTERNS,
) -> CitationExtraction:
    """Find citation markers in `answer` and resolve them against `sources`.

    Args:
        answer: Generated answer text.
        sources: Sources in the order the answer numbers them (marker `N`
            refers to `sources[N - 1]`).
        patterns: Citation grammar to recognise.

    Returns:
        `CitationExtraction` with citations in text order and the markers
        that pointed outside `sources`.
    """
    extraction = CitationExtraction()
    for pattern, match in _scan(answer, patterns):
        parsed_index = int(match.group("index"))
        source_index = parsed_index - 1
        position = CitationPosition(start=match.start(), end=match.end())

        if not 0 <= source_index < len(sources):
            extraction.rejected.append(
                RejectedCitation(
                    citation_format=match.group(0),
                    position=position,
                    parsed_index=parsed_index,
                    reason=f"source {parsed_index} is out of range for {len(sources)} sources",
                )
            )
            continue

        source = sources[source_index]
        groups = match.groupdict()
        # The index decides the link; an embedded id or URL is only recorded.
        metadata = CitationMetadata(
            document_id=source.document_id,
            url=source.url,
            title=source.title,
            marker_document_id=groups.get("document_id"),
            marker_url=groups.get("url"),
        )
        if metadata.target_mismatch:
            LOGGER.warning(
                "Citation %s names %s but its index resolves to source %s (%s)",
                match.group(0),
                metadata.marker_document_id or metadata.marker_url,
                parsed_index,
                source.document_id or source.url,
            )
        extraction.citations.append(
            InlineCitation(
                citation_id=f"citation-{len(extraction.citations) + 1}",
                citation_format=match.group(0),
                source_index=source_index,
                source_type=pattern.source_type,
                position=position,
                source_id=source.source_id,
                metadata=metadata,
            )
        )

    if extraction.rejected:
        LOGGER.warning(
            "Ignored %s citation marker(s) without a matching source: %s",
            extraction.ignored_count,
            ", ".join(rejected.citation_format for rejected in extraction.rejected),
        )
    LOGGER.debug("Extracted %s citations from %s chars", len(extraction.citations), len(answer))
    return extraction


def strip_citations(answer: str, citations: Iterable[InlineCitation]) -> str:
    """Remove the marker text of `citations` from `answer`."""
    result = answer
    for citation in sorted(citations, key=lambda item: item.position.start, reverse=True):
        result = result[: citation.position.start] + result[citation.position.end :]
    return result
