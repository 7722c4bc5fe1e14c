from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from opentelemetry import trace

from .chunking import ChunkingConfig, achunk_document, chunk_document
from .linking import link_citations
from .schema import CitationLink, DocumentChunkRow, EnhancedSource, FileType, InlineCitationResult
from .segments import build_inline_citations
from .settings import Settings
from .tokens import TiktokenCounter, TokenCounter
from .tracing import traced_chunking, traced_citation_rendering


@dataclass(slots=True)
class RenderedAnswer:
    """Segmented answer plus the source links shown beside it."""

    result: InlineCitationResult
    links: list[CitationLink]


def _chunking_inputs(
    file_type: FileType | str | None,
    count_tokens: TokenCounter | None,
    settings: Settings | None,
) -> tuple[ChunkingConfig, TokenCounter]:
    settings = settings or Settings()
    counter = count_tokens or TiktokenCounter(settings.tokenizer.encoding_name)
    return settings.chunking.config_for(file_type), counter


def ingest_document(
    text: str,
    document_id: str,
    file_type: FileType | str | None = None,
    count_tokens: TokenCounter | None = None,
    settings: Settings | None = None,
    tracer: trace.Tracer | None = None,
) -> list[DocumentChunkRow]:
    """Chunk one document into rows ready for the document datastore.

    Args:
        text: Raw document text.
        document_id: Identifier stamped on every row.
        file_type: Declared source format; selects the chunk size profile
            when adaptive chunking is enabled.
        count_tokens: Synchronous counter; defaults to the configured
            tiktoken encoding.
        settings: Loaded settings; defaults apply when omitted.
        tracer: Optional OTel tracer; a ``"chunking"`` span is recorded when given.

    Returns:
        Rows ordered by `chunk_index`, without embedding ids.
    """
    config, counter = _chunking_inputs(file_type, count_tokens, settings)
    chunker = chunk_document if tracer is None else traced_chunking(chunk_document, tracer)
    chunks = chunker(text, config=config, count_tokens=counter, file_type=file_type)
    return [chunk.to_row(document_id) for chunk in chunks]


async def aingest_document(
    text: str,
    document_id: str,
    file_type: FileType | str | None = None,
    count_tokens: TokenCounter | None = None,
    settings: Settings | None = None,
    tracer: trace.Tracer | None = None,
) -> list[DocumentChunkRow]:
    """Async twin of `ingest_document`; `count_tokens` may be a coroutine function."""
    config, counter = _chunking_inputs(file_type, count_tokens, settings)
    chunker = achunk_document if tracer is None else traced_chunking(achunk_document, tracer)
    chunks = await chunker(text, config=config, count_tokens=counter, file_type=file_type)
    return [chunk.to_row(document_id) for chunk in chunks]


def render_answer(
    answer: str,
    sources: Sequence[EnhancedSource],
    settings: Settings | None = None,
    tracer: trace.Tracer | None = None,
) -> RenderedAnswer:
    """Segment an answer around its citation markers and link them to sources.

    Args:
        answer: Generated answer text.
        sources: Sources in the order the answer numbers them.
        settings: Loaded settings; selects the citation grammar and the
            baseline link confidence.
        tracer: Optional OTel tracer; a ``"citation-rendering"`` span is
            recorded when given.

    Returns:
        `RenderedAnswer` whose links follow citation order.
    """
    settings = settings or Settings()
    renderer = build_inline_citations
    if tracer is not None:
        renderer = traced_citation_rendering(renderer, tracer)
    result = renderer(answer, sources, patterns=settings.citations.patterns)
    links = link_citations(result.citations, sources, baseline=settings.citations.baseline_confidence)
    return RenderedAnswer(result=result, links=links)
