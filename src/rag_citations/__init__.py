"""Structure-aware document chunking and inline citation linking for RAG answers."""

from .chunking import ChunkBuilder, ChunkingConfig, achunk_document, chunk_document
from .citations import DEFAULT_PATTERNS, CitationPattern, extract_citations
from .linking import link_citations
from .schema import (
    CitationLink,
    DocumentChunkRow,
    DocumentStructure,
    EnhancedSource,
    FileType,
    InlineCitation,
    InlineCitationResult,
    InlineCitationSegment,
    SourceMetadata,
    SourceType,
    TextChunk,
)
from .segments import build_inline_citations, build_segments
from .structure import analyze_structure

__all__ = [
    "ChunkBuilder",
    "ChunkingConfig",
    "chunk_document",
    "achunk_document",
    "analyze_structure",
    "DEFAULT_PATTERNS",
    "CitationPattern",
    "extract_citations",
    "build_segments",
    "build_inline_citations",
    "link_citations",
    "CitationLink",
    "DocumentChunkRow",
    "DocumentStructure",
    "EnhancedSource",
    "FileType",
    "InlineCitation",
    "InlineCitationResult",
    "InlineCitationSegment",
    "SourceMetadata",
    "SourceType",
    "TextChunk",
]
