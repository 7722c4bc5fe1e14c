from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum


class FileType(str, Enum):
    """Declared format of the text handed to the structure analyzer."""

    PDF = "pdf"
    DOCX = "docx"
    TXT = "txt"
    MD = "md"
    HTML = "html"

    @classmethod
    def parse(cls, value: FileType | str | None) -> FileType | None:
        """Normalise `"MD"`, `".md"` or `FileType.MD` to a member; None when unknown."""
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().lstrip("."))
        except ValueError:
            return None


class SourceType(str, Enum):
    """Kind of source a citation marker points at."""

    DOCUMENT = "document"
    WEB = "web"
    REFERENCE = "reference"


class HeadingStyle(str, Enum):
    """Heading conventions recognised by the structure analyzer, highest priority first."""

    MARKDOWN = "markdown"
    HTML = "html"
    NUMBERED = "numbered"


# ---------------------------------------------------------------------------
# Document structure
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SectionInfo:
    """Heading-delimited region of a document."""

    level: int
    title: str
    index: int
    start_char: int
    end_char: int | None = None


@dataclass(frozen=True, slots=True)
class ParagraphInfo:
    """Trimmed, non-blank run of text; `end_char` is exclusive."""

    index: int
    start_char: int
    end_char: int
    section_index: int | None = None


@dataclass(frozen=True, slots=True)
class DocumentStructure:
    """Sections and paragraphs detected in one document.

    Only one heading convention populates `sections` even when several are
    detected; the three flags report everything that was seen.
    """

    sections: tuple[SectionInfo, ...] = ()
    paragraphs: tuple[ParagraphInfo, ...] = ()
    has_markdown_headers: bool = False
    has_html_headers: bool = False
    has_numbered_sections: bool = False

    @property
    def heading_style(self) -> HeadingStyle | None:
        """Convention the sections were taken from, or None for a flat document."""
        if not self.sections:
            return None
        if self.has_markdown_headers:
            return HeadingStyle.MARKDOWN
        if self.has_html_headers:
            return HeadingStyle.HTML
        return HeadingStyle.NUMBERED

    def section_at(self, char_position: int) -> SectionInfo | None:
        """Return the last section starting at or before `char_position`."""
        starts = [section.start_char for section in self.sections]
        position = bisect_right(starts, char_position)
        if position == 0:
            return None
        return self.sections[position - 1]

    def paragraphs_in_range(self, start_char: int, end_char: int) -> list[ParagraphInfo]:
        """Return every paragraph whose span intersects `[start_char, end_char)`."""
        return [
            paragraph
            for paragraph in self.paragraphs
            if paragraph.start_char < end_char and paragraph.end_char > start_char
        ]

    def is_paragraph_boundary(self, char_position: int) -> bool:
        return any(
            paragraph.start_char == char_position or paragraph.end_char == char_position
            for paragraph in self.paragraphs
        )

    def is_section_boundary(self, char_position: int) -> bool:
        return any(
            section.start_char == char_position or section.end_char == char_position
            for section in self.sections
        )


# ---------------------------------------------------------------------------
# Chunks
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class DocumentChunkRow:
    """Persistence shape of a chunk, as stored by the document datastore."""

    document_id: str
    chunk_index: int
    content: str
    start_char: int
    end_char: int
    token_count: int
    embedding_id: str | None = None


@dataclass(frozen=True, slots=True)
class TextChunk:
    """Verbatim slice of a source document sized for retrieval.

    `start_char`/`end_char` are absolute offsets into the original text, so
    `end_char - start_char == len(content)` always holds.
    """

    content: str
    start_char: int
    end_char: int
    token_count: int
    chunk_index: int
    section: SectionInfo | None = None
    paragraph_indices: tuple[int, ...] = ()
    starts_at_paragraph_boundary: bool = True
    ends_at_paragraph_boundary: bool = True

    @property
    def section_index(self) -> int | None:
        return self.section.index if self.section is not None else None

    def to_row(self, document_id: str, embedding_id: str | None = None) -> DocumentChunkRow:
        return DocumentChunkRow(
            document_id=document_id,
            chunk_index=self.chunk_index,
            content=self.content,
            start_char=self.start_char,
            end_char=self.end_char,
            token_count=self.token_count,
            embedding_id=embedding_id,
        )


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

_SOURCE_METADATA_KEYS = {
    "publishedDate": "published_date",
    "publicationDate": "publication_date",
    "accessDate": "access_date",
    "documentType": "document_type",
    "fileSize": "file_size",
    "fileSizeFormatted": "file_size_formatted",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "authorityScore": "authority_score",
    "qualityScore": "quality_score",
    "relevanceScore": "relevance_score",
}

_REQUIRED_METADATA = {
    SourceType.DOCUMENT: ("document_type", "file_size"),
    SourceType.WEB: ("access_date",),
}


@dataclass(slots=True)
class SourceMetadata:
    """Descriptive metadata attached to a source; every field is optional."""

    published_date: str | None = None
    publication_date: str | None = None
    access_date: str | None = None
    author: str | None = None
    authors: list[str] = field(default_factory=list)
    document_type: str | None = None
    file_size: int | None = None
    file_size_formatted: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    publisher: str | None = None
    journal: str | None = None
    doi: str | None = None
    url: str | None = None
    authority_score: float | None = None
    quality_score: float | None = None
    relevance_score: float | None = None

    @classmethod
    def from_dict(cls, record: dict) -> SourceMetadata:
        """Build metadata from snake_case or camelCase keys, ignoring unknown ones."""
        known = set(cls.__dataclass_fields__)
        values = {}
        for key, value in record.items():
            name = _SOURCE_METADATA_KEYS.get(key, key)
            if name in known:
                values[name] = value
        return cls(**values)

    def missing_required_fields(self, source_type: SourceType | str) -> list[str]:
        """Names of the fields required for `source_type` that are absent."""
        required = _REQUIRED_METADATA.get(SourceType(source_type), ())
        return [name for name in required if getattr(self, name) is None]


@dataclass(slots=True)
class EnhancedSource:
    """Source record an answer cites: an uploaded document or a web result."""

    type: SourceType
    title: str
    url: str | None = None
    document_id: str | None = None
    snippet: str | None = None
    score: float | None = None
    metadata: SourceMetadata | None = None

    def __post_init__(self) -> None:
        self.type = SourceType(self.type)

    @property
    def source_id(self) -> str | None:
        return self.document_id or self.url

    @classmethod
    def from_dict(cls, record: dict) -> EnhancedSource:
        metadata = record.get("metadata")
        return cls(
            type=record["type"],
            title=record.get("title", ""),
            url=record.get("url"),
            document_id=record.get("document_id", record.get("documentId")),
            snippet=record.get("snippet"),
            score=record.get("score"),
            metadata=SourceMetadata.from_dict(metadata) if metadata else None,
        )


# ---------------------------------------------------------------------------
# Citations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CitationPosition:
    """Half-open `[start, end)` span of a marker inside the answer text."""

    start: int
    end: int


@dataclass(frozen=True, slots=True)
class CitationMetadata:
    """Identifiers of the linked source, plus any target embedded in the marker itself."""

    document_id: str | None = None
    url: str | None = None
    title: str | None = None
    marker_document_id: str | None = None
    marker_url: str | None = None

    @property
    def target_mismatch(self) -> bool:
        """True when the marker names a document or URL other than the linked source's."""
        if self.marker_document_id and self.document_id and self.marker_document_id != self.document_id:
            return True
        return bool(self.marker_url and self.url and self.marker_url != self.url)


@dataclass(frozen=True, slots=True)
class InlineCitation:
    """Citation marker resolved to a valid index of the answer's sources."""

    citation_id: str
    citation_format: str
    source_index: int
    source_type: SourceType
    position: CitationPosition
    source_id: str | None = None
    metadata: CitationMetadata | None = None


@dataclass(frozen=True, slots=True)
class RejectedCitation:
    """Marker that matched the grammar but could not be resolved to a source."""

    citation_format: str
    position: CitationPosition
    parsed_index: int
    reason: str


@dataclass(slots=True)
class CitationExtraction:
    """Accepted citations plus the side channel of rejected markers."""

    citations: list[InlineCitation] = field(default_factory=list)
    rejected: list[RejectedCitation] = field(default_factory=list)

    @property
    def ignored_count(self) -> int:
        return len(self.rejected)


@dataclass(frozen=True, slots=True)
class InlineCitationSegment:
    """Contiguous run of answer text, either plain prose or a cited marker."""

    text: str
    start_index: int
    end_index: int
    citations: tuple[InlineCitation, ...] = ()
    source_ids: tuple[str, ...] = ()

    @property
    def is_cited(self) -> bool:
        return bool(self.citations)


@dataclass(slots=True)
class InlineCitationResult:
    """Segments and citations for one answer.

    `citation_count` and `segment_count` mirror the list lengths so consumers
    do not have to recompute them; use `build` to keep them consistent.
    """

    segments: list[InlineCitationSegment]
    citations: list[InlineCitation]
    source_map: dict[int, str]
    citation_count: int
    segment_count: int
    rejected: list[RejectedCitation] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        segments: list[InlineCitationSegment],
        citations: list[InlineCitation],
        source_map: dict[int, str],
        rejected: list[RejectedCitation] | None = None,
    ) -> InlineCitationResult:
        return cls(
            segments=segments,
            citations=citations,
            source_map=source_map,
            citation_count=len(citations),
            segment_count=len(segments),
            rejected=list(rejected or []),
        )

    @property
    def ignored_citation_count(self) -> int:
        return len(self.rejected)


@dataclass(frozen=True, slots=True)
class CitationLinkSource:
    """Projection of an `EnhancedSource` carried by a citation link."""

    type: SourceType
    index: int
    title: str
    url: str | None = None
    document_id: str | None = None
    snippet: str | None = None


@dataclass(frozen=True, slots=True)
class CitationLink:
    citation: InlineCitation
    source: CitationLinkSource
    confidence: float
