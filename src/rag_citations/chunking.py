"""Boundary-aware chunking of documents into retrieval-sized text chunks.

Paragraphs are packed greedily into chunks while the exact token count of
the chunk stays within ``target_tokens``. A closed chunk seeds the next one
with its trailing ``overlap_tokens`` worth of text. Paragraphs that cannot
be packed (the chunk is still under ``min_chunk_tokens``, or the paragraph
alone is over budget) are split at the furthest sentence end, whitespace or,
as a last resort, character that keeps the chunk within budget.

The packing algorithm is written once, as a generator that yields the texts
it needs counted and receives their counts back. `ChunkBuilder.build` drives
it with a synchronous counter and `ChunkBuilder.abuild` awaits each request,
so a remote tokenizer has at most one call outstanding.
"""
from __future__ import annotations

import inspect
import logging
import re
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Generator, Sequence

from .schema import DocumentStructure, FileType, ParagraphInfo, TextChunk
from .structure import analyze_structure
from .tokens import TiktokenCounter, TokenCounter

LOGGER = logging.getLogger(__name__)

_SENTENCE_END_RE = re.compile(r"[.!?]+(?=\s)")
_WHITESPACE_RE = re.compile(r"\s+")

# Fraction of the budget a sentence-aligned piece must reach before a
# whitespace cut is preferred over it.
_MIN_SENTENCE_PIECE_RATIO = 0.25


@dataclass(frozen=True, slots=True)
class ChunkingConfig:
    """Token budget for chunking.

    Attributes:
        target_tokens: Ceiling on tokens per chunk.
        overlap_tokens: Tokens of trailing context repeated at the start of
            the next chunk.
        min_chunk_tokens: Floor below which a chunk is filled by splitting
            the next paragraph instead of being closed.
    """

    target_tokens: int = 800
    overlap_tokens: int = 100
    min_chunk_tokens: int = 100

    def __post_init__(self) -> None:
        if self.target_tokens <= 0:
            raise ValueError("target_tokens must be a positive integer")
        if not 0 <= self.overlap_tokens < self.target_tokens:
            raise ValueError("overlap_tokens must be non-negative and smaller than target_tokens")
        if not 0 <= self.min_chunk_tokens <= self.target_tokens:
            raise ValueError("min_chunk_tokens must be between 0 and target_tokens")

    @classmethod
    def for_file_type(cls, file_type: FileType | str | None) -> ChunkingConfig:
        """Return the size profile tuned for a document format."""
        key = FileType.parse(file_type)
        if key is None and file_type is not None:
            LOGGER.warning("Unknown file type %r; using the default chunk profile", file_type)
        target, minimum, overlap_ratio = _PROFILES.get(key, _DEFAULT_PROFILE)
        return cls(
            target_tokens=target,
            overlap_tokens=round(target * overlap_ratio),
            min_chunk_tokens=minimum,
        )


# (target_tokens, min_chunk_tokens, overlap ratio of target)
_DEFAULT_PROFILE = (800, 100, 0.125)
_PROFILES: dict[FileType | None, tuple[int, int, float]] = {
    FileType.PDF: (1000, 150, 0.15),
    FileType.DOCX: (1000, 150, 0.15),
    FileType.TXT: (800, 100, 0.125),
    FileType.MD: (900, 120, 0.15),
    FileType.HTML: (900, 120, 0.15),
}


@dataclass(slots=True)
class _Span:
    start: int
    end: int
    tokens: int
    starts_at_boundary: bool
    ends_at_boundary: bool = True
    # False while the span only repeats text already emitted (an overlap seed).
    fresh: bool = True


class _ChunkPlan:
    """Packs the paragraphs of one document into spans."""

    def __init__(self, text: str, structure: DocumentStructure, config: ChunkingConfig) -> None:
        self.text = text
        self.structure = structure
        self.config = config
        self.spans: list[_Span] = []

    def run(self) -> Generator[list[str], list[int], list[_Span]]:
        paragraphs = self.structure.paragraphs
        if not paragraphs:
            return self.spans
        paragraph_tokens = yield [self.text[p.start_char : p.end_char] for p in paragraphs]
        current: _Span | None = None
        for paragraph, tokens in zip(paragraphs, paragraph_tokens):
            current = yield from self._add_paragraph(current, paragraph, tokens)
        if current is not None and current.fresh:
            self.spans.append(current)
        return self.spans

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _add_paragraph(self, current: _Span | None, paragraph: ParagraphInfo, tokens: int):
        target = self.config.target_tokens
        if current is not None:
            combined = yield from self._count(current.start, paragraph.end_char)
            if combined <= target:
                return _Span(current.start, paragraph.end_char, combined, current.starts_at_boundary)
            if current.fresh and current.tokens >= self.config.min_chunk_tokens:
                self.spans.append(current)
                current = yield from self._overlap_seed(current)
                if current is not None:
                    combined = yield from self._count(current.start, paragraph.end_char)
                    if combined <= target:
                        return _Span(current.start, paragraph.end_char, combined, False)
            if current is not None and not current.fresh and tokens <= target:
                current = None

        if current is None and tokens <= target:
            return _Span(paragraph.start_char, paragraph.end_char, tokens, True)
        return (yield from self._split_paragraph(current, paragraph))

    def _split_paragraph(self, head: _Span | None, paragraph: ParagraphInfo):
        """Fill chunks with pieces of `paragraph`; the last piece stays open."""
        end = paragraph.end_char
        position = paragraph.start_char
        if head is None:
            start, starts, head_fresh = position, True, False
        else:
            start, starts, head_fresh = head.start, head.starts_at_boundary, head.fresh

        while True:
            tokens = yield from self._count(start, end)
            if tokens <= self.config.target_tokens:
                return _Span(start, end, tokens, starts)

            cut = yield from self._find_cut(start, position, end)
            if cut is None:
                # Not even one word of the paragraph fits behind the head.
                seed = None
                if head_fresh:
                    self.spans.append(head)
                    seed = yield from self._overlap_seed(head)
                head = seed
                head_fresh = False
                if seed is not None:
                    start, starts = seed.start, False
                else:
                    start, starts = position, position == paragraph.start_char
                continue

            cut_end, cut_tokens = cut
            piece = _Span(start, cut_end, cut_tokens, starts, ends_at_boundary=False)
            self.spans.append(piece)
            position = self._skip_whitespace(cut_end, end)
            if position >= end:
                piece.ends_at_boundary = True
                return None
            head = yield from self._overlap_seed(piece)
            head_fresh = False
            start = head.start if head is not None else position
            starts = False

    # ------------------------------------------------------------------
    # Boundary search
    # ------------------------------------------------------------------

    def _find_cut(self, start: int, position: int, end: int):
        """Return the furthest `(cut, tokens)` in `(position, end)` keeping `[start, cut)` in budget.

        Returns None when text precedes `position` and no word of the
        paragraph fits after it; the caller then drops that text.
        """
        target = self.config.target_tokens
        sentence_cuts = [
            match.end()
            for match in _SENTENCE_END_RE.finditer(self.text, position, end)
            if position < match.end() < end
        ]
        best = yield from self._largest_fitting(start, sentence_cuts)
        if best is not None and best[1] >= target * _MIN_SENTENCE_PIECE_RATIO:
            return best

        word_cuts = [
            match.start()
            for match in _WHITESPACE_RE.finditer(self.text, position, end)
            if match.start() > position
        ]
        best_word = yield from self._largest_fitting(start, word_cuts)
        if best_word is not None:
            return best_word
        if best is not None:
            return best
        if start < position:
            return None

        hard = yield from self._largest_fitting(start, range(position + 1, end))
        if hard is not None:
            return hard
        tokens = yield from self._count(start, position + 1)
        return position + 1, tokens

    def _largest_fitting(self, start: int, cuts: Sequence[int]):
        best = None
        low, high = 0, len(cuts) - 1
        while low <= high:
            middle = (low + high) // 2
            tokens = yield from self._count(start, cuts[middle])
            if tokens <= self.config.target_tokens:
                best = (cuts[middle], tokens)
                low = middle + 1
            else:
                high = middle - 1
        return best

    def _overlap_seed(self, span: _Span):
        """Return the longest word-aligned tail of `span` within the overlap budget."""
        budget = self.config.overlap_tokens
        if budget <= 0:
            return None
        word_starts = [
            match.end()
            for match in _WHITESPACE_RE.finditer(self.text, span.start, span.end)
            if match.end() < span.end
        ]
        best = None
        low, high = 0, len(word_starts) - 1
        while low <= high:
            middle = (low + high) // 2
            tokens = yield from self._count(word_starts[middle], span.end)
            if tokens <= budget:
                best = (word_starts[middle], tokens)
                high = middle - 1
            else:
                low = middle + 1
        if best is None:
            return None
        return _Span(best[0], span.end, best[1], starts_at_boundary=False, fresh=False)

    def _skip_whitespace(self, position: int, end: int) -> int:
        while position < end and self.text[position].isspace():
            position += 1
        return position

    def _count(self, start: int, end: int):
        (tokens,) = yield [self.text[start:end]]
        return tokens


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------


def _is_async_counter(count_tokens: TokenCounter) -> bool:
    return inspect.iscoroutinefunction(count_tokens) or inspect.iscoroutinefunction(
        getattr(count_tokens, "__call__", None)
    )


def _count_batch(count_tokens: TokenCounter, texts: list[str]) -> list[int]:
    count_many = getattr(count_tokens, "count_many", None)
    if len(texts) > 1 and count_many is not None:
        counts = count_many(texts)
    else:
        counts = [count_tokens(text) for text in texts]
    if inspect.isawaitable(counts) or any(inspect.isawaitable(count) for count in counts):
        raise TypeError("count_tokens returned an awaitable; use ChunkBuilder.abuild instead")
    return list(counts)


async def _acount_batch(count_tokens: TokenCounter, texts: list[str]) -> list[int]:
    count_many = getattr(count_tokens, "count_many", None)
    if len(texts) > 1 and count_many is not None:
        counts = count_many(texts)
        if inspect.isawaitable(counts):
            counts = await counts
        return list(counts)

    counts = []
    for text in texts:
        count = count_tokens(text)
        if inspect.isawaitable(count):
            count = await count
        counts.append(count)
    return counts


class ChunkBuilder:
    """Build `TextChunk`s from a document and its detected structure.

    Args:
        config: Token budget; defaults to `ChunkingConfig()`.
        count_tokens: Token counter collaborator; defaults to tiktoken's
            ``cl100k_base`` encoding.
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        count_tokens: TokenCounter | None = None,
    ) -> None:
        self.config = config or ChunkingConfig()
        self.count_tokens = count_tokens or TiktokenCounter()

    def build(self, text: str, structure: DocumentStructure | None = None) -> list[TextChunk]:
        """Chunk `text` with a synchronous token counter."""
        if _is_async_counter(self.count_tokens):
            raise TypeError("count_tokens is a coroutine function; use ChunkBuilder.abuild instead")
        if structure is None:
            structure = analyze_structure(text)
        plan = _ChunkPlan(text, structure, self.config).run()
        try:
            request = next(plan)
            while True:
                request = plan.send(_count_batch(self.count_tokens, request))
        except StopIteration as stop:
            spans = stop.value
        return self._finalize(text, structure, spans)

    async def abuild(self, text: str, structure: DocumentStructure | None = None) -> list[TextChunk]:
        """Chunk `text`, awaiting every token-count request in turn."""
        if structure is None:
            structure = analyze_structure(text)
        plan = _ChunkPlan(text, structure, self.config).run()
        try:
            request = next(plan)
            while True:
                counts = await _acount_batch(self.count_tokens, request)
                request = plan.send(counts)
        except StopIteration as stop:
            spans = stop.value
        return self._finalize(text, structure, spans)

    def _finalize(self, text: str, structure: DocumentStructure, spans: list[_Span]) -> list[TextChunk]:
        paragraph_starts = [paragraph.start_char for paragraph in structure.paragraphs]
        paragraph_ends = [paragraph.end_char for paragraph in structure.paragraphs]

        chunks: list[TextChunk] = []
        for chunk_index, span in enumerate(spans):
            first = bisect_right(paragraph_ends, span.start)
            last = bisect_left(paragraph_starts, span.end)
            chunks.append(
                TextChunk(
                    content=text[span.start : span.end],
                    start_char=span.start,
                    end_char=span.end,
                    token_count=span.tokens,
                    chunk_index=chunk_index,
                    section=structure.section_at(span.start),
                    paragraph_indices=tuple(
                        structure.paragraphs[position].index for position in range(first, last)
                    ),
                    starts_at_paragraph_boundary=span.starts_at_boundary,
                    ends_at_paragraph_boundary=span.ends_at_boundary,
                )
            )

        if chunks:
            total_tokens = sum(chunk.token_count for chunk in chunks)
            LOGGER.info(
                "Chunked %s chars into %s chunks (%s tokens, avg %s, target %s)",
                len(text),
                len(chunks),
                total_tokens,
                round(total_tokens / len(chunks)),
                self.config.target_tokens,
            )
        return chunks


def chunk_document(
    text: str,
    config: ChunkingConfig | None = None,
    count_tokens: TokenCounter | None = None,
    file_type: FileType | str | None = None,
) -> list[TextChunk]:
    """Analyze the structure of `text` and chunk it.

    Args:
        text: Raw document text.
        config: Token budget; defaults to the profile for `file_type`.
        count_tokens: Synchronous token counter.
        file_type: Declared source format, used as a structure hint.

    Returns:
        Chunks ordered by `chunk_index` and `start_char`.
    """
    structure = analyze_structure(text, file_type)
    builder = ChunkBuilder(config or ChunkingConfig.for_file_type(file_type), count_tokens)
    return builder.build(text, structure)


async def achunk_document(
    text: str,
    config: ChunkingConfig | None = None,
    count_tokens: TokenCounter | None = None,
    file_type: FileType | str | None = None,
) -> list[TextChunk]:
    """Async twin of `chunk_document` for counters that must be awaited."""
    structure = analyze_structure(text, file_type)
    builder = ChunkBuilder(config or ChunkingConfig.for_file_type(file_type), count_tokens)
    return await builder.abuild(text, structure)
