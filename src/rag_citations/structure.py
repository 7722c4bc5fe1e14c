"""Structure analysis: headings and paragraphs with exact character offsets.

Three independent detectors look for markdown, HTML and numbered-outline
headings. All of them run; the structure's flags report what was detected,
but sections are taken from the highest-priority detector that fired
(markdown > HTML > numbered) so boundaries never duplicate each other.

Paragraphs are found independently of headings, by blank-line runs and,
for HTML or DOCX-derived text, by block boundaries.
"""
from __future__ import annotations

import html
import logging
import re
from bisect import bisect_right
from typing import Iterator

from .schema import DocumentStructure, FileType, HeadingStyle, ParagraphInfo, SectionInfo

LOGGER = logging.getLogger(__name__)

MAX_NUMBERED_TITLE_CHARS = 120

_MARKDOWN_HEADING_RE = re.compile(r"(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*")
_FENCE_RE = re.compile(r"[ \t]{0,3}(```|~~~)")
_HTML_HEADING_RE = re.compile(r"<h([1-6])\b[^>]*>(.*?)</h\1\s*>", re.IGNORECASE | re.DOTALL)
_NUMBERED_SECTION_RE = re.compile(r"(\d{1,3}(?:\.\d{1,3})*)[ \t]+(\S.*?)[ \t]*")
_TAG_RE = re.compile(r"<[^>]+>")
_SPACES_RE = re.compile(r"\s+")

_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_LINE_BREAK_RE = re.compile(r"\n\s*")
_HTML_BLOCK_RE = re.compile(
    r"<(?:p|div|li|h[1-6]|blockquote|pre|table|tr|ul|ol|section|article|br)\b[^>]*>",
    re.IGNORECASE,
)
_HTML_BLOCK_END_RE = re.compile(
    r"</(?:p|div|li|h[1-6]|blockquote|pre|table|tr|ul|ol|section|article)\s*>|<br\s*/?>",
    re.IGNORECASE,
)
_SENTENCE_END = (".", "!", "?", ";", ",", ":")


def _iter_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield `(offset, line)` pairs, offsets accumulated while scanning."""
    offset = 0
    for raw_line in text.split("\n"):
        yield offset, raw_line.rstrip("\r")
        offset += len(raw_line) + 1


# ---------------------------------------------------------------------------
# Heading detectors
# ---------------------------------------------------------------------------


def detect_markdown_headings(text: str) -> list[SectionInfo]:
    """Find ATX markdown headings (`#` to `######`), skipping fenced code blocks."""
    sections: list[SectionInfo] = []
    in_fence = False
    for offset, line in _iter_lines(text):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _MARKDOWN_HEADING_RE.fullmatch(line)
        if match is None:
            continue
        sections.append(
            SectionInfo(
                level=len(match.group(1)),
                title=match.group(2).strip(),
                index=len(sections),
                start_char=offset,
            )
        )
    return sections


def detect_html_headings(text: str) -> list[SectionInfo]:
    """Find `<h1>`..`<h6>` elements; nested tags are dropped from titles."""
    sections: list[SectionInfo] = []
    for match in _HTML_HEADING_RE.finditer(text):
        title = html.unescape(_TAG_RE.sub("", match.group(2)))
        title = _SPACES_RE.sub(" ", title).strip()
        if not title:
            continue
        sections.append(
            SectionInfo(
                level=int(match.group(1)),
                title=title,
                index=len(sections),
                start_char=match.start(),
            )
        )
    return sections


def detect_numbered_sections(text: str) -> list[SectionInfo]:
    """Find outline headings such as `2 Scope` or `1.2.3 Limits`.

    The level is the number of outline parts, capped at 6. Lines that read
    like sentences (trailing punctuation) or run long are treated as prose.
    """
    sections: list[SectionInfo] = []
    for offset, line in _iter_lines(text):
        match = _NUMBERED_SECTION_RE.fullmatch(line)
        if match is None:
            continue
        title = match.group(2)
        if len(title) > MAX_NUMBERED_TITLE_CHARS or title.endswith(_SENTENCE_END):
            continue
        sections.append(
            SectionInfo(
                level=min(match.group(1).count(".") + 1, 6),
                title=title,
                index=len(sections),
                start_char=offset,
            )
        )
    return sections


def _resolve_sections(
    candidates: dict[HeadingStyle, list[SectionInfo]], text_length: int
) -> tuple[SectionInfo, ...]:
    """Keep the highest-priority convention and close each section at the next one."""
    chosen: list[SectionInfo] = []
    for style in HeadingStyle:
        if candidates[style]:
            chosen = sorted(candidates[style], key=lambda section: section.start_char)
            break

    resolved = []
    for index, section in enumerate(chosen):
        end_char = chosen[index + 1].start_char if index + 1 < len(chosen) else text_length
        resolved.append(
            SectionInfo(
                level=section.level,
                title=section.title,
                index=index,
                start_char=section.start_char,
                end_char=end_char,
            )
        )
    return tuple(resolved)


# ---------------------------------------------------------------------------
# Paragraphs
# ---------------------------------------------------------------------------


def _separators(text: str, file_type: FileType | None) -> list[tuple[int, int]]:
    pattern = _LINE_BREAK_RE if file_type is FileType.DOCX else _BLANK_LINE_RE
    separators = [(match.start(), match.end()) for match in pattern.finditer(text)]
    if file_type is FileType.HTML or _HTML_BLOCK_RE.search(text):
        separators.extend((match.end(), match.end()) for match in _HTML_BLOCK_END_RE.finditer(text))
    separators.sort()
    return separators


def _trimmed(text: str, start: int, end: int) -> tuple[int, int] | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start == end:
        return None
    return start, end


def detect_paragraphs(text: str, file_type: FileType | None = None) -> list[tuple[int, int]]:
    """Return trimmed `(start, end)` spans of every non-blank paragraph."""
    spans: list[tuple[int, int]] = []
    position = 0
    for separator_start, separator_end in _separators(text, file_type):
        if separator_start > position:
            span = _trimmed(text, position, separator_start)
            if span is not None:
                spans.append(span)
        position = max(position, separator_end)
    span = _trimmed(text, position, len(text))
    if span is not None:
        spans.append(span)
    return spans


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _coerce_file_type(file_type: FileType | str | None) -> FileType | None:
    declared = FileType.parse(file_type)
    if declared is None and file_type is not None:
        LOGGER.warning("Unknown file type %r; analysing as plain text", file_type)
    return declared


def analyze_structure(text: str, file_type: FileType | str | None = None) -> DocumentStructure:
    """Detect sections and paragraphs of `text`.

    Args:
        text: Raw document text.
        file_type: Declared source format (`pdf`, `docx`, `txt`, `md`, `html`),
            used to pick paragraph separators.

    Returns:
        An immutable `DocumentStructure`. Text without headings yields no
        sections; empty text yields an empty structure.
    """
    if not text or not text.strip():
        return DocumentStructure()

    declared = _coerce_file_type(file_type)
    candidates = {
        HeadingStyle.MARKDOWN: detect_markdown_headings(text),
        HeadingStyle.HTML: detect_html_headings(text),
        HeadingStyle.NUMBERED: detect_numbered_sections(text),
    }
    sections = _resolve_sections(candidates, len(text))
    section_starts = [section.start_char for section in sections]

    paragraphs = []
    for index, (start, end) in enumerate(detect_paragraphs(text, declared)):
        position = bisect_right(section_starts, start)
        paragraphs.append(
            ParagraphInfo(
                index=index,
                start_char=start,
                end_char=end,
                section_index=sections[position - 1].index if position else None,
            )
        )

    structure = DocumentStructure(
        sections=sections,
        paragraphs=tuple(paragraphs),
        has_markdown_headers=bool(candidates[HeadingStyle.MARKDOWN]),
        has_html_headers=bool(candidates[HeadingStyle.HTML]),
        has_numbered_sections=bool(candidates[HeadingStyle.NUMBERED]),
    )
    LOGGER.debug(
        "Document structure detected: %s sections (%s), %s paragraphs",
        len(sections),
        structure.heading_style.value if structure.heading_style else "none",
        len(paragraphs),
    )
    return structure
