from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .chunking import ChunkingConfig
from .citations import DEFAULT_PATTERNS, CitationPattern, patterns_for
from .schema import FileType
from .tokens import DEFAULT_ENCODING

LOGGER = logging.getLogger(__name__)

_CHUNK_SIZE_VARS = ("RAG_CHUNK_TARGET_TOKENS", "RAG_CHUNK_OVERLAP_TOKENS", "RAG_CHUNK_MIN_TOKENS")


@dataclass(slots=True)
class ChunkingSettings:
    """Chunk sizing used at ingestion time."""

    target_tokens: int = 800
    overlap_tokens: int = 100
    min_chunk_tokens: int = 100
    adaptive: bool = True

    def __post_init__(self) -> None:
        self.explicit_config()

    def explicit_config(self) -> ChunkingConfig:
        """Return the explicit sizes as a config, raising `ValueError` if they are invalid."""
        return ChunkingConfig(
            target_tokens=self.target_tokens,
            overlap_tokens=self.overlap_tokens,
            min_chunk_tokens=self.min_chunk_tokens,
        )

    def config_for(self, file_type: FileType | str | None = None) -> ChunkingConfig:
        """Return the per-format profile when adaptive, else the explicit sizes."""
        if self.adaptive:
            return ChunkingConfig.for_file_type(file_type)
        return self.explicit_config()


@dataclass(slots=True)
class TokenizerSettings:
    """tiktoken encoding used for token counts."""

    encoding_name: str = DEFAULT_ENCODING


@dataclass(slots=True)
class CitationSettings:
    """Citation grammar and link scoring."""

    pattern_names: tuple[str, ...] = field(default_factory=lambda: tuple(p.name for p in DEFAULT_PATTERNS))
    baseline_confidence: float = 0.8

    def __post_init__(self) -> None:
        if not 0.0 <= self.baseline_confidence <= 1.0:
            raise ValueError("baseline_confidence must be within [0, 1]")

    @property
    def patterns(self) -> tuple[CitationPattern, ...]:
        return patterns_for(self.pattern_names)


@dataclass(slots=True)
class Settings:
    chunking: ChunkingSettings = field(default_factory=ChunkingSettings)
    tokenizer: TokenizerSettings = field(default_factory=TokenizerSettings)
    citations: CitationSettings = field(default_factory=CitationSettings)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    """Load environment-backed settings and return typed config objects.

    Returns:
        `Settings` grouping chunking, tokenizer and citation configuration.

    Setting any of the explicit chunk size variables turns adaptive sizing
    off unless `RAG_CHUNK_ADAPTIVE` asks for it.

    Raises:
        ValueError: If a numeric variable does not parse, the explicit chunk
            sizes are inconsistent or a citation pattern name is unknown.
    """
    load_dotenv()
    citations = CitationSettings(
        baseline_confidence=float(os.getenv("RAG_CITATION_BASELINE_CONFIDENCE", "0.8")),
    )
    raw_patterns = os.getenv("RAG_CITATION_PATTERNS", "")
    pattern_names = tuple(name.strip() for name in raw_patterns.split(",") if name.strip())
    if pattern_names:
        patterns_for(pattern_names)
        citations.pattern_names = pattern_names

    explicit_sizes = [name for name in _CHUNK_SIZE_VARS if os.getenv(name)]
    chunking = ChunkingSettings(
        target_tokens=int(os.getenv("RAG_CHUNK_TARGET_TOKENS", "800")),
        overlap_tokens=int(os.getenv("RAG_CHUNK_OVERLAP_TOKENS", "100")),
        min_chunk_tokens=int(os.getenv("RAG_CHUNK_MIN_TOKENS", "100")),
        adaptive=_env_bool("RAG_CHUNK_ADAPTIVE", not explicit_sizes),
    )
    if chunking.adaptive and explicit_sizes:
        LOGGER.warning(
            "Adaptive chunk sizing is on; per-format profiles override %s",
            ", ".join(explicit_sizes),
        )

    return Settings(
        chunking=chunking,
        tokenizer=TokenizerSettings(encoding_name=os.getenv("RAG_TOKEN_ENCODING", DEFAULT_ENCODING)),
        citations=citations,
    )
