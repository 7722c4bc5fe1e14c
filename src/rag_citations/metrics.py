from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Sequence

import numpy as np

from .schema import TextChunk


@dataclass(slots=True)
class ChunkingMetrics:
    """Size and alignment summary of one chunking run."""

    chunk_count: int
    total_tokens: int
    avg_chunk_tokens: float
    min_chunk_tokens: int
    max_chunk_tokens: int
    chunk_token_variance: float
    paragraph_aligned_ratio: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def chunking_metrics(chunks: Sequence[TextChunk]) -> ChunkingMetrics:
    """Summarise chunk sizes and how many chunks align with paragraph edges.

    Args:
        chunks: Output of one `chunk_document` call.

    Returns:
        `ChunkingMetrics`; all zeros for an empty chunk list. Variance is the
        population variance of per-chunk token counts.
    """
    if not chunks:
        return ChunkingMetrics(0, 0, 0.0, 0, 0, 0.0, 0.0)

    tokens = np.array([chunk.token_count for chunk in chunks], dtype=float)
    aligned = np.array(
        [chunk.starts_at_paragraph_boundary and chunk.ends_at_paragraph_boundary for chunk in chunks],
        dtype=bool,
    )
    return ChunkingMetrics(
        chunk_count=len(chunks),
        total_tokens=int(tokens.sum()),
        avg_chunk_tokens=float(tokens.mean()),
        min_chunk_tokens=int(tokens.min()),
        max_chunk_tokens=int(tokens.max()),
        chunk_token_variance=float(tokens.var()),
        paragraph_aligned_ratio=float(aligned.mean()),
    )


def compare_chunkings(baseline: Sequence[TextChunk], candidate: Sequence[TextChunk]) -> dict[str, float]:
    """Return `candidate - baseline` for every numeric metric."""
    before = chunking_metrics(baseline).as_dict()
    after = chunking_metrics(candidate).as_dict()
    return {name: after[name] - before[name] for name in before}
