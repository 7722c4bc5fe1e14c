from __future__ import annotations

from dataclasses import asdict
import json
from pathlib import Path
from typing import Iterable

from .schema import DocumentChunkRow, EnhancedSource


def _load_jsonl(path: str | Path) -> list[dict]:
    records: list[dict] = []
    with Path(path).open("r", encoding="utf-8") as file_handle:
        for line in file_handle:
            if line.strip():
                records.append(json.loads(line))
    return records


def save_chunk_rows(rows: Iterable[DocumentChunkRow], path: str | Path) -> None:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)

    with destination.open("w", encoding="utf-8") as file_handle:
        for row in rows:
            file_handle.write(json.dumps(asdict(row), ensure_ascii=False) + "\n")


def load_chunk_rows(path: str | Path) -> list[DocumentChunkRow]:
    return [DocumentChunkRow(**record) for record in _load_jsonl(path)]


def load_sources(path: str | Path) -> list[EnhancedSource]:
    """Load answer sources from JSONL; camelCase keys are accepted."""
    return [EnhancedSource.from_dict(record) for record in _load_jsonl(path)]
