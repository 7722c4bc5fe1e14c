"""Tests for io_utils.py: JSONL chunk rows and sources."""
from __future__ import annotations

import json

from rag_citations.io_utils import load_chunk_rows, load_sources, save_chunk_rows
from rag_citations.schema import DocumentChunkRow, SourceType


class TestChunkRows:
    def test_save_then_load(self, tmp_path):
        rows = [
            DocumentChunkRow("doc-1", 0, "Héllo world.", 0, 12, 2),
            DocumentChunkRow("doc-1", 1, "More text.", 14, 24, 2, embedding_id="emb-1"),
        ]
        path = tmp_path / "nested" / "chunks.jsonl"
        save_chunk_rows(rows, path)
        assert load_chunk_rows(path) == rows

    def test_one_json_object_per_line(self, tmp_path):
        path = tmp_path / "chunks.jsonl"
        save_chunk_rows([DocumentChunkRow("d", 0, "a", 0, 1, 1)], path)
        (line,) = path.read_text(encoding="utf-8").splitlines()
        assert json.loads(line)["document_id"] == "d"

    def test_blank_lines_skipped(self, tmp_path):
        path = tmp_path / "chunks.jsonl"
        record = {
            "document_id": "d",
            "chunk_index": 0,
            "content": "a",
            "start_char": 0,
            "end_char": 1,
            "token_count": 1,
        }
        path.write_text(json.dumps(record) + "\n\n", encoding="utf-8")
        (row,) = load_chunk_rows(path)
        assert row.embedding_id is None


class TestLoadSources:
    def test_camel_case_records(self, tmp_path):
        path = tmp_path / "sources.jsonl"
        records = [
            {"type": "document", "title": "Policy", "documentId": "doc-1", "metadata": {"fileSize": 10}},
            {"type": "web", "title": "Guide", "url": "https://example.com", "score": 0.4},
        ]
        path.write_text("\n".join(json.dumps(record) for record in records), encoding="utf-8")
        document, web = load_sources(path)
        assert document.type is SourceType.DOCUMENT
        assert document.metadata.file_size == 10
        assert web.source_id == "https://example.com"
        assert web.metadata is None
