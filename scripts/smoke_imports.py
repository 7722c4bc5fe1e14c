from rag_citations.metrics import chunking_metrics
from rag_citations.pipeline import ingest_document, render_answer
from rag_citations.schema import EnhancedSource
from rag_citations.tokens import WhitespaceTokenCounter

SAMPLE = """# Remote work

Employees may work remotely up to three days a week.

# Equipment

Laptops are issued on the first day. VPN access is required off-site.
"""


if __name__ == "__main__":
    rows = ingest_document(SAMPLE, "handbook", file_type="md", count_tokens=WhitespaceTokenCounter())
    sources = [EnhancedSource(type="document", title="Handbook", document_id="handbook")]
    rendered = render_answer("Remote work is capped at three days [Document 1].", sources)
    print(
        {
            "rows": len(rows),
            "citations": rendered.result.citation_count,
            "segments": rendered.result.segment_count,
            "confidence": [round(link.confidence, 2) for link in rendered.links],
        }
    )
