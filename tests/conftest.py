"""Shared pytest fixtures for rag_citations unit tests."""
from __future__ import annotations

import pytest

from rag_citations.schema import EnhancedSource, SourceMetadata, SourceType
from rag_citations.tokens import WhitespaceTokenCounter


@pytest.fixture()
def whitespace_counter() -> WhitespaceTokenCounter:
    return WhitespaceTokenCounter()


@pytest.fixture()
def intro_body_text() -> str:
    return "# Intro\n\nHello world.\n\n# Body\n\nMore text here."


@pytest.fixture()
def handbook_text() -> str:
    return (
        "# Remote Work\n\n"
        "Employees may work remotely up to three days a week. Managers approve schedules "
        "at the start of each quarter.\n\n"
        "A stable connection and a quiet workspace are expected. VPN is required for all "
        "connections to internal systems.\n\n"
        "# Security\n\n"
        "Lost devices must be reported within one hour. Use encrypted storage for customer "
        "data and never share credentials over chat or email.\n\n"
        "Short note.\n\n"
        "# Travel\n\n"
        "Working from another country is capped at fourteen days per year. Beyond fourteen "
        "days, employees must open a Global Mobility case before departure."
    )


@pytest.fixture()
def document_source() -> EnhancedSource:
    return EnhancedSource(
        type=SourceType.DOCUMENT,
        title="Remote Work Policy",
        document_id="doc-1",
        snippet="Employees may work remotely...",
        metadata=SourceMetadata(document_type="pdf", file_size=2048, relevance_score=0.9, quality_score=0.7),
    )


@pytest.fixture()
def web_source() -> EnhancedSource:
    return EnhancedSource(
        type=SourceType.WEB,
        title="Travel Guidance",
        url="https://example.com/travel",
        metadata=SourceMetadata(access_date="2024-05-01"),
    )


@pytest.fixture()
def sample_sources(document_source, web_source) -> list[EnhancedSource]:
    return [document_source, web_source]
