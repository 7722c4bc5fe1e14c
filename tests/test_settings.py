"""Tests for settings.py: defaults, env overrides and chunk profiles."""
from __future__ import annotations

import logging

import pytest

from rag_citations.citations import DEFAULT_PATTERNS
from rag_citations.settings import (
    ChunkingSettings,
    CitationSettings,
    Settings,
    TokenizerSettings,
    load_settings,
)

_ENV_VARS = (
    "RAG_CHUNK_TARGET_TOKENS",
    "RAG_CHUNK_OVERLAP_TOKENS",
    "RAG_CHUNK_MIN_TOKENS",
    "RAG_CHUNK_ADAPTIVE",
    "RAG_TOKEN_ENCODING",
    "RAG_CITATION_PATTERNS",
    "RAG_CITATION_BASELINE_CONFIDENCE",
)


@pytest.fixture()
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("rag_citations.settings.load_dotenv", lambda: False)
    return monkeypatch


class TestChunkingSettings:
    def test_adaptive_uses_file_type_profile(self):
        config = ChunkingSettings().config_for("pdf")
        assert (config.target_tokens, config.overlap_tokens, config.min_chunk_tokens) == (1000, 150, 150)

    def test_explicit_values_when_not_adaptive(self):
        settings = ChunkingSettings(target_tokens=300, overlap_tokens=30, min_chunk_tokens=50, adaptive=False)
        config = settings.config_for("pdf")
        assert (config.target_tokens, config.overlap_tokens, config.min_chunk_tokens) == (300, 30, 50)

    def test_invalid_explicit_values_raise(self):
        with pytest.raises(ValueError):
            ChunkingSettings(target_tokens=50, overlap_tokens=50, adaptive=False)

    def test_invalid_explicit_values_raise_even_when_adaptive(self):
        with pytest.raises(ValueError, match="overlap_tokens"):
            ChunkingSettings(target_tokens=100, overlap_tokens=200)


class TestCitationSettings:
    def test_defaults_to_full_grammar(self):
        assert CitationSettings().patterns == DEFAULT_PATTERNS
        assert CitationSettings().baseline_confidence == 0.8

    def test_baseline_out_of_range(self):
        with pytest.raises(ValueError):
            CitationSettings(baseline_confidence=1.5)


class TestLoadSettings:
    def test_defaults_when_env_vars_absent(self, clean_env):
        settings = load_settings()
        assert isinstance(settings, Settings)
        assert settings.chunking == ChunkingSettings()
        assert settings.tokenizer == TokenizerSettings()
        assert settings.tokenizer.encoding_name == "cl100k_base"
        assert settings.citations.pattern_names == tuple(p.name for p in DEFAULT_PATTERNS)

    def test_env_vars_override_defaults(self, clean_env):
        clean_env.setenv("RAG_CHUNK_TARGET_TOKENS", "400")
        clean_env.setenv("RAG_CHUNK_OVERLAP_TOKENS", "40")
        clean_env.setenv("RAG_CHUNK_MIN_TOKENS", "20")
        clean_env.setenv("RAG_CHUNK_ADAPTIVE", "false")
        clean_env.setenv("RAG_TOKEN_ENCODING", "o200k_base")
        clean_env.setenv("RAG_CITATION_PATTERNS", "document, numeric")
        clean_env.setenv("RAG_CITATION_BASELINE_CONFIDENCE", "0.5")

        settings = load_settings()
        config = settings.chunking.config_for("md")
        assert (config.target_tokens, config.overlap_tokens, config.min_chunk_tokens) == (400, 40, 20)
        assert settings.tokenizer.encoding_name == "o200k_base"
        assert settings.citations.pattern_names == ("document", "numeric")
        assert [p.name for p in settings.citations.patterns] == ["document", "numeric"]
        assert settings.citations.baseline_confidence == 0.5

    def test_unknown_pattern_name_raises(self, clean_env):
        clean_env.setenv("RAG_CITATION_PATTERNS", "document,footnote")
        with pytest.raises(ValueError, match="footnote"):
            load_settings()

    def test_non_numeric_target_raises(self, clean_env):
        clean_env.setenv("RAG_CHUNK_TARGET_TOKENS", "lots")
        with pytest.raises(ValueError):
            load_settings()

    def test_explicit_sizes_disable_adaptive_by_default(self, clean_env):
        clean_env.setenv("RAG_CHUNK_TARGET_TOKENS", "400")
        clean_env.setenv("RAG_CHUNK_OVERLAP_TOKENS", "40")

        settings = load_settings()
        assert settings.chunking.adaptive is False
        config = settings.chunking.config_for("pdf")
        assert (config.target_tokens, config.overlap_tokens, config.min_chunk_tokens) == (400, 40, 100)

    def test_adaptive_with_explicit_sizes_warns(self, clean_env, caplog):
        clean_env.setenv("RAG_CHUNK_TARGET_TOKENS", "400")
        clean_env.setenv("RAG_CHUNK_ADAPTIVE", "true")

        with caplog.at_level(logging.WARNING, logger="rag_citations.settings"):
            settings = load_settings()
        assert settings.chunking.adaptive is True
        assert settings.chunking.config_for("pdf").target_tokens == 1000
        assert "RAG_CHUNK_TARGET_TOKENS" in caplog.text

    def test_no_warning_without_explicit_sizes(self, clean_env, caplog):
        with caplog.at_level(logging.WARNING, logger="rag_citations.settings"):
            settings = load_settings()
        assert settings.chunking.adaptive is True
        assert caplog.text == ""

    def test_inconsistent_explicit_sizes_raise(self, clean_env):
        clean_env.setenv("RAG_CHUNK_TARGET_TOKENS", "50")
        clean_env.setenv("RAG_CHUNK_OVERLAP_TOKENS", "80")
        with pytest.raises(ValueError, match="overlap_tokens"):
            load_settings()
