"""Unit tests for settings loading and validation."""

import pytest
from pydantic import ValidationError

from pharma_rag.config import Settings


def test_defaults() -> None:
    s = Settings(_env_file=None)
    assert s.chunk_size == 1200
    assert s.chunk_overlap == 150
    assert s.embedding_batch_size == 8
    assert s.embedding_max_retries == 5
    assert s.embedding_dim == 1536
    assert s.retrieval_top_k == 5
    assert s.max_context_chars == 2000
    assert s.ingest_stage == "3rd"
    assert s.ingest_subject == "Pharmacology"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHUNK_SIZE", "500")
    monkeypatch.setenv("CHUNK_OVERLAP", "50")
    monkeypatch.setenv("CHROMA_COLLECTION", "pharm-test")
    s = Settings(_env_file=None)
    assert s.chunk_size == 500
    assert s.chunk_overlap == 50
    assert s.chroma_collection == "pharm-test"


def test_overlap_must_be_smaller_than_size() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, chunk_size=100, chunk_overlap=100)


def test_missing_query_config_lists_api_key() -> None:
    s = Settings(_env_file=None, openai_api_key="")
    assert s.missing_query_config() == ["OPENAI_API_KEY"]


def test_complete_config_reports_nothing_missing() -> None:
    s = Settings(_env_file=None, openai_api_key="sk-test", data_dir="data")
    assert s.missing_query_config() == []
    assert s.missing_ingest_config() == []


def test_missing_data_dir_blocks_ingestion() -> None:
    s = Settings(_env_file=None, openai_api_key="sk-test", data_dir="")
    assert s.missing_ingest_config() == ["DATA_DIR"]


def test_configure_logging_replaces_root_handlers() -> None:
    import logging

    from pharma_rag.logging_utils import configure_logging

    root = logging.getLogger()
    saved = (root.handlers[:], root.level)
    try:
        configure_logging("debug")
        configure_logging("DEBUG")
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
