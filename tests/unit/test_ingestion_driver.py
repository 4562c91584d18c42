"""Unit tests for the ingestion driver (extractor and embedder faked)."""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Sequence
from pathlib import Path

import pytest
from fakes import FakeClock, InMemoryVectorIndex, fake_openai

from pharma_rag.config import Settings
from pharma_rag.embedding import EmbeddingClient
from pharma_rag.exceptions import (
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    IndexUnavailableError,
)
from pharma_rag.ingestion import __main__ as ingest_cli
from pharma_rag.ingestion.__main__ import build_ingestion_driver
from pharma_rag.ingestion.chunker import Chunker
from pharma_rag.ingestion.driver import DocumentState, IngestionDriver, IngestionError
from pharma_rag.ingestion.loader import ExtractedText
from pharma_rag.retry import BackoffGate


class FakeExtractor:
    """Returns canned text per file name; ``None`` means extraction fails."""

    def __init__(self, texts: dict[str, str | None], *, ocr: Sequence[str] = ()) -> None:
        self.texts = texts
        self.ocr = set(ocr)

    async def extract(self, path: str | Path) -> ExtractedText:
        name = Path(path).name
        await asyncio.sleep(0)
        text = self.texts.get(name)
        if text is None:
            raise ExtractionError(name, "no text extracted even after OCR")
        return ExtractedText(text, ocr_applied=name in self.ocr)


class FlakyEmbedder:
    """Batch embedder whose listed calls (1-based) fail."""

    def __init__(self, batch_size: int = 8, fail_calls: Sequence[int] = ()) -> None:
        self.batch_size = batch_size
        self.fail_calls = set(fail_calls)
        self.calls: list[list[str]] = []

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if len(self.calls) in self.fail_calls:
            raise EmbeddingError("Embedding service still rate limited after 6 attempts")
        return [[1.0, 0.0, 0.0] for _ in texts]


def _pdfs(root: Path, *names: str) -> Path:
    for name in names:
        (root / name).write_bytes(b"%PDF-1.4")
    return root


def _driver(extractor, embedder, index, clock: FakeClock, **kwargs) -> IngestionDriver:
    return IngestionDriver(extractor, embedder, index, sleep=clock.sleep, **kwargs)


@pytest.mark.asyncio
async def test_end_to_end_single_document(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "pharm101.pdf")
    embedder = EmbeddingClient(fake_openai(), dimensions=3, gate=BackoffGate(clock=fake_clock, sleep=fake_clock.sleep))
    driver = _driver(FakeExtractor({"pharm101.pdf": "a" * 2000}), embedder, memory_index, fake_clock)

    report = await driver.ingest_directory(data)

    expected_ids = [hashlib.sha1(f"pharm101.pdf-{i}".encode()).hexdigest() for i in range(2)]
    assert sorted(memory_index.records) == sorted(expected_ids)
    first = memory_index.records[expected_ids[0]].metadata
    assert first.text == "a" * 1200
    assert (first.source, first.lang, first.stage, first.subject) == ("pharm101.pdf", "EN", "3rd", "Pharmacology")
    assert len(memory_index.records[expected_ids[1]].metadata.text) == 950

    [doc] = report.documents
    assert doc.state is DocumentState.DONE
    assert (doc.chunks, doc.upserted, doc.failed_batches) == (2, 2, 0)
    assert report.upserted == 2


@pytest.mark.asyncio
async def test_reingestion_is_idempotent(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "pharm101.pdf")
    driver = _driver(FakeExtractor({"pharm101.pdf": "dose " * 700}), FlakyEmbedder(), memory_index, fake_clock)

    await driver.ingest_directory(data)
    snapshot = {k: v.metadata.text for k, v in memory_index.records.items()}
    await driver.ingest_directory(data)

    assert {k: v.metadata.text for k, v in memory_index.records.items()} == snapshot


@pytest.mark.asyncio
async def test_unreadable_document_is_skipped(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "a.pdf", "scanned.pdf")
    extractor = FakeExtractor({"a.pdf": "Clearance and half-life.", "scanned.pdf": None})
    report = await _driver(extractor, FlakyEmbedder(), memory_index, fake_clock).ingest_directory(data)

    assert [d.name for d in report.done] == ["a.pdf"]
    [skipped] = report.skipped
    assert skipped.name == "scanned.pdf"
    assert "scanned.pdf" in skipped.reason
    assert {r.metadata.source for r in memory_index.records.values()} == {"a.pdf"}


@pytest.mark.asyncio
async def test_blank_document_is_skipped(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "blank.pdf")
    report = await _driver(FakeExtractor({"blank.pdf": "  \n\f  "}), FlakyEmbedder(), memory_index, fake_clock).ingest_directory(data)
    assert report.documents[0].state is DocumentState.SKIPPED
    assert memory_index.upsert_calls == []


@pytest.mark.asyncio
async def test_failed_batch_does_not_stop_the_document(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "pharm101.pdf")
    embedder = FlakyEmbedder(batch_size=1, fail_calls=[2])
    driver = _driver(
        FakeExtractor({"pharm101.pdf": "x" * 2500}),
        embedder,
        memory_index,
        fake_clock,
        pacing_delay=0.3,
        failure_pause=3.0,
    )

    report = await driver.ingest_directory(data)

    [doc] = report.documents
    assert doc.state is DocumentState.DONE
    assert (doc.chunks, doc.upserted, doc.failed_batches) == (3, 2, 1)
    assert len(memory_index.upsert_calls) == 2
    assert fake_clock.sleeps == [0.3, 3.0, 0.3]


@pytest.mark.asyncio
async def test_batches_are_upserted_as_they_are_embedded(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "pharm101.pdf")
    embedder = FlakyEmbedder(batch_size=2)
    driver = _driver(
        FakeExtractor({"pharm101.pdf": "y" * 500}),
        embedder,
        memory_index,
        fake_clock,
        chunker=Chunker(100, 0),
    )

    await driver.ingest_directory(data)

    assert [len(ids) for ids in memory_index.upsert_calls] == [2, 2, 1]
    assert fake_clock.sleeps == [0.3, 0.3, 0.3]


@pytest.mark.asyncio
async def test_missing_directory(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    driver = _driver(FakeExtractor({}), FlakyEmbedder(), memory_index, fake_clock)
    with pytest.raises(IngestionError, match="not found"):
        await driver.ingest_directory(tmp_path / "nope")


@pytest.mark.asyncio
async def test_directory_without_pdfs(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    (tmp_path / "notes.txt").write_text("not a pdf")
    driver = _driver(FakeExtractor({}), FlakyEmbedder(), memory_index, fake_clock)
    with pytest.raises(IngestionError, match="No PDFs"):
        await driver.ingest_directory(tmp_path)


@pytest.mark.asyncio
async def test_index_failure_aborts_the_run(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "pharm101.pdf")
    memory_index.unavailable = True
    driver = _driver(FakeExtractor({"pharm101.pdf": "text"}), FlakyEmbedder(), memory_index, fake_clock)
    with pytest.raises(IndexUnavailableError):
        await driver.ingest_directory(data)


@pytest.mark.asyncio
async def test_language_and_tags_per_chunk(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "ar.pdf")
    driver = _driver(
        FakeExtractor({"ar.pdf": "التوافر الحيوي هو جزء الجرعة الذي يصل إلى الدورة الدموية"}, ocr=["ar.pdf"]),
        FlakyEmbedder(),
        memory_index,
        fake_clock,
        stage="4th",
        subject="Pharmaceutics",
    )

    report = await driver.ingest_directory(data)

    [record] = memory_index.records.values()
    assert (record.metadata.lang, record.metadata.stage, record.metadata.subject) == ("AR", "4th", "Pharmaceutics")
    assert report.documents[0].ocr_applied is True


@pytest.mark.asyncio
async def test_surrogates_are_removed_before_embedding(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    data = _pdfs(tmp_path, "bad.pdf")
    embedder = FlakyEmbedder()
    await _driver(FakeExtractor({"bad.pdf": "dose\udcff 5 mg"}), embedder, memory_index, fake_clock).ingest_directory(data)
    assert embedder.calls == [["dose 5 mg"]]


@pytest.mark.asyncio
async def test_concurrent_documents_report_in_name_order(tmp_path: Path, memory_index: InMemoryVectorIndex, fake_clock: FakeClock) -> None:
    names = ["c.pdf", "a.pdf", "b.pdf", "d.pdf"]
    data = _pdfs(tmp_path, *names)
    extractor = FakeExtractor({n: f"text of {n}" for n in names})
    report = await _driver(extractor, FlakyEmbedder(), memory_index, fake_clock, concurrency=3).ingest_directory(data)

    assert [d.name for d in report.documents] == ["a.pdf", "b.pdf", "c.pdf", "d.pdf"]
    assert len(memory_index.records) == 4


def test_concurrency_must_be_positive(memory_index: InMemoryVectorIndex) -> None:
    with pytest.raises(ValueError):
        IngestionDriver(FakeExtractor({}), FlakyEmbedder(), memory_index, concurrency=0)


def test_driver_requires_credentials() -> None:
    with pytest.raises(ConfigurationError) as info:
        build_ingestion_driver(Settings(_env_file=None, openai_api_key=""))
    assert info.value.missing == ["OPENAI_API_KEY"]


def test_driver_is_wired_from_settings() -> None:
    config = Settings(_env_file=None, openai_api_key="sk-test", chunk_size=500, chunk_overlap=50, ingest_stage="2nd")
    driver = build_ingestion_driver(config)
    assert driver.stage == "2nd"
    assert driver.subject == "Pharmacology"


def test_cli_logs_under_its_module_name() -> None:
    assert ingest_cli.logger.name == "pharma_rag.ingestion.__main__"


def test_cli_exits_with_status_1_on_fatal_error(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    monkeypatch.setattr(ingest_cli, "configure_logging", lambda level: None)
    monkeypatch.setattr(ingest_cli, "default_settings", Settings(_env_file=None, openai_api_key=""))

    with caplog.at_level("ERROR", logger="pharma_rag.ingestion.__main__"):
        assert ingest_cli.main() == 1
    assert "OPENAI_API_KEY" in caplog.text
