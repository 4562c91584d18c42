"""Ingestion driver — PDF directory → chunks → embeddings → vector index.

Each document moves through::

    EXTRACTING ─(empty text layer: OCR)─▶ CHUNKING ─▶ EMBEDDING ─▶ DONE
         │                                   │
         └──────────── SKIPPED ◀─────────────┘

A document that yields no text is skipped; a batch whose embedding fails
is skipped after a pause while the rest of the document continues. Each
successful batch is upserted right away, followed by a short pacing delay.
Vector-index failures are not absorbed and abort the run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from pharma_rag.exceptions import EmbeddingError, ExtractionError, PharmaRagError
from pharma_rag.ingestion.chunker import Chunk, Chunker
from pharma_rag.ingestion.loader import ExtractedText, list_pdfs
from pharma_rag.ingestion.normalizer import clean_text, detect_language
from pharma_rag.retrieval.base import VectorIndexBase
from pharma_rag.retrieval.models import IndexedRecord, RecordMetadata

logger = logging.getLogger(__name__)


class DocumentState(str, Enum):
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    DONE = "done"
    SKIPPED = "skipped"


class TextExtractor(Protocol):
    async def extract(self, path: str | Path) -> ExtractedText: ...


class BatchEmbedder(Protocol):
    batch_size: int

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


class IngestionError(PharmaRagError):
    """The ingestion run cannot start (missing directory, no PDFs)."""


@dataclass
class DocumentReport:
    """Outcome of ingesting one document."""

    name: str
    state: DocumentState = DocumentState.EXTRACTING
    ocr_applied: bool = False
    chunks: int = 0
    upserted: int = 0
    failed_batches: int = 0
    reason: str = ""

    def skip(self, reason: str) -> DocumentReport:
        self.state = DocumentState.SKIPPED
        self.reason = reason
        return self


@dataclass
class IngestionReport:
    """Outcome of a whole ingestion run."""

    documents: list[DocumentReport] = field(default_factory=list)

    @property
    def done(self) -> list[DocumentReport]:
        return [d for d in self.documents if d.state is DocumentState.DONE]

    @property
    def skipped(self) -> list[DocumentReport]:
        return [d for d in self.documents if d.state is DocumentState.SKIPPED]

    @property
    def upserted(self) -> int:
        return sum(d.upserted for d in self.documents)

    @property
    def failed_batches(self) -> int:
        return sum(d.failed_batches for d in self.documents)


class IngestionDriver:
    """Drives extraction, chunking, embedding and upserting per document.

    Parameters
    ----------
    extractor:
        PDF text extractor (see :class:`~pharma_rag.ingestion.loader.PdfTextExtractor`).
    embedder:
        Batch embedder; its ``batch_size`` sets the upsert granularity.
    index:
        Target vector index.
    chunker:
        Chunking parameters.
    stage / subject:
        Tags written into every record's metadata.
    pacing_delay:
        Seconds to wait after every upsert.
    failure_pause:
        Seconds to wait after a failed embedding batch.
    concurrency:
        Documents processed at the same time. Batches within one document
        are always sequential.
    sleep:
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        embedder: BatchEmbedder,
        index: VectorIndexBase,
        *,
        chunker: Chunker | None = None,
        stage: str = "3rd",
        subject: str = "Pharmacology",
        pacing_delay: float = 0.3,
        failure_pause: float = 3.0,
        concurrency: int = 1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self._extractor = extractor
        self._embedder = embedder
        self._index = index
        self._chunker = chunker or Chunker()
        self.stage = stage
        self.subject = subject
        self.pacing_delay = pacing_delay
        self.failure_pause = failure_pause
        self.concurrency = concurrency
        self._sleep = sleep

    async def ingest_directory(self, data_dir: str | Path) -> IngestionReport:
        """Ingest every PDF in *data_dir*; reports come back in file-name order."""
        root = Path(data_dir)
        if not root.is_dir():
            raise IngestionError(f"data folder not found: {root}", {"data_dir": str(root)})
        pdfs = list_pdfs(root)
        if not pdfs:
            raise IngestionError(f"No PDFs in {root}", {"data_dir": str(root)})

        logger.info("Ingesting %d PDF(s) from %s", len(pdfs), root)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(path: Path) -> DocumentReport:
            async with semaphore:
                return await self.ingest_document(path)

        reports = await asyncio.gather(*(_bounded(p) for p in pdfs))
        report = IngestionReport(documents=list(reports))
        logger.info(
            "All files processed: %d done, %d skipped, %d records upserted, %d failed batch(es)",
            len(report.done),
            len(report.skipped),
            report.upserted,
            report.failed_batches,
        )
        return report

    async def ingest_document(self, path: str | Path) -> DocumentReport:
        path = Path(path)
        report = DocumentReport(name=path.name)
        logger.info("Processing %s", path.name)

        try:
            extracted = await self._extractor.extract(path)
        except ExtractionError as exc:
            logger.warning("Skipping %s: %s", path.name, exc.message)
            return report.skip(exc.message)
        report.ocr_applied = extracted.ocr_applied

        report.state = DocumentState.CHUNKING
        chunks = list(self._chunker.split(path.name, clean_text(extracted.text)))
        if not chunks:
            logger.warning("Skipping %s: empty after chunking", path.name)
            return report.skip("empty after chunking")
        report.chunks = len(chunks)
        logger.info("%s: %d chunks", path.name, len(chunks))

        report.state = DocumentState.EMBEDDING
        batch_size = self._embedder.batch_size
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]
            try:
                vectors = await self._embedder.embed_batch([c.text for c in batch])
            except EmbeddingError as exc:
                report.failed_batches += 1
                logger.error(
                    "%s: embedding failed for chunks %d-%d, skipping batch: %s",
                    path.name,
                    start,
                    start + len(batch) - 1,
                    exc,
                )
                await self._sleep(self.failure_pause)
                continue

            await self._index.upsert(self._records(batch, vectors))
            report.upserted += len(batch)
            logger.info("%s: upserted %d/%d", path.name, min(start + batch_size, len(chunks)), len(chunks))
            await self._sleep(self.pacing_delay)

        report.state = DocumentState.DONE
        logger.info("Finished %s", path.name)
        return report

    def _records(self, batch: Sequence[Chunk], vectors: Sequence[list[float]]) -> list[IndexedRecord]:
        return [
            IndexedRecord(
                id=chunk.id,
                vector=vector,
                metadata=RecordMetadata(
                    text=chunk.text,
                    source=chunk.source,
                    lang=detect_language(chunk.text),
                    stage=self.stage,
                    subject=self.subject,
                ),
            )
            for chunk, vector in zip(batch, vectors)
        ]
