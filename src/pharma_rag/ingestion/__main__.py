"""Command-line entry point: ingest every PDF in the configured data folder.

    python -m pharma_rag.ingestion
"""

from __future__ import annotations

import asyncio
import logging
import sys

from pharma_rag.config import Settings, settings as default_settings
from pharma_rag.exceptions import ConfigurationError, PharmaRagError
from pharma_rag.ingestion.chunker import Chunker
from pharma_rag.ingestion.driver import IngestionDriver, IngestionReport
from pharma_rag.ingestion.loader import PdfTextExtractor
from pharma_rag.logging_utils import configure_logging
from pharma_rag.service import build_embedding_client, build_vector_index

logger = logging.getLogger(__name__)


def build_ingestion_driver(config: Settings) -> IngestionDriver:
    """Wire an :class:`IngestionDriver` from *config*."""
    missing = config.missing_ingest_config()
    if missing:
        raise ConfigurationError(missing)

    extractor = PdfTextExtractor(
        backend=config.pdf_backend,
        pdftotext_path=config.pdftotext_path,
        ocrmypdf_path=config.ocrmypdf_path,
        ocr_enabled=config.ocr_enabled,
        timeout=config.extraction_timeout,
    )
    return IngestionDriver(
        extractor,
        build_embedding_client(config),
        build_vector_index(config),
        chunker=Chunker(config.chunk_size, config.chunk_overlap),
        stage=config.ingest_stage,
        subject=config.ingest_subject,
        pacing_delay=config.upsert_pacing_seconds,
        failure_pause=config.batch_failure_pause_seconds,
        concurrency=config.ingest_concurrency,
    )


async def run(config: Settings) -> IngestionReport:
    driver = build_ingestion_driver(config)
    return await driver.ingest_directory(config.data_dir)


def main() -> int:
    configure_logging(default_settings.log_level)
    try:
        report = asyncio.run(run(default_settings))
    except PharmaRagError as exc:
        logger.error("Ingestion aborted: %s", exc)
        return 1
    for doc in report.skipped:
        logger.warning("Skipped %s: %s", doc.name, doc.reason)
    logger.info("All files uploaded (%d records)", report.upserted)
    return 0


if __name__ == "__main__":
    sys.exit(main())
