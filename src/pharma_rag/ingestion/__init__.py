"""
Ingestion — PDF extraction, chunking, embedding and upserting.

This module is responsible for the offline pipeline that converts a
directory of PDFs into embedded chunks stored in the vector index.
"""

from pharma_rag.ingestion.chunker import Chunk, Chunker, ChunkSequence, chunk_text
from pharma_rag.ingestion.driver import (
    DocumentReport,
    DocumentState,
    IngestionDriver,
    IngestionError,
    IngestionReport,
)
from pharma_rag.ingestion.ids import chunk_id
from pharma_rag.ingestion.loader import ExtractedText, PdfTextExtractor
from pharma_rag.ingestion.normalizer import clean_text, detect_language

__all__ = [
    "Chunk",
    "Chunker",
    "ChunkSequence",
    "DocumentReport",
    "DocumentState",
    "ExtractedText",
    "IngestionDriver",
    "IngestionError",
    "IngestionReport",
    "PdfTextExtractor",
    "chunk_id",
    "chunk_text",
    "clean_text",
    "detect_language",
]
