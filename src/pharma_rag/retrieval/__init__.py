"""
Retrieval — vector search, filtering and context assembly.

This module wraps the vector index behind a clean interface so that the
query path never needs to know which database backs retrieval.

Public surface
--------------
- :class:`RetrievalOrchestrator` — question → ranked, budgeted context.
- :class:`VectorIndexBase` — abstract backend (subclass for other stores).
- :class:`ChromaVectorIndex` — default Chroma backend.
- :class:`MetadataFilter`, :class:`Match`, :class:`IndexedRecord`,
  :class:`RetrievedContext`, :class:`SourceRef` — data models.
"""

from pharma_rag.retrieval.base import VectorIndexBase
from pharma_rag.retrieval.models import (
    IndexedRecord,
    Match,
    MetadataFilter,
    RecordMetadata,
    RetrievedContext,
    SourceRef,
)
from pharma_rag.retrieval.retriever import RetrievalOrchestrator, assemble_context

__all__ = [
    "ChromaVectorIndex",
    "IndexedRecord",
    "Match",
    "MetadataFilter",
    "RecordMetadata",
    "RetrievalOrchestrator",
    "RetrievedContext",
    "SourceRef",
    "VectorIndexBase",
    "assemble_context",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorIndex to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorIndex":
        from pharma_rag.retrieval.chroma_store import ChromaVectorIndex

        return ChromaVectorIndex
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
