"""Chroma implementation of the vector-index abstraction."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import chromadb

from pharma_rag.exceptions import IndexUnavailableError
from pharma_rag.retrieval.base import VectorIndexBase
from pharma_rag.retrieval.models import IndexedRecord, Match, MetadataFilter, metadata_from_store

logger = logging.getLogger(__name__)


def build_chroma_where(filter: MetadataFilter | None) -> dict[str, Any] | None:
    """Convert a :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if filter is None or not filter.predicates:
        return None
    clauses = [{p.field: {"$eq": p.value}} for p in filter.predicates]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _similarity(distance: float, space: str) -> float:
    if space in ("cosine", "ip"):
        return 1.0 - distance
    # L2 distance; map to a 0-1 similarity score.
    return 1.0 / (1.0 + distance)


class ChromaVectorIndex(VectorIndexBase):
    """Chroma-backed vector index.

    The blocking ``chromadb`` client runs in worker threads so callers can
    await it. The collection is resolved on first use, so constructing the
    index never touches the network.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host / port:
        Chroma server address. Ignored when *client* is given.
    distance:
        HNSW space used when the collection is created.
    client:
        Pre-built ``chromadb`` client (tests, embedded mode).
    """

    def __init__(
        self,
        collection_name: str,
        *,
        host: str = "localhost",
        port: int = 8000,
        distance: str = "cosine",
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name)
        self._host = host
        self._port = port
        self._distance = distance
        self._client = client
        self._collection: Any | None = None

    def _get_collection(self) -> Any:
        if self._collection is None:
            if self._client is None:
                self._client = chromadb.HttpClient(host=self._host, port=self._port)
            self._collection = self._client.get_or_create_collection(
                name=self.index_name,
                metadata={"hnsw:space": self._distance},
            )
        return self._collection

    async def _call(self, operation: str, **kwargs: Any) -> Any:
        def _run() -> Any:
            return getattr(self._get_collection(), operation)(**kwargs)

        try:
            return await asyncio.to_thread(_run)
        except Exception as exc:
            logger.error("Chroma %s failed on %r: %s", operation, self.index_name, exc)
            raise IndexUnavailableError(
                f"Vector index {operation} failed: {exc}",
                {"index": self.index_name, "host": self._host, "port": self._port},
            ) from exc

    # -- VectorIndexBase overrides --------------------------------------------

    async def upsert(self, records: Sequence[IndexedRecord]) -> None:
        if not records:
            return
        await self._call(
            "upsert",
            ids=[r.id for r in records],
            embeddings=[r.vector for r in records],
            documents=[r.metadata.text for r in records],
            metadatas=[r.metadata.model_dump() for r in records],
        )

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int = 5,
        filter: MetadataFilter | None = None,
    ) -> list[Match]:
        results = await self._call(
            "query",
            query_embeddings=[vector],
            n_results=top_k,
            where=build_chroma_where(filter),
            include=["documents", "metadatas", "distances"],
        )

        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        matches: list[Match] = []
        for record_id, content, meta, dist in zip(ids, docs, metas, distances):
            metadata = metadata_from_store(meta)
            if not metadata.text and content:
                metadata.text = content
            matches.append(
                Match(id=record_id, score=_similarity(dist, self._distance), metadata=metadata)
            )
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def health_check(self) -> bool:
        try:
            await self._call("count")
            return True
        except IndexUnavailableError:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    async def delete(self, ids: Sequence[str]) -> None:
        await self._call("delete", ids=list(ids))
