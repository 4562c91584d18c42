"""Fakes shared by the unit tests: in-memory index, clock and OpenAI stand-ins."""

from __future__ import annotations

import math
from collections.abc import Sequence
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai

from pharma_rag.exceptions import IndexUnavailableError
from pharma_rag.retrieval.base import VectorIndexBase
from pharma_rag.retrieval.models import IndexedRecord, Match, MetadataFilter


# ── In-memory vector index ─────────────────────────────────────────────


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorIndex(VectorIndexBase):
    """Dict-backed index with cosine scoring and equality filters."""

    def __init__(self) -> None:
        super().__init__("test-index")
        self.records: dict[str, IndexedRecord] = {}
        self.upsert_calls: list[list[str]] = []
        self.queries: list[dict[str, Any]] = []
        self.unavailable = False

    async def upsert(self, records: Sequence[IndexedRecord]) -> None:
        if self.unavailable:
            raise IndexUnavailableError("index down")
        self.upsert_calls.append([r.id for r in records])
        for record in records:
            self.records[record.id] = record

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int = 5,
        filter: MetadataFilter | None = None,
    ) -> list[Match]:
        if self.unavailable:
            raise IndexUnavailableError("index down")
        self.queries.append({"vector": vector, "top_k": top_k, "filter": filter})
        wanted = filter.as_dict() if filter else {}
        hits = []
        for record in self.records.values():
            meta = record.metadata.model_dump()
            if any(meta.get(k) != v for k, v in wanted.items()):
                continue
            hits.append(Match(id=record.id, score=_cosine(vector, record.vector), metadata=record.metadata))
        hits.sort(key=lambda m: m.score, reverse=True)
        return hits[:top_k]

    async def health_check(self) -> bool:
        return not self.unavailable


# ── Clock ──────────────────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ── OpenAI stand-ins ───────────────────────────────────────────────────


def embedding_response(vectors: Sequence[Sequence[float]]) -> SimpleNamespace:
    """Shape of ``AsyncOpenAI().embeddings.create(...)`` results."""
    return SimpleNamespace(
        data=[SimpleNamespace(index=i, embedding=list(v)) for i, v in enumerate(vectors)]
    )


def rate_limit_error(message: str = "Rate limit reached for requests", headers: dict | None = None) -> openai.RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    response = httpx.Response(429, request=request, headers=headers or {})
    return openai.RateLimitError(message, response=response, body=None)


def auth_error(message: str = "Incorrect API key provided") -> openai.AuthenticationError:
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    response = httpx.Response(401, request=request)
    return openai.AuthenticationError(message, response=response, body=None)


def fake_openai(*, dim: int = 3, side_effect: Any = None) -> MagicMock:
    """AsyncOpenAI stand-in returning a constant unit-ish vector per input."""

    async def _create(*, model: str, input: list[str]) -> SimpleNamespace:
        return embedding_response([[1.0] + [0.0] * (dim - 1) for _ in input])

    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=side_effect or _create)
    return client


