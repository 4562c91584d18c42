"""Embedding client — batched calls to the OpenAI embeddings endpoint.

Rate-limit responses (HTTP 429) are retried according to a
:class:`~pharma_rag.retry.RetryPolicy`; when the error message says
"try again in 1.2s" (or ``...in 450ms``), or the response carries a
``retry-after`` header, that delay is used instead of the exponential one.
Every other failure propagates immediately as
:class:`~pharma_rag.exceptions.EmbeddingError`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

import openai

from pharma_rag.exceptions import EmbeddingError, RateLimitExhaustedError
from pharma_rag.retry import BackoffGate, RetryPolicy

logger = logging.getLogger(__name__)

_TRY_AGAIN = re.compile(r"try again in\s*([\d.]+)\s*(ms|s)\b", re.IGNORECASE)


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for errors the embedding service uses to signal throttling."""
    if isinstance(exc, openai.RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    return "rate limit" in str(exc).lower()


def retry_after_seconds(exc: BaseException) -> float | None:
    """Server-directed delay carried by *exc*, in seconds, if any."""
    match = _TRY_AGAIN.search(str(exc))
    if match:
        value = float(match.group(1))
        return value / 1000 if match.group(2).lower() == "ms" else value

    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    for header, scale in (("retry-after-ms", 1000.0), ("retry-after", 1.0)):
        raw = headers.get(header)
        if raw is None:
            continue
        try:
            return float(raw) / scale
        except ValueError:
            continue
    return None


def default_embedding_policy(
    *,
    max_retries: int = 5,
    base_delay: float = 1.5,
    max_delay: float = 15.0,
    jitter: float = 0.0,
) -> RetryPolicy:
    """Retry policy that only retries rate-limit errors."""
    return RetryPolicy(
        max_retries=max_retries,
        base_delay=base_delay,
        max_delay=max_delay,
        jitter=jitter,
        is_retryable=is_rate_limit_error,
        retry_after=retry_after_seconds,
    )


class EmbeddingClient:
    """Turns texts into fixed-dimension vectors, one remote call per batch.

    Parameters
    ----------
    client:
        An ``openai.AsyncOpenAI`` (or compatible) instance. Its own retries
        should be disabled; this class owns the retry loop.
    model:
        Embedding model identifier.
    batch_size:
        Maximum texts per remote call.
    dimensions:
        Expected vector length; responses of another length are rejected.
        ``None`` skips the check.
    policy:
        Retry policy for rate limits.
    gate:
        Backoff state shared by every caller of this client.
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str = "text-embedding-3-small",
        batch_size: int = 8,
        dimensions: int | None = 1536,
        policy: RetryPolicy | None = None,
        gate: BackoffGate | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._client = client
        self.model = model
        self.batch_size = batch_size
        self.dimensions = dimensions
        self._policy = policy or default_embedding_policy()
        self._gate = gate or BackoffGate()

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in order, splitting them into ``batch_size`` calls."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            vectors.extend(await self.embed_batch(texts[start : start + self.batch_size]))
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single text (a batch of one)."""
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed one batch with a single remote call, retrying rate limits."""
        if not texts:
            return []

        attempts = 0
        try:
            async for attempt in self._policy.retrying(sleep=self._gate.hold, label="embedding request"):
                with attempt:
                    attempts += 1
                    await self._gate.wait()
                    response = await self._client.embeddings.create(model=self.model, input=list(texts))
        except Exception as exc:
            if self._policy.is_retryable(exc):
                raise RateLimitExhaustedError(attempts, str(exc)) from exc
            raise EmbeddingError(
                f"Embedding request failed: {exc}",
                {"model": self.model, "batch": len(texts)},
            ) from exc

        return self._vectors_from(response, expected=len(texts))

    def _vectors_from(self, response: Any, *, expected: int) -> list[list[float]]:
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != expected:
            raise EmbeddingError(
                f"Embedding service returned {len(data)} vectors for {expected} inputs",
                {"model": self.model},
            )
        vectors = [list(item.embedding) for item in data]
        if self.dimensions is not None:
            for vector in vectors:
                if len(vector) != self.dimensions:
                    raise EmbeddingError(
                        f"Expected {self.dimensions}-dimensional vectors, got {len(vector)}",
                        {"model": self.model},
                    )
        return vectors
