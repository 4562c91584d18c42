"""Retrieval orchestrator — question in, ranked and budgeted context out.

Usage::

    orchestrator = RetrievalOrchestrator(embedder, index)
    context = await orchestrator.retrieve("What is bioavailability?", stage="3rd")
    if context.found:
        print(context.text)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from pharma_rag.exceptions import InputValidationError
from pharma_rag.retrieval.base import VectorIndexBase
from pharma_rag.retrieval.models import Match, MetadataFilter, RetrievedContext

logger = logging.getLogger(__name__)

ELLIPSIS = "…"


class QueryEmbedder(Protocol):
    async def embed_query(self, text: str) -> list[float]: ...


def assemble_context(
    matches: Sequence[Match],
    max_chars: int = 2000,
    *,
    marker: str = ELLIPSIS,
) -> tuple[str | None, bool]:
    """Render *matches* as ``[#rank] text`` lines within *max_chars*.

    Ranks follow the match order; matches with blank text are skipped but
    keep their rank. When the full rendering does not fit, whole trailing
    records are dropped and *marker* is appended on its own line; if even
    the first record does not fit, it is cut and *marker* appended to it.

    Returns
    -------
    tuple
        ``(text, truncated)``; ``text`` is ``None`` when no match has text.
    """
    blocks = [
        f"[#{rank}] {text}"
        for rank, match in enumerate(matches, 1)
        if (text := match.text.strip())
    ]
    if not blocks:
        return None, False

    full = "\n".join(blocks)
    if len(full) <= max_chars:
        return full, False

    budget = max_chars - len(marker) - 1
    kept: list[str] = []
    used = 0
    for block in blocks:
        needed = len(block) + (1 if kept else 0)
        if used + needed > budget:
            break
        kept.append(block)
        used += needed

    if kept:
        return "\n".join(kept) + "\n" + marker, True
    return blocks[0][: max_chars - len(marker)].rstrip() + marker, True


class RetrievalOrchestrator:
    """Embeds a question, queries the index and assembles the context.

    Parameters
    ----------
    embedder:
        Anything with an async ``embed_query`` (normally
        :class:`~pharma_rag.embedding.EmbeddingClient`).
    index:
        Vector-index backend.
    top_k:
        Matches requested per question.
    max_context_chars:
        Character budget for the assembled context.
    """

    def __init__(
        self,
        embedder: QueryEmbedder,
        index: VectorIndexBase,
        *,
        top_k: int = 5,
        max_context_chars: int = 2000,
    ) -> None:
        self._embedder = embedder
        self._index = index
        self.top_k = top_k
        self.max_context_chars = max_context_chars

    async def retrieve(
        self,
        question: str,
        *,
        stage: str | None = None,
        subject: str | None = None,
    ) -> RetrievedContext:
        """Return the context for *question*, optionally filtered.

        Raises
        ------
        InputValidationError
            When *question* is missing or blank, or a filter value is invalid.
        EmbeddingError, IndexUnavailableError
            When an upstream service fails.
        """
        if not isinstance(question, str) or not question.strip():
            raise InputValidationError("Missing question", field="question")

        metadata_filter = MetadataFilter.build(stage=stage, subject=subject)
        vector = await self._embedder.embed_query(question)
        matches = await self._index.query(vector, top_k=self.top_k, filter=metadata_filter)
        logger.debug(
            "Index returned %d match(es) (filter=%s)",
            len(matches),
            metadata_filter.as_dict() if metadata_filter else None,
        )

        text, truncated = assemble_context(matches, self.max_context_chars)
        if text is None:
            return RetrievedContext.nothing_found(matches)
        return RetrievedContext(text=text, matches=matches, truncated=truncated)
