"""Query service and the factories that wire remote clients together.

Clients are built once from :class:`~pharma_rag.config.Settings` and
passed down explicitly, so tests can swap any of them for a fake.
"""

from __future__ import annotations

import logging
import time

import openai
from pydantic import BaseModel, Field

from pharma_rag.config import Settings
from pharma_rag.embedding import EmbeddingClient, default_embedding_policy
from pharma_rag.exceptions import ConfigurationError
from pharma_rag.ingestion.normalizer import detect_language
from pharma_rag.retrieval.base import VectorIndexBase
from pharma_rag.retrieval.models import SourceRef
from pharma_rag.retrieval.retriever import RetrievalOrchestrator
from pharma_rag.synthesis.llm import get_llm
from pharma_rag.synthesis.prompts import normalize_language
from pharma_rag.synthesis.synthesizer import AnswerSynthesizer

logger = logging.getLogger(__name__)


class Answer(BaseModel):
    """Result of one query."""

    answer: str
    sources: list[SourceRef] = Field(default_factory=list)
    lang: str = "EN"
    degraded: bool = False
    took_ms: int = 0


class QueryService:
    """Retrieve, then synthesize: the whole online path for one question."""

    def __init__(
        self,
        orchestrator: RetrievalOrchestrator,
        synthesizer: AnswerSynthesizer,
        *,
        embedder: EmbeddingClient | None = None,
        index: VectorIndexBase | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.synthesizer = synthesizer
        # Kept for diagnostics (selftest); the query path goes through the orchestrator.
        self.embedder = embedder
        self.index = index

    async def answer(
        self,
        question: str,
        *,
        lang: str | None = None,
        stage: str | None = None,
        subject: str | None = None,
    ) -> Answer:
        """Answer *question*; ``lang`` defaults to the question's detected language."""
        started = time.monotonic()
        context = await self.orchestrator.retrieve(question, stage=stage, subject=subject)

        tag = normalize_language(lang) if lang else detect_language(question)
        outcome = await self.synthesizer.synthesize(tag, question, context, stage=stage, subject=subject)

        took_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Answered in %d ms: %d match(es), degraded=%s",
            took_ms,
            len(context.matches),
            outcome.degraded,
        )
        return Answer(
            answer=outcome.text,
            sources=context.sources,
            lang=tag,
            degraded=outcome.degraded,
            took_ms=took_ms,
        )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def build_embedding_client(config: Settings) -> EmbeddingClient:
    client = openai.AsyncOpenAI(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url or None,
        max_retries=0,
    )
    return EmbeddingClient(
        client,
        model=config.embedding_model,
        batch_size=config.embedding_batch_size,
        dimensions=config.embedding_dim,
        policy=default_embedding_policy(
            max_retries=config.embedding_max_retries,
            base_delay=config.embedding_base_delay,
            max_delay=config.embedding_max_delay,
            jitter=config.embedding_jitter,
        ),
    )


def build_vector_index(config: Settings) -> VectorIndexBase:
    from pharma_rag.retrieval.chroma_store import ChromaVectorIndex

    return ChromaVectorIndex(
        config.chroma_collection,
        host=config.chroma_host,
        port=config.chroma_port,
        distance=config.chroma_distance,
    )


def build_query_service(config: Settings) -> QueryService:
    """Wire a :class:`QueryService` from *config*.

    Raises
    ------
    ConfigurationError
        When credentials or index identifiers are missing.
    """
    missing = config.missing_query_config()
    if missing:
        raise ConfigurationError(missing)

    embedder = build_embedding_client(config)
    index = build_vector_index(config)
    orchestrator = RetrievalOrchestrator(
        embedder,
        index,
        top_k=config.retrieval_top_k,
        max_context_chars=config.max_context_chars,
    )
    synthesizer = AnswerSynthesizer(get_llm(config.llm_temperature, config=config))
    return QueryService(orchestrator, synthesizer, embedder=embedder, index=index)
