"""Answer synthesis with a deterministic fallback.

The synthesizer never raises because the completion service failed: the
caller gets either :class:`Generated` or :class:`Fallback`, and the
fallback still carries the retrieved context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from pharma_rag.retrieval.models import RetrievedContext
from pharma_rag.synthesis.prompts import build_answer_prompt, fallback_answer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Generated:
    """Answer written by the completion model."""

    text: str
    degraded = False


@dataclass(frozen=True)
class Fallback:
    """Templated answer used when generation was skipped or failed.

    Attributes
    ----------
    text:
        The templated answer.
    reason:
        ``"no_context"`` or a short description of the completion failure.
    """

    text: str
    reason: str = ""
    degraded = True


SynthesisOutcome = Union[Generated, Fallback]


class AnswerSynthesizer:
    """Builds the language-aware prompt and calls the chat model.

    Parameters
    ----------
    llm:
        A LangChain chat model (anything with an async ``ainvoke``),
        normally from :func:`~pharma_rag.synthesis.llm.get_llm` at a low
        temperature.
    """

    def __init__(self, llm: Any) -> None:
        self._llm = llm

    async def synthesize(
        self,
        lang: str | None,
        question: str,
        context: RetrievedContext,
        *,
        stage: str | None = None,
        subject: str | None = None,
    ) -> SynthesisOutcome:
        if not context.found:
            return Fallback(fallback_answer(lang, None), reason="no_context")

        messages = build_answer_prompt(lang, question, context.text, stage=stage, subject=subject)
        try:
            response = await self._llm.ainvoke(messages)
        except Exception as exc:
            logger.warning("Completion failed, answering from context: %s", exc)
            return Fallback(fallback_answer(lang, context.text), reason=f"{type(exc).__name__}: {exc}")

        text = str(getattr(response, "content", "") or "").strip()
        if not text:
            logger.warning("Completion returned no text, answering from context")
            return Fallback(fallback_answer(lang, context.text), reason="empty completion")
        return Generated(text)
