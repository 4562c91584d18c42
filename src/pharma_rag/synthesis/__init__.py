"""
Synthesis — grounded answer generation over retrieved context.

Public API
----------
- :class:`AnswerSynthesizer` — prompt + completion call + fallback.
- :class:`Generated` / :class:`Fallback` — the two possible outcomes.
- :func:`get_llm` — configured LangChain chat model.
"""

from pharma_rag.synthesis.llm import get_llm
from pharma_rag.synthesis.synthesizer import AnswerSynthesizer, Fallback, Generated, SynthesisOutcome

__all__ = [
    "AnswerSynthesizer",
    "Fallback",
    "Generated",
    "SynthesisOutcome",
    "get_llm",
]
