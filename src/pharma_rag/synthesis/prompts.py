"""Prompt templates and fallback answers, per answer language.

Every language has a system instruction, a user-turn template and two
fallback texts used when the completion service cannot be reached. Unknown
language tags use the English set.
"""

from __future__ import annotations

from dataclasses import dataclass

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

DEFAULT_LANGUAGE = "EN"


@dataclass(frozen=True)
class LanguagePack:
    """Templates for one answer language."""

    system: str
    user: str
    fallback_with_context: str
    fallback_no_context: str


# ── English ───────────────────────────────────────────────────────────

EN = LanguagePack(
    system="""\
You are a helpful pharmacy study tutor. Answer the student's question using
**only** the numbered context snippets provided.

Rules:
1. Do not use outside knowledge and do not invent facts, doses or references.
2. If the context does not contain the answer, say briefly that you do not
   know from the provided material.
3. Mention the snippet numbers you relied on, like [#1] or [#2].
4. Answer in English, concisely and clearly.
""",
    user="""\
Language: {lang}
Stage: {stage}
Subject: {subject}
Question: {question}

Context (top matches):
{context}

Answer in English. If the answer is not in the context, say so briefly.""",
    fallback_with_context="(EN) Answer based on retrieved context:\n\n{context}",
    fallback_no_context="(EN) No relevant context found.",
)

# ── Arabic ────────────────────────────────────────────────────────────

AR = LanguagePack(
    system="""\
أنت مدرس صيدلة مساعد. أجب عن سؤال الطالب بالاعتماد **فقط** على مقاطع السياق
المرقمة المرفقة.

القواعد:
1. لا تستخدم معرفة من خارج السياق ولا تختلق حقائق أو جرعات أو مراجع.
2. إذا لم يتضمن السياق الإجابة فقل باختصار إنك لا تعرفها من المادة المتاحة.
3. اذكر أرقام المقاطع التي اعتمدت عليها مثل [#1] أو [#2].
4. أجب باللغة العربية بإيجاز ووضوح.
""",
    user="""\
اللغة: {lang}
المرحلة: {stage}
المادة: {subject}
السؤال: {question}

السياق (أفضل النتائج):
{context}

أجب باللغة العربية. إذا لم تكن الإجابة في السياق فاذكر ذلك باختصار.""",
    fallback_with_context="(AR) إجابة مبنية على السياق المسترجع:\n\n{context}",
    fallback_no_context="(AR) لم يتم العثور على سياق ذي صلة.",
)

LANGUAGE_PACKS: dict[str, LanguagePack] = {"EN": EN, "AR": AR}


def normalize_language(lang: str | None) -> str:
    """Upper-cased language tag, or the default when unknown or empty."""
    tag = (lang or "").strip().upper()
    return tag if tag in LANGUAGE_PACKS else DEFAULT_LANGUAGE


def language_pack(lang: str | None) -> LanguagePack:
    return LANGUAGE_PACKS[normalize_language(lang)]


def build_answer_prompt(
    lang: str | None,
    question: str,
    context: str,
    *,
    stage: str | None = None,
    subject: str | None = None,
) -> list[BaseMessage]:
    """Assemble the system + user messages for a grounded answer."""
    tag = normalize_language(lang)
    pack = LANGUAGE_PACKS[tag]
    return [
        SystemMessage(content=pack.system),
        HumanMessage(
            content=pack.user.format(
                lang=tag,
                stage=stage or "-",
                subject=subject or "-",
                question=question,
                context=context,
            )
        ),
    ]


def fallback_answer(lang: str | None, context: str | None) -> str:
    """Deterministic answer used when no completion can be generated."""
    pack = language_pack(lang)
    if context:
        return pack.fallback_with_context.format(context=context)
    return pack.fallback_no_context
