"""Domain models for indexed records, query filters, matches and context."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pharma_rag.exceptions import InputValidationError

FILTERABLE_FIELDS: tuple[str, ...] = ("stage", "subject")


class RecordMetadata(BaseModel):
    """Metadata persisted next to every vector.

    Attributes
    ----------
    text:
        The chunk text itself, returned with query matches.
    source:
        Name of the document the chunk was cut from.
    lang:
        Detected language tag (``"EN"`` / ``"AR"``).
    stage / subject:
        Curriculum tags used for filtered search.
    """

    model_config = ConfigDict(extra="allow")

    text: str = ""
    source: str = ""
    lang: str = ""
    stage: str = ""
    subject: str = ""


class IndexedRecord(BaseModel):
    """The unit upserted into the vector index."""

    id: str
    vector: list[float]
    metadata: RecordMetadata


class Match(BaseModel):
    """One nearest-neighbour hit returned by a query."""

    id: str
    score: float
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)

    @property
    def text(self) -> str:
        return self.metadata.text


class Predicate(BaseModel):
    """Equality test on one metadata field."""

    model_config = ConfigDict(frozen=True)

    field: str
    value: str


class MetadataFilter(BaseModel):
    """Conjunction of equality predicates over filterable metadata fields.

    Build it with :meth:`build`, which drops empty values and returns
    ``None`` when nothing is left, meaning an unrestricted search::

        MetadataFilter.build(stage="3rd", subject="")  # stage only
        MetadataFilter.build()                         # None
    """

    model_config = ConfigDict(frozen=True)

    predicates: tuple[Predicate, ...]

    @classmethod
    def build(cls, **attributes: str | None) -> MetadataFilter | None:
        unknown = sorted(set(attributes) - set(FILTERABLE_FIELDS))
        if unknown:
            raise InputValidationError(
                f"Unsupported filter field(s): {', '.join(unknown)}",
                field=unknown[0],
                details={"allowed": list(FILTERABLE_FIELDS)},
            )
        predicates = []
        for name in FILTERABLE_FIELDS:
            value = attributes.get(name)
            if value is None:
                continue
            if not isinstance(value, str):
                raise InputValidationError(f"Filter {name!r} must be a string", field=name)
            value = value.strip()
            if value:
                predicates.append(Predicate(field=name, value=value))
        return cls(predicates=tuple(predicates)) if predicates else None

    def as_dict(self) -> dict[str, str]:
        return {p.field: p.value for p in self.predicates}


class SourceRef(BaseModel):
    """Provenance entry returned to callers for each match."""

    id: str
    score: float
    file: str
    lang: str
    stage: str
    subject: str

    @classmethod
    def from_match(cls, match: Match) -> SourceRef:
        meta = match.metadata
        return cls(
            id=match.id,
            score=match.score,
            file=meta.source,
            lang=meta.lang,
            stage=meta.stage,
            subject=meta.subject,
        )


class RetrievedContext(BaseModel):
    """Ranked context assembled for one question.

    ``text`` is ``None`` when nothing relevant was found; use
    :attr:`found` rather than testing the string.
    """

    text: str | None
    matches: list[Match] = Field(default_factory=list)
    truncated: bool = False

    @property
    def found(self) -> bool:
        return bool(self.text)

    @property
    def sources(self) -> list[SourceRef]:
        return [SourceRef.from_match(m) for m in self.matches]

    @classmethod
    def nothing_found(cls, matches: list[Match] | None = None) -> RetrievedContext:
        return cls(text=None, matches=matches or [])


def metadata_from_store(raw: dict[str, Any] | None) -> RecordMetadata:
    """Coerce whatever metadata the store returned into :class:`RecordMetadata`."""
    return RecordMetadata.model_validate(raw or {})
