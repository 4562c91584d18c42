"""Abstract base class for vector-index backends.

Adding a new backend (Pinecone, Qdrant, …) only requires subclassing
:class:`VectorIndexBase` and implementing the abstract methods. The rest of
the stack is backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pharma_rag.retrieval.models import IndexedRecord, Match, MetadataFilter


class VectorIndexBase(ABC):
    """Backend-agnostic vector-index interface.

    Implementations must raise
    :class:`~pharma_rag.exceptions.IndexUnavailableError` for auth, missing
    index and network failures, never an empty result.

    Parameters
    ----------
    index_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, index_name: str) -> None:
        self.index_name = index_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def upsert(self, records: Sequence[IndexedRecord]) -> None:
        """Insert *records*, overwriting any existing record with the same id."""
        ...

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        *,
        top_k: int = 5,
        filter: MetadataFilter | None = None,
    ) -> list[Match]:
        """Return up to *top_k* matches ordered by descending score.

        Parameters
        ----------
        vector:
            Dense query vector.
        top_k:
            Upper bound on the number of matches; fewer may be returned.
        filter:
            Optional equality filter; ``None`` searches everything.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    async def delete(self, ids: Sequence[str]) -> None:
        """Delete records by id. Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")
