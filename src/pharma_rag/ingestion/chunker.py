"""Fixed-size sliding-window chunking."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from functools import partial
from typing import Generic, TypeVar

from pharma_rag.ingestion.ids import chunk_id

DEFAULT_CHUNK_SIZE = 1200
DEFAULT_CHUNK_OVERLAP = 150

T = TypeVar("T")


@dataclass(frozen=True)
class Chunk:
    """One retrieval unit cut from a document's extracted text.

    Attributes
    ----------
    source:
        Name of the document the chunk came from.
    index:
        Position of the chunk among the document's non-empty chunks.
    offset:
        Character offset of the chunk's first (non-whitespace) character.
    text:
        The trimmed window contents.
    """

    source: str
    index: int
    offset: int
    text: str

    @property
    def id(self) -> str:
        return chunk_id(self.source, self.index)


def _validate_window(size: int, overlap: int) -> None:
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    if overlap < 0:
        raise ValueError(f"chunk overlap must not be negative, got {overlap}")
    if overlap >= size:
        raise ValueError(f"chunk_overlap ({overlap}) must be < chunk_size ({size})")


def iter_windows(
    text: str,
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> Iterator[tuple[int, str]]:
    """Yield ``(offset, window)`` pairs for every non-empty trimmed window.

    Windows start every ``size - overlap`` characters; each is stripped and
    dropped if nothing is left.
    """
    _validate_window(size, overlap)
    step = size - overlap
    for start in range(0, len(text), step):
        window = text[start : start + size]
        stripped = window.strip()
        if stripped:
            yield start + (len(window) - len(window.lstrip())), stripped


class ChunkSequence(Generic[T]):
    """Lazy sequence that recomputes its items on every iteration.

    Iterating the same object twice yields the same items twice; nothing is
    materialised up front.
    """

    def __init__(self, produce: Callable[[], Iterator[T]]) -> None:
        self._produce = produce

    def __iter__(self) -> Iterator[T]:
        return self._produce()


def _windows_only(text: str, size: int, overlap: int) -> Iterator[str]:
    for _, window in iter_windows(text, size, overlap):
        yield window


def chunk_text(
    text: str,
    size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> ChunkSequence[str]:
    """Split *text* into overlapping windows of at most *size* characters.

    Raises ``ValueError`` immediately (not on first iteration) when
    ``overlap >= size``. The returned sequence can be iterated any number
    of times and yields identical chunks each time.
    """
    _validate_window(size, overlap)
    return ChunkSequence(partial(_windows_only, text, size, overlap))


class Chunker:
    """Chunking parameters bound once, validated at construction."""

    def __init__(self, size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP) -> None:
        _validate_window(size, overlap)
        self.size = size
        self.overlap = overlap

    def split(self, document_name: str, text: str) -> ChunkSequence[Chunk]:
        """The :class:`Chunk` objects of *document_name* in offset order, restartable."""
        return ChunkSequence(partial(self._chunks, document_name, text))

    def _chunks(self, document_name: str, text: str) -> Iterator[Chunk]:
        windows = iter_windows(text, self.size, self.overlap)
        for index, (offset, window) in enumerate(windows):
            yield Chunk(source=document_name, index=index, offset=offset, text=window)
