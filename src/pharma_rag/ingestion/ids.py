"""Content-addressed identifiers for indexed chunks."""

from __future__ import annotations

import hashlib


def chunk_id(document_name: str, chunk_index: int) -> str:
    """Stable id for chunk *chunk_index* of *document_name*.

    Lowercase hex SHA-1 of ``"{document_name}-{chunk_index}"``. Re-ingesting an
    unchanged document yields the same ids, so upserts overwrite instead of
    duplicating.
    """
    return hashlib.sha1(f"{document_name}-{chunk_index}".encode("utf-8")).hexdigest()
