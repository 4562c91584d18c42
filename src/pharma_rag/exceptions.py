"""Exception hierarchy shared by ingestion, retrieval and serving.

Every error raised by this package derives from :class:`PharmaRagError` and
carries an optional ``details`` dict for diagnostics. The serving layer maps
each subclass onto one error kind so callers can tell bad input apart from
an unavailable upstream.
"""

from __future__ import annotations

from typing import Any


class PharmaRagError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InputValidationError(PharmaRagError):
    """Raised when caller-supplied input is rejected (blank question, bad filter)."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class ConfigurationError(PharmaRagError):
    """Raised when required credentials or identifiers are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            f"Missing required configuration: {', '.join(self.missing)}",
            {"missing": self.missing},
        )


class EmbeddingError(PharmaRagError):
    """The embedding service failed and the failure is not being retried."""


class RateLimitExhaustedError(EmbeddingError):
    """The embedding service kept rate limiting after every allowed retry."""

    def __init__(self, attempts: int, last_error: str) -> None:
        self.attempts = attempts
        super().__init__(
            f"Embedding service still rate limited after {attempts} attempts",
            {"attempts": attempts, "last_error": last_error},
        )


class IndexUnavailableError(PharmaRagError):
    """The vector index could not be reached or rejected the request.

    Distinct from an empty result: callers must never read this as
    "no matches".
    """


class ExtractionError(PharmaRagError):
    """No text could be extracted from a document, even after OCR."""

    def __init__(self, document: str, reason: str) -> None:
        self.document = document
        super().__init__(f"Could not extract text from {document}: {reason}", {"document": document})
