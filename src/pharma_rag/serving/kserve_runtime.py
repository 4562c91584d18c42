"""KServe custom model runtime for the query service."""

from __future__ import annotations

from typing import Any

import kserve

from pharma_rag.config import settings
from pharma_rag.exceptions import InputValidationError
from pharma_rag.service import QueryService, build_query_service


class PharmaRagModel(kserve.Model):
    """KServe-compatible model that wraps :class:`QueryService`.

    This class implements the ``predict`` interface expected by KServe
    so the service can be deployed as an ``InferenceService``.
    """

    def __init__(self, name: str = "pharma-rag", service: QueryService | None = None) -> None:
        super().__init__(name)
        self.service = service
        self.ready = service is not None

    def load(self) -> None:
        """Wire the query service (called once at startup)."""
        if self.service is None:
            self.service = build_query_service(settings)
        self.ready = True

    async def predict(self, payload: dict[str, Any], headers: dict[str, str] | None = None) -> dict:
        """Run inference — called on every request.

        Parameters
        ----------
        payload:
            ``{"instances": [{"question": "...", "lang": "EN", "stage": "3rd"}]}``.
        headers:
            Optional HTTP headers.

        Returns
        -------
        dict
            ``{"predictions": [{"answer": "...", "sources": [...]}]}``; an
            instance with a blank question yields ``{"error": ...}`` in its slot.
        """
        predictions = []
        for instance in payload.get("instances", []):
            try:
                result = await self.service.answer(
                    instance.get("question", ""),
                    lang=instance.get("lang"),
                    stage=instance.get("stage"),
                    subject=instance.get("subject"),
                )
            except InputValidationError as exc:
                predictions.append({"error": exc.message})
                continue
            predictions.append(
                {
                    "answer": result.answer,
                    "sources": [s.model_dump() for s in result.sources],
                }
            )

        return {"predictions": predictions}


if __name__ == "__main__":
    model = PharmaRagModel()
    model.load()
    kserve.ModelServer().start([model])
