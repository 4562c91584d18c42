"""FastAPI application exposing the query service as a REST API."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from pharma_rag.config import Settings, settings as default_settings
from pharma_rag.exceptions import (
    ConfigurationError,
    EmbeddingError,
    InputValidationError,
    PharmaRagError,
)
from pharma_rag.logging_utils import configure_logging
from pharma_rag.retrieval.models import SourceRef
from pharma_rag.service import QueryService, build_query_service

logger = logging.getLogger(__name__)

SERVICE_NAME = "pharmaninja-backend"


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Incoming question from a student."""

    question: str | None = None
    lang: str | None = None
    stage: str | None = None
    subject: str | None = None


class QueryResponse(BaseModel):
    """Answer plus the matches it was grounded in."""

    answer: str
    sources: list[SourceRef] = []
    took_ms: int = 0


class ErrorResponse(BaseModel):
    error: str
    kind: str
    detail: Any = None


def _error(status: int, message: str, kind: str, detail: Any = None) -> JSONResponse:
    body = ErrorResponse(error=message, kind=kind, detail=detail)
    return JSONResponse(status_code=status, content=body.model_dump())


# ── Application factory ───────────────────────────────────────────────
def create_app(service: QueryService | None = None, config: Settings | None = None) -> FastAPI:
    """Build the API.

    When *service* is ``None`` it is built from *config* at startup; a
    configuration error is remembered and reported as 503 on each query
    instead of preventing the server from starting.
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.started_at = time.monotonic()
        app.state.config_error = None
        if service is not None:
            app.state.service = service
        else:
            try:
                app.state.service = build_query_service(config)
                logger.info("Query service ready (collection=%s)", config.chroma_collection)
            except ConfigurationError as exc:
                logger.error("Query service unavailable: %s", exc.message)
                app.state.service = None
                app.state.config_error = exc
        yield
        logger.info("Application shutdown")

    app = FastAPI(
        title="PharmaNinja RAG API",
        version="0.1.0",
        description="Retrieval-augmented answers over pharmacy study material.",
        lifespan=lifespan,
    )

    # Chat widgets call the API from other origins.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )

    _register_error_handlers(app)
    _register_routes(app, config)
    return app


def _get_service(request: Request) -> QueryService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        error = getattr(request.app.state, "config_error", None)
        raise error or ConfigurationError(["query service"])
    return service


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _on_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, "Invalid request body", "invalid_input", jsonable_encoder(exc.errors()))

    @app.exception_handler(InputValidationError)
    async def _on_input(request: Request, exc: InputValidationError) -> JSONResponse:
        return _error(400, exc.message, "invalid_input", exc.details or None)

    @app.exception_handler(ConfigurationError)
    async def _on_config(request: Request, exc: ConfigurationError) -> JSONResponse:
        return _error(503, "Service not configured", "service_unavailable", exc.details)

    @app.exception_handler(PharmaRagError)
    async def _on_upstream(request: Request, exc: PharmaRagError) -> JSONResponse:
        logger.error("QUERY ERROR: %s", exc)
        return _error(502, "Query failed", "upstream_failure", {"message": exc.message, **exc.details})


# ── Routes ────────────────────────────────────────────────────────────
def _register_routes(app: FastAPI, config: Settings) -> None:
    @app.get("/")
    async def root() -> dict[str, Any]:
        return {"ok": True, "service": SERVICE_NAME}

    @app.get("/ping", response_class=PlainTextResponse)
    async def ping() -> str:
        return "pong"

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Liveness probe."""
        return {
            "ok": True,
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "ts": int(time.time() * 1000),
        }

    @app.get("/selftest")
    async def selftest(request: Request) -> dict[str, Any]:
        """Check configuration, one tiny embedding and the vector index."""
        env = {
            "OPENAI_API_KEY": bool(config.openai_api_key),
            "CHROMA_HOST": config.chroma_host or "(missing)",
            "CHROMA_COLLECTION": config.chroma_collection or "(missing)",
        }
        service: QueryService | None = getattr(request.app.state, "service", None)

        embedding: dict[str, Any] = {"ok": False, "dim": 0, "note": ""}
        index: dict[str, Any] = {"ok": False, "note": ""}
        if service is None or service.embedder is None or service.index is None:
            note = "query service not configured"
            embedding["note"] = index["note"] = note
            return {"env": env, "openai": embedding, "index": index}

        try:
            vector = await service.embedder.embed_query("hello")
            embedding.update(ok=bool(vector), dim=len(vector))
        except EmbeddingError as exc:
            embedding["note"] = exc.message

        index["ok"] = await service.index.health_check()
        if not index["ok"]:
            index["note"] = f"vector index {service.index.index_name!r} unreachable"

        return {"env": env, "openai": embedding, "index": index}

    @app.post("/query", response_model=QueryResponse)
    async def query(body: QueryRequest, request: Request) -> QueryResponse:
        """Answer a question from the indexed material."""
        logger.info(
            "POST /query lang=%s stage=%s subject=%s qLen=%d",
            body.lang,
            body.stage,
            body.subject,
            len(body.question or ""),
        )
        if not body.question or not body.question.strip():
            raise InputValidationError("Missing question", field="question")

        service = _get_service(request)
        result = await service.answer(
            body.question,
            lang=body.lang,
            stage=body.stage,
            subject=body.subject,
        )
        return QueryResponse(answer=result.answer, sources=result.sources, took_ms=result.took_ms)


app = create_app()


def main() -> None:
    import uvicorn

    configure_logging(default_settings.log_level)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)


if __name__ == "__main__":
    main()
