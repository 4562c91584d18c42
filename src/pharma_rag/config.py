"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # OpenAI (embeddings + chat)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = Field(
        default="",
        description="Override for the OpenAI API base URL. Leave empty for OpenAI cloud.",
    )

    # Embedding
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = Field(default=1536, gt=0)
    embedding_batch_size: int = Field(default=8, gt=0)
    embedding_max_retries: int = Field(default=5, ge=0)
    embedding_base_delay: float = Field(default=1.5, ge=0, description="Seconds")
    embedding_max_delay: float = Field(default=15.0, ge=0, description="Seconds")
    embedding_jitter: float = Field(default=0.0, ge=0, description="Max random seconds added")

    # LLM
    llm_model_name: str = Field(default="gpt-4o-mini", description="Chat model identifier")
    llm_base_url: str = Field(
        default="",
        description="Base URL for an OpenAI-compatible chat endpoint. Empty means OpenAI cloud.",
    )
    llm_temperature: float = Field(default=0.2, ge=0, le=2)
    llm_timeout: float = Field(default=60.0, gt=0)

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "pharmaninja"
    chroma_distance: Literal["cosine", "l2", "ip"] = "cosine"

    # Retrieval
    retrieval_top_k: int = Field(default=5, gt=0)
    max_context_chars: int = Field(default=2000, ge=100)

    # Ingestion
    data_dir: str = "data"
    chunk_size: int = Field(default=1200, gt=0)
    chunk_overlap: int = Field(default=150, ge=0)
    ingest_stage: str = "3rd"
    ingest_subject: str = "Pharmacology"
    upsert_pacing_seconds: float = Field(default=0.3, ge=0)
    batch_failure_pause_seconds: float = Field(default=3.0, ge=0)
    ingest_concurrency: int = Field(default=1, gt=0)
    pdf_backend: Literal["pdftotext", "pypdf"] = "pdftotext"
    pdftotext_path: str = "pdftotext"
    ocrmypdf_path: str = "ocrmypdf"
    ocr_enabled: bool = True
    extraction_timeout: float = Field(default=300.0, gt=0)

    # Serving
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_chunk_window(self) -> Settings:
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be < chunk_size ({self.chunk_size})"
            )
        return self

    def missing_query_config(self) -> list[str]:
        """Names of settings the query path cannot run without."""
        required = {
            "OPENAI_API_KEY": self.openai_api_key,
            "CHROMA_HOST": self.chroma_host,
            "CHROMA_COLLECTION": self.chroma_collection,
        }
        return [name for name, value in required.items() if not value]

    def missing_ingest_config(self) -> list[str]:
        """Names of settings ingestion cannot run without."""
        missing = self.missing_query_config()
        if not self.data_dir:
            missing.append("DATA_DIR")
        return missing


# Module-level singleton; import `settings` wherever needed.
settings = Settings()
