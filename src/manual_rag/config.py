"""Shared configuration loaded from environment / .env."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Chunking
    max_chunk_size: int = Field(default=2000, description="Maximum UTF-8 byte length of a chunk")

    # Embedding
    embedding_backend: str = Field(
        default="huggingface",
        description="Embedding provider backend: 'huggingface' or 'openai'",
    )
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = Field(default=384, description="Dimension of the configured embedding model")
    embedding_timeout_seconds: float = 30.0
    openai_api_key: str = Field(default="", description="OpenAI API key for the 'openai' backend")

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "manual_chunks"

    # Retrieval
    similarity_threshold: float = Field(default=0.5, description="Minimum cosine similarity of a search match")
    match_count: int = 5

    # Ingestion / backfill
    ingest_concurrency: int = Field(default=4, description="Concurrent embedding calls per ingest")
    backfill_batch_size: int = 10
    backfill_max_batch_size: int = 50
    backfill_concurrency: int = 4

    # Artifacts
    artifact_max_attempts: int = Field(default=3, description="Inline generation attempts per repair")
    artifact_max_sweep: int = 50
    qr_base_url: str = "https://textg.pt"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()
