"""Domain models for documents, chunks and ingestion reports."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """A source document submitted for ingestion.

    Attributes
    ----------
    id:
        Stable document identifier; prefixes every chunk id.
    text:
        Raw extracted text of the document.
    metadata:
        Source metadata (file name, product id, page count, …).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class Chunk(BaseModel):
    """A bounded, ordered slice of a document's text."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    sequence_index: int
    text: str
    byte_length: int

    @property
    def chunk_id(self) -> str:
        """Deterministic id so re-ingestion overwrites instead of duplicating."""
        return make_chunk_id(self.document_id, self.sequence_index)

    @property
    def token_estimate(self) -> int:
        return len(self.text) // 4  # rough ≈4 chars/token


class IngestReport(BaseModel):
    """Outcome of a single :meth:`IngestionOrchestrator.ingest` call.

    ``pending`` holds chunks that were never attempted because the call
    was cancelled; their records are still awaiting the backfill.
    """

    document_id: str
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)


def make_chunk_id(document_id: str, sequence_index: int) -> str:
    return f"{document_id}_{sequence_index}"
