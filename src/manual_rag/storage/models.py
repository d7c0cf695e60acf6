"""Persisted record models for the vector and artifact stores."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"document_id"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)

    def matches(self, metadata: dict[str, Any]) -> bool:
        """Evaluate the filter against a plain metadata dict."""
        actual = metadata.get(self.field)
        op = self.operator
        if op == "eq":
            return actual == self.value
        if op == "ne":
            return actual != self.value
        if op == "in":
            return actual in self.value
        if op == "nin":
            return actual not in self.value
        if actual is None:
            return False
        if op == "gt":
            return actual > self.value
        if op == "gte":
            return actual >= self.value
        if op == "lt":
            return actual < self.value
        if op == "lte":
            return actual <= self.value
        raise ValueError(f"Unsupported filter operator: {op!r}")


class EmbeddingRecord(BaseModel):
    """Stored state of one chunk's embedding.

    ``vector is None`` means pending: either never attempted
    (``attempt_count == 0``) or failed on every attempt so far.  Such
    records are returned by :meth:`VectorStoreBase.query_null` until a
    vector is written.
    """

    chunk_id: str
    document_id: str
    sequence_index: int
    text: str
    vector: list[float] | None = None
    attempt_count: int = 0
    last_attempt_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.vector is None

    def attempted(self, vector: list[float] | None) -> EmbeddingRecord:
        """Return a copy recording one more attempt with outcome *vector*."""
        return self.model_copy(
            update={
                "vector": vector,
                "attempt_count": self.attempt_count + 1,
                "last_attempt_at": utcnow(),
            }
        )


class DocumentStatus(BaseModel):
    """How far a document's chunks have been embedded."""

    document_id: str
    total: int = 0
    embedded: int = 0
    pending: int = 0

    @classmethod
    def from_records(cls, document_id: str, records: list[EmbeddingRecord]) -> DocumentStatus:
        pending = sum(r.is_pending for r in records)
        return cls(
            document_id=document_id,
            total=len(records),
            embedded=len(records) - pending,
            pending=pending,
        )


class ChunkMatch(BaseModel):
    """One similarity-search hit."""

    chunk_id: str
    content: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class ArtifactState(str, Enum):
    PLACEHOLDER = "placeholder"
    READY = "ready"
    FAILED = "failed"


class Artifact(BaseModel):
    """A derived, replaceable artifact (QR code image) owned by one record.

    Attributes
    ----------
    owner_id:
        Id of the owning record; one artifact per owner.
    source:
        Content encoded into the artifact, e.g. the QR target URL.
    payload:
        Generated artifact (PNG data URL); ``None`` until ``READY``.
    state:
        ``PLACEHOLDER`` when created, ``READY`` after regeneration,
        ``FAILED`` after exhausting inline attempts.
    """

    owner_id: str
    source: str = ""
    payload: str | None = None
    state: ArtifactState = ArtifactState.PLACEHOLDER
    attempt_count: int = 0
    last_attempt_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def needs_repair(self) -> bool:
        return self.state is not ArtifactState.READY
