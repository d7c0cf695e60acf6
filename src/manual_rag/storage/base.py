"""Abstract base classes for the vector-store and artifact-store backends.

Adding a new backend (pgvector, Qdrant, …) only requires subclassing
:class:`VectorStoreBase` and implementing its abstract methods.  The
ingestion and backfill layers are backend-agnostic.

All mutations are single-record upserts: each record's write must be
atomic at the store level, and concurrent writes to the same id resolve
as last-write-wins.  Backends raise :class:`~manual_rag.errors.StoreError`
for any persistence failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol, TypeVar

from manual_rag.storage.models import Artifact, DocumentStatus, EmbeddingRecord, MetadataFilter


class _Attempted(Protocol):
    last_attempt_at: datetime | None


T = TypeVar("T", bound=_Attempted)


def oldest_attempt_first(records: Iterable[T], limit: int) -> list[T]:
    """Sort by ``last_attempt_at`` ascending (``None`` first) and keep *limit*."""
    ordered = sorted(
        records,
        key=lambda r: (r.last_attempt_at is not None, r.last_attempt_at or datetime.min),
    )
    return ordered[: max(limit, 0)]


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def upsert(self, record: EmbeddingRecord) -> None:
        """Insert or replace the record keyed by ``record.chunk_id``."""
        ...

    @abstractmethod
    def get(self, ids: list[str]) -> list[EmbeddingRecord]:
        """Return the records for *ids* that exist, in no particular order."""
        ...

    @abstractmethod
    def get_document(self, document_id: str) -> list[EmbeddingRecord]:
        """Return every record of *document_id*, ordered by ``sequence_index``."""
        ...

    @abstractmethod
    def query_null(self, limit: int) -> list[EmbeddingRecord]:
        """Return up to *limit* records whose vector is ``None``.

        Records are ordered by ``last_attempt_at`` ascending, with
        never-attempted records first, so a record that keeps failing is
        not starved behind newer failures.
        """
        ...

    @abstractmethod
    def delete(self, ids: list[str]) -> None:
        """Delete records by chunk id.  Unknown ids are ignored."""
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> int:
        """Delete every record of *document_id*; return how many were removed."""
        ...

    @abstractmethod
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* embedded records matching *query_embedding*.

        Pending records are never returned.  Each result dict contains
        ``"id"``, ``"content"``, ``"score"`` (higher = more similar) and
        ``"metadata"``.
        """
        ...

    # -- optional overrides ---------------------------------------------------

    def document_status(self, document_id: str) -> DocumentStatus:
        """Count embedded and pending records of *document_id*."""
        return DocumentStatus.from_records(document_id, self.get_document(document_id))

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True


class ArtifactStoreBase(ABC):
    """Persistence for placeholder-then-repair artifacts, keyed by owner id."""

    @abstractmethod
    def upsert(self, artifact: Artifact) -> None:
        """Insert or replace the artifact keyed by ``artifact.owner_id``."""
        ...

    @abstractmethod
    def get(self, owner_id: str) -> Artifact | None:
        ...

    @abstractmethod
    def query_placeholders(self, limit: int) -> list[Artifact]:
        """Return up to *limit* artifacts in ``PLACEHOLDER`` or ``FAILED`` state.

        Ordered by ``last_attempt_at`` ascending, never-attempted first.
        """
        ...

    def create_placeholder(self, owner_id: str, source: str) -> Artifact:
        """Eagerly create a placeholder artifact, as the owning write does."""
        artifact = Artifact(owner_id=owner_id, source=source)
        self.upsert(artifact)
        return artifact
