"""In-process store backends.

Used by tests and single-process deployments.  Every operation holds a
lock, so each single-record upsert is atomic and concurrent writers to
the same id resolve as last-write-wins.
"""

from __future__ import annotations

import math
import threading
from typing import Any

from manual_rag.storage.base import ArtifactStoreBase, VectorStoreBase, oldest_attempt_first
from manual_rag.storage.models import Artifact, EmbeddingRecord, MetadataFilter


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed vector store keyed by chunk id."""

    def __init__(self, collection_name: str = "memory") -> None:
        super().__init__(collection_name)
        self._records: dict[str, EmbeddingRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def upsert(self, record: EmbeddingRecord) -> None:
        with self._lock:
            self._records[record.chunk_id] = record.model_copy(deep=True)

    def get(self, ids: list[str]) -> list[EmbeddingRecord]:
        with self._lock:
            return [self._records[i].model_copy(deep=True) for i in ids if i in self._records]

    def get_document(self, document_id: str) -> list[EmbeddingRecord]:
        with self._lock:
            records = [r.model_copy(deep=True) for r in self._records.values() if r.document_id == document_id]
        return sorted(records, key=lambda r: r.sequence_index)

    def query_null(self, limit: int) -> list[EmbeddingRecord]:
        with self._lock:
            pending = [r.model_copy(deep=True) for r in self._records.values() if r.is_pending]
        return oldest_attempt_first(pending, limit)

    def delete(self, ids: list[str]) -> None:
        with self._lock:
            for chunk_id in ids:
                self._records.pop(chunk_id, None)

    def delete_document(self, document_id: str) -> int:
        with self._lock:
            doomed = [cid for cid, r in self._records.items() if r.document_id == document_id]
            for chunk_id in doomed:
                del self._records[chunk_id]
        return len(doomed)

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            candidates = [r for r in self._records.values() if not r.is_pending]
        if filters:
            candidates = [r for r in candidates if all(f.matches(_flat_metadata(r)) for f in filters)]

        scored = sorted(
            ((_cosine(query_embedding, r.vector), r) for r in candidates),  # type: ignore[arg-type]
            key=lambda pair: pair[0],
            reverse=True,
        )
        return [
            {"id": r.chunk_id, "content": r.text, "score": score, "metadata": _flat_metadata(r)}
            for score, r in scored[:k]
        ]


def _flat_metadata(record: EmbeddingRecord) -> dict[str, Any]:
    return {
        **record.metadata,
        "document_id": record.document_id,
        "sequence_index": record.sequence_index,
    }


class InMemoryArtifactStore(ArtifactStoreBase):
    """Dict-backed artifact store keyed by owner id."""

    def __init__(self) -> None:
        self._artifacts: dict[str, Artifact] = {}
        self._lock = threading.Lock()

    def upsert(self, artifact: Artifact) -> None:
        with self._lock:
            self._artifacts[artifact.owner_id] = artifact.model_copy()

    def get(self, owner_id: str) -> Artifact | None:
        with self._lock:
            artifact = self._artifacts.get(owner_id)
        return artifact.model_copy() if artifact is not None else None

    def query_placeholders(self, limit: int) -> list[Artifact]:
        with self._lock:
            pending = [
                a.model_copy()
                for a in self._artifacts.values()
                if a.needs_repair
            ]
        return oldest_attempt_first(pending, limit)
