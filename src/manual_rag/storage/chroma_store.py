"""Chroma implementation of the vector-store abstraction.

Chroma has no nullable embeddings, so a pending record is stored with a
zero vector and ``has_embedding=False`` in its metadata.  The flag keeps
pending records discoverable by :meth:`ChromaVectorStore.query_null` and
excludes them from similarity search.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import chromadb

from manual_rag.config import settings
from manual_rag.errors import StoreError
from manual_rag.storage.base import VectorStoreBase, oldest_attempt_first
from manual_rag.storage.models import EmbeddingRecord, MetadataFilter

logger = logging.getLogger(__name__)

_RESERVED_KEYS = ("document_id", "sequence_index", "attempt_count", "last_attempt_at", "has_embedding")

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any]:
    """Convert filters to Chroma ``where`` syntax, always excluding pending records."""
    clauses: list[dict[str, Any]] = [{"has_embedding": {"$eq": True}}]
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _to_metadata(record: EmbeddingRecord) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool
    meta = {k: v for k, v in record.metadata.items() if isinstance(v, (str, int, float, bool))}
    meta.update(
        document_id=record.document_id,
        sequence_index=record.sequence_index,
        attempt_count=record.attempt_count,
        last_attempt_at=record.last_attempt_at.isoformat() if record.last_attempt_at else "",
        has_embedding=record.vector is not None,
    )
    return meta


def _from_chroma(chunk_id: str, text: str | None, meta: dict[str, Any], embedding: Any) -> EmbeddingRecord:
    last = meta.get("last_attempt_at") or None
    has_embedding = bool(meta.get("has_embedding"))
    return EmbeddingRecord(
        chunk_id=chunk_id,
        document_id=str(meta.get("document_id", "")),
        sequence_index=int(meta.get("sequence_index", 0)),
        text=text or "",
        vector=[float(x) for x in embedding] if has_embedding and embedding is not None else None,
        attempt_count=int(meta.get("attempt_count", 0)),
        last_attempt_at=datetime.fromisoformat(last) if last else None,
        metadata={k: v for k, v in meta.items() if k not in _RESERVED_KEYS},
    )


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    embedding_dim:
        Dimension of the stored vectors; sizes the pending placeholder.
    client:
        Pre-built Chroma client (tests, embedded deployments).
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        embedding_dim: int = settings.embedding_dim,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name)
        self.embedding_dim = embedding_dim
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(self, record: EmbeddingRecord) -> None:
        embedding = record.vector if record.vector is not None else [0.0] * self.embedding_dim
        try:
            self._collection.upsert(
                ids=[record.chunk_id],
                embeddings=[embedding],
                documents=[record.text],
                metadatas=[_to_metadata(record)],
            )
        except Exception as exc:
            raise StoreError(f"upsert {record.chunk_id} failed: {exc}") from exc

    def get(self, ids: list[str]) -> list[EmbeddingRecord]:
        if not ids:
            return []
        try:
            result = self._collection.get(ids=ids, include=["documents", "metadatas", "embeddings"])
        except Exception as exc:
            raise StoreError(f"get failed: {exc}") from exc
        return self._records(result, with_embeddings=True)

    def get_document(self, document_id: str) -> list[EmbeddingRecord]:
        try:
            result = self._collection.get(
                where={"document_id": {"$eq": document_id}},
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as exc:
            raise StoreError(f"get of document {document_id} failed: {exc}") from exc
        return sorted(self._records(result, with_embeddings=True), key=lambda r: r.sequence_index)

    def query_null(self, limit: int) -> list[EmbeddingRecord]:
        """Return up to *limit* pending records, oldest attempt first.

        Chroma ``where`` filters cannot order by ``last_attempt_at``, so
        every pending record (without its placeholder vector) is fetched
        and the ordering and *limit* are applied client-side.  Memory per
        scan therefore grows with the size of the whole pending set.
        """
        try:
            result = self._collection.get(
                where={"has_embedding": {"$eq": False}},
                include=["documents", "metadatas"],
            )
        except Exception as exc:
            raise StoreError(f"pending scan failed: {exc}") from exc
        return oldest_attempt_first(self._records(result, with_embeddings=False), limit)

    def delete(self, ids: list[str]) -> None:
        if not ids:
            return
        try:
            self._collection.delete(ids=ids)
        except Exception as exc:
            raise StoreError(f"delete failed: {exc}") from exc

    def delete_document(self, document_id: str) -> int:
        try:
            result = self._collection.get(where={"document_id": {"$eq": document_id}}, include=[])
            ids = result.get("ids", [])
            if ids:
                self._collection.delete(ids=ids)
        except Exception as exc:
            raise StoreError(f"delete of document {document_id} failed: {exc}") from exc
        return len(ids)

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        try:
            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=k,
                where=_build_chroma_where(filters or []),
                include=["documents", "metadatas", "distances"],
            )
        except ValueError:
            raise
        except Exception as exc:
            raise StoreError(f"similarity search failed: {exc}") from exc

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            # Cosine distance → similarity.
            hits.append(
                {
                    "id": chunk_id,
                    "content": content or "",
                    "score": 1.0 - dist,
                    "metadata": meta or {},
                }
            )
        return hits

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _records(result: dict[str, Any], *, with_embeddings: bool) -> list[EmbeddingRecord]:
        ids = result.get("ids") or []
        docs = result.get("documents") or [None] * len(ids)
        metas = result.get("metadatas") or [{}] * len(ids)
        embeddings = result.get("embeddings") if with_embeddings else None
        if embeddings is None:
            embeddings = [None] * len(ids)
        return [
            _from_chroma(chunk_id, doc, meta or {}, emb)
            for chunk_id, doc, meta, emb in zip(ids, docs, metas, embeddings)
        ]
