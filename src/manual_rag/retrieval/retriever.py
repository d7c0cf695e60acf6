"""Chunk retriever — embed a question and find the closest manual chunks.

Pending chunks (``vector=None``) are never matched; they become
searchable once the backfill has embedded them.

Usage::

    from manual_rag.retrieval import ChunkRetriever

    retriever = ChunkRetriever(store, embedder)
    matches = await retriever.search("How do I descale it?", product_id="p-1")
"""

from __future__ import annotations

import asyncio
import logging

from manual_rag.config import settings
from manual_rag.errors import ProviderError, StoreError, ValidationError
from manual_rag.ingestion.embedder import EmbeddingProvider, embed_with_timeout
from manual_rag.storage.base import VectorStoreBase
from manual_rag.storage.models import ChunkMatch, MetadataFilter
from manual_rag.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


class ChunkRetriever:
    """Similarity search scoped to one document or product.

    Parameters
    ----------
    store:
        Vector store holding the embedded chunks.
    embedder:
        Provider used to embed the query; must match the ingestion model.
    default_k:
        Default number of matches returned by :meth:`search`.
    score_threshold:
        Minimum cosine similarity; weaker matches are discarded.
    embed_timeout:
        Timeout in seconds for embedding the query.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingProvider,
        *,
        default_k: int = settings.match_count,
        score_threshold: float = settings.similarity_threshold,
        embed_timeout: float | None = settings.embedding_timeout_seconds,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.default_k = default_k
        self.score_threshold = score_threshold
        self.embed_timeout = embed_timeout

    async def search(
        self,
        query: str,
        *,
        k: int | None = None,
        document_id: str | None = None,
        product_id: str | None = None,
        threshold: float | None = None,
    ) -> list[ChunkMatch]:
        """Return up to *k* chunks similar to *query*, best first.

        Parameters
        ----------
        query:
            Natural-language question; must not be blank.
        k:
            Number of matches (defaults to ``self.default_k``).
        document_id:
            Restrict matches to one document.
        product_id:
            Restrict matches to chunks whose document metadata carries
            this ``product_id``.
        threshold:
            Overrides ``self.score_threshold`` for this call.

        Returns
        -------
        list[ChunkMatch]
            Matches at or above the threshold.  Provider and store
            failures are logged and yield an empty list.
        """
        if not query.strip():
            raise ValidationError("Search query is empty")
        k = k or self.default_k
        if k < 1:
            raise ValidationError(f"k must be >= 1, got {k}")

        try:
            embedding = await embed_with_timeout(self.embedder, query, self.embed_timeout)
        except ProviderError as exc:
            logger.warning("Could not embed search query: %s", exc)
            return []

        filters: list[MetadataFilter] = []
        if document_id:
            filters.append(MetadataFilter.equals("document_id", document_id))
        if product_id:
            filters.append(MetadataFilter.equals("product_id", product_id))

        try:
            hits = await asyncio.to_thread(
                read_with_retry, self.store.similarity_search, embedding, k=k, filters=filters or None
            )
        except StoreError as exc:
            logger.error("Error searching for similar chunks: %s", exc)
            return []

        cutoff = self.score_threshold if threshold is None else threshold
        matches = [
            ChunkMatch(chunk_id=h["id"], content=h["content"], score=h["score"], metadata=h["metadata"])
            for h in hits
            if h["score"] >= cutoff
        ]
        logger.info("Search returned %d/%d matches above %.2f", len(matches), len(hits), cutoff)
        return matches
