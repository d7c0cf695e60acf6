"""Ingestion orchestrator — Chunker → Embedding Provider → Vector Store.

Every new or changed chunk is first persisted as a pending record
(``vector=None``), then embedded independently.  A failing chunk is
recorded and left pending for the backfill; it never aborts its
siblings, and the orchestrator never retries inline.  On re-ingest,
chunks whose text is unchanged keep their stored vector.
"""

from __future__ import annotations

import asyncio
import logging

from manual_rag.concurrency import finish_write, run_bounded
from manual_rag.config import settings
from manual_rag.errors import ProviderError, StoreError, ValidationError
from manual_rag.ingestion.chunker import chunk_document
from manual_rag.ingestion.embedder import EmbeddingProvider, embed_with_timeout
from manual_rag.ingestion.models import Chunk, Document, IngestReport
from manual_rag.storage.base import VectorStoreBase
from manual_rag.storage.models import EmbeddingRecord
from manual_rag.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


async def attempt_embedding(
    record: EmbeddingRecord,
    embedder: EmbeddingProvider,
    store: VectorStoreBase,
    *,
    timeout: float | None = settings.embedding_timeout_seconds,
) -> bool:
    """Make one embedding attempt for *record* and persist the outcome.

    ``attempt_count`` and ``last_attempt_at`` are updated whatever the
    outcome.  Returns ``True`` only when a vector was written.
    """
    try:
        vector: list[float] | None = await embed_with_timeout(embedder, record.text, timeout)
    except ProviderError as exc:
        logger.warning("Embedding failed for chunk %s (attempt %d): %s",
                       record.chunk_id, record.attempt_count + 1, exc)
        vector = None

    try:
        await finish_write(store.upsert, record.attempted(vector))
    except StoreError as exc:
        logger.error("Could not persist chunk %s: %s", record.chunk_id, exc)
        return False
    return vector is not None


class IngestionOrchestrator:
    """Drive documents through chunking, embedding and persistence.

    Parameters
    ----------
    store:
        Vector store receiving one record per chunk.
    embedder:
        Embedding provider; may fail or time out per chunk.
    max_chunk_size:
        Chunk limit in UTF-8 bytes.
    concurrency:
        Maximum number of embedding calls in flight per ``ingest``.
    embed_timeout:
        Per-call embedding timeout in seconds.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingProvider,
        *,
        max_chunk_size: int = settings.max_chunk_size,
        concurrency: int = settings.ingest_concurrency,
        embed_timeout: float | None = settings.embedding_timeout_seconds,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.max_chunk_size = max_chunk_size
        self.concurrency = concurrency
        self.embed_timeout = embed_timeout

    async def ingest(self, document: Document, *, timeout: float | None = None) -> IngestReport:
        """Chunk, embed and store *document*.

        Parameters
        ----------
        document:
            Document to ingest; must contain non-whitespace text.
        timeout:
            Overall deadline in seconds.  Chunks not finished by then are
            reported as ``pending`` and stay ``vector=None``.

        Returns
        -------
        IngestReport
            Chunk ids grouped by outcome, in document order.  Unchanged,
            already-embedded chunks are reported as succeeded.
        """
        if not document.text.strip():
            raise ValidationError(f"Document {document.id!r} is empty")

        chunks = chunk_document(document, self.max_chunk_size)
        logger.info("Ingesting document %s: %d chunks (max %d bytes)",
                    document.id, len(chunks), self.max_chunk_size)

        to_embed, unchanged = await asyncio.to_thread(self._persist_pending, document, chunks)
        outcomes = await run_bounded(
            to_embed,
            lambda rec: attempt_embedding(rec, self.embedder, self.store, timeout=self.embed_timeout),
            concurrency=self.concurrency,
            timeout=timeout,
        )
        by_id: dict[str, bool | None] = {rec.chunk_id: outcome for rec, outcome in zip(to_embed, outcomes)}
        by_id.update((chunk_id, True) for chunk_id in unchanged)

        report = IngestReport(document_id=document.id)
        for chunk in chunks:
            outcome = by_id[chunk.chunk_id]
            if outcome is None:
                report.pending.append(chunk.chunk_id)
            elif outcome:
                report.succeeded.append(chunk.chunk_id)
            else:
                report.failed.append(chunk.chunk_id)

        logger.info("Ingested document %s: %d succeeded (%d unchanged), %d failed, %d pending",
                    document.id, len(report.succeeded), len(unchanged), len(report.failed), len(report.pending))
        return report

    def _persist_pending(
        self, document: Document, chunks: list[Chunk]
    ) -> tuple[list[EmbeddingRecord], list[str]]:
        """Reconcile the stored records of *document* with its new chunks.

        Chunks whose text is unchanged and already embedded keep their
        vector and are not embedded again.  Every other chunk is written
        as a ``vector=None`` record before embedding starts.  Records left
        over from a previous, longer chunking are deleted.

        Returns the records to embed and the ids of the unchanged chunks.
        """
        try:
            existing = {r.chunk_id: r for r in read_with_retry(self.store.get_document, document.id)}
        except StoreError as exc:
            logger.warning("Could not read existing records of %s: %s", document.id, exc)
            existing = {}

        stale = [r.chunk_id for r in existing.values() if r.sequence_index >= len(chunks)]
        if stale:
            try:
                self.store.delete(stale)
                logger.info("Removed %d stale chunks of %s", len(stale), document.id)
            except StoreError as exc:
                logger.error("Could not remove stale chunks of %s: %s", document.id, exc)

        to_embed: list[EmbeddingRecord] = []
        unchanged: list[str] = []
        for chunk in chunks:
            prior = existing.get(chunk.chunk_id)
            metadata = {
                **_flat(document.metadata),
                "byte_length": chunk.byte_length,
                "token_estimate": chunk.token_estimate,
            }
            if prior is not None and prior.vector is not None and prior.text == chunk.text:
                unchanged.append(chunk.chunk_id)
                if prior.metadata != metadata:
                    self._write(prior.model_copy(update={"metadata": metadata}))
                continue

            record = EmbeddingRecord(
                chunk_id=chunk.chunk_id,
                document_id=chunk.document_id,
                sequence_index=chunk.sequence_index,
                text=chunk.text,
                attempt_count=prior.attempt_count if prior else 0,
                last_attempt_at=prior.last_attempt_at if prior else None,
                metadata=metadata,
            )
            self._write(record)
            to_embed.append(record)
        return to_embed, unchanged

    def _write(self, record: EmbeddingRecord) -> None:
        try:
            self.store.upsert(record)
        except StoreError as exc:
            logger.error("Could not write record %s: %s", record.chunk_id, exc)


def _flat(metadata: dict) -> dict:
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}
