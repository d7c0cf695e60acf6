"""Process-wide service wiring and the host-facing call contracts.

The stores, embedding provider and artifact generator are built once per
process behind a single initialization gate.  Host code calls the
module-level functions (:func:`ingest`, :func:`run_backfill_batch`,
:func:`repair_artifact`, :func:`run_artifact_repair_sweep`, ...), which
resolve the service through :func:`get_service`.

Usage::

    from manual_rag import service

    service.init_service()
    report = await service.ingest(document)
    ...
    service.shutdown_service()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field

from manual_rag.artifacts.qr import ArtifactGenerator, QRCodeGenerator, build_chat_url
from manual_rag.artifacts.repair import ArtifactRepairQueue, RepairSweepReport
from manual_rag.backfill.scheduler import BackfillReport, BackfillScheduler
from manual_rag.config import Settings, settings as default_settings
from manual_rag.ingestion.embedder import EmbeddingProvider, get_embedding_provider
from manual_rag.ingestion.models import Document, IngestReport
from manual_rag.ingestion.orchestrator import IngestionOrchestrator
from manual_rag.retrieval.retriever import ChunkRetriever
from manual_rag.storage.base import ArtifactStoreBase, VectorStoreBase
from manual_rag.storage.memory_store import InMemoryArtifactStore
from manual_rag.storage.models import Artifact, ChunkMatch, DocumentStatus
from manual_rag.storage.retry import read_with_retry

logger = logging.getLogger(__name__)


@dataclass
class RagService:
    """All collaborators and workflows of one process."""

    settings: Settings
    vector_store: VectorStoreBase
    artifact_store: ArtifactStoreBase
    embedder: EmbeddingProvider
    generator: ArtifactGenerator
    orchestrator: IngestionOrchestrator = field(init=False)
    backfill: BackfillScheduler = field(init=False)
    repair_queue: ArtifactRepairQueue = field(init=False)
    retriever: ChunkRetriever = field(init=False)

    def __post_init__(self) -> None:
        cfg = self.settings
        self.orchestrator = IngestionOrchestrator(
            self.vector_store,
            self.embedder,
            max_chunk_size=cfg.max_chunk_size,
            concurrency=cfg.ingest_concurrency,
            embed_timeout=cfg.embedding_timeout_seconds,
        )
        self.backfill = BackfillScheduler(
            self.vector_store,
            self.embedder,
            concurrency=cfg.backfill_concurrency,
            embed_timeout=cfg.embedding_timeout_seconds,
        )
        self.repair_queue = ArtifactRepairQueue(
            self.artifact_store,
            self.generator,
            max_attempts=cfg.artifact_max_attempts,
            max_sweep=cfg.artifact_max_sweep,
            concurrency=cfg.backfill_concurrency,
        )
        self.retriever = ChunkRetriever(
            self.vector_store,
            self.embedder,
            default_k=cfg.match_count,
            score_threshold=cfg.similarity_threshold,
            embed_timeout=cfg.embedding_timeout_seconds,
        )


_service: RagService | None = None
_gate = threading.Lock()


def init_service(
    settings: Settings | None = None,
    *,
    vector_store: VectorStoreBase | None = None,
    artifact_store: ArtifactStoreBase | None = None,
    embedder: EmbeddingProvider | None = None,
    generator: ArtifactGenerator | None = None,
) -> RagService:
    """Create the process-wide service, or return it if already created.

    Collaborators not supplied are built from *settings*: a Chroma
    vector store, an in-memory artifact store, the configured embedding
    backend and a QR code generator.
    """
    global _service
    with _gate:
        if _service is not None:
            return _service
        cfg = settings or default_settings
        if vector_store is None:
            from manual_rag.storage.chroma_store import ChromaVectorStore

            vector_store = ChromaVectorStore(
                cfg.chroma_collection,
                host=cfg.chroma_host,
                port=cfg.chroma_port,
                embedding_dim=cfg.embedding_dim,
            )
        _service = RagService(
            settings=cfg,
            vector_store=vector_store,
            artifact_store=artifact_store or InMemoryArtifactStore(),
            embedder=embedder or get_embedding_provider(cfg.embedding_backend),
            generator=generator or QRCodeGenerator(),
        )
        logger.info("Service initialised (collection=%s, embedding backend=%s)",
                    _service.vector_store.collection_name, cfg.embedding_backend)
        return _service


def get_service() -> RagService:
    """Return the process-wide service, initialising it from settings if needed."""
    return _service or init_service()


def shutdown_service() -> None:
    """Drop the process-wide service; the next :func:`get_service` rebuilds it."""
    global _service
    with _gate:
        if _service is not None:
            logger.info("Service shut down")
        _service = None


# -- host-facing call contracts -------------------------------------------


async def ingest(document: Document, *, timeout: float | None = None) -> IngestReport:
    return await get_service().orchestrator.ingest(document, timeout=timeout)


async def run_backfill_batch(batch_size: int, *, timeout: float | None = None) -> BackfillReport:
    svc = get_service()
    return await svc.backfill.process_pending(
        batch_size, svc.settings.backfill_max_batch_size, timeout=timeout
    )


async def repair_artifact(owner_id: str, payload_override: str | None = None) -> Artifact:
    return await get_service().repair_queue.repair_artifact(owner_id, payload_override)


async def run_artifact_repair_sweep(limit: int, *, timeout: float | None = None) -> RepairSweepReport:
    return await get_service().repair_queue.run_sweep(limit, timeout=timeout)


async def drain_backfill(batch_size: int) -> BackfillReport:
    svc = get_service()
    return await svc.backfill.drain(batch_size, svc.settings.backfill_max_batch_size)


async def delete_document(document_id: str) -> int:
    """Delete every chunk record of *document_id*; return how many were removed."""
    removed = await asyncio.to_thread(get_service().vector_store.delete_document, document_id)
    logger.info("Deleted document %s (%d chunks)", document_id, removed)
    return removed


async def document_status(document_id: str) -> DocumentStatus:
    store = get_service().vector_store
    return await asyncio.to_thread(read_with_retry, store.document_status, document_id)


async def search(
    query: str,
    *,
    k: int | None = None,
    document_id: str | None = None,
    product_id: str | None = None,
) -> list[ChunkMatch]:
    return await get_service().retriever.search(query, k=k, document_id=document_id, product_id=product_id)


async def register_artifact(
    owner_id: str,
    *,
    qr_text_tag: str | None = None,
    business_id: str | None = None,
    product_name: str = "",
    query: str | None = None,
) -> Artifact:
    """Create the placeholder QR code of *owner_id*, pointing at its chat URL.

    The image itself is produced later by a repair sweep or a targeted
    :func:`repair_artifact`.
    """
    svc = get_service()
    url = build_chat_url(
        svc.settings.qr_base_url,
        qr_text_tag=qr_text_tag,
        business_id=business_id,
        product_name=product_name,
        query=query,
    )
    return await asyncio.to_thread(svc.artifact_store.create_placeholder, owner_id, url)
