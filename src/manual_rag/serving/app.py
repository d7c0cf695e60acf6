"""FastAPI application exposing ingestion and repair triggers over HTTP."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from manual_rag import service
from manual_rag.artifacts.repair import RepairSweepReport
from manual_rag.backfill.scheduler import BackfillReport
from manual_rag.config import settings
from manual_rag.errors import ArtifactNotFoundError, StoreError, ValidationError
from manual_rag.ingestion.models import Document, IngestReport
from manual_rag.storage.models import Artifact, ChunkMatch, DocumentStatus


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=settings.log_level)
    service.get_service()
    yield
    service.shutdown_service()


app = FastAPI(
    title="Manual RAG ingestion API",
    version="0.1.0",
    description="Triggers for manual ingestion, embedding backfill and QR code repair.",
    lifespan=lifespan,
)


# ── Request schemas ────────────────────────────────────────────────────
class IngestRequest(BaseModel):
    """A document to chunk and embed."""

    id: str | None = None
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchRequest(BaseModel):
    """A question to match against embedded chunks."""

    query: str
    k: int | None = None
    document_id: str | None = None
    product_id: str | None = None


class ArtifactRequest(BaseModel):
    """Target of a new QR code: a text tag, or a business chat with a query."""

    owner_id: str
    qr_text_tag: str | None = None
    business_id: str | None = None
    product_name: str = ""
    query: str | None = None


class RepairRequest(BaseModel):
    """Targeted repair of one artifact, optionally with new content to encode."""

    payload_override: str | None = None


# ── Error mapping ──────────────────────────────────────────────────────
@app.exception_handler(ArtifactNotFoundError)
async def _not_found(_: Request, exc: ArtifactNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def _invalid(_: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def _store_unavailable(_: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ── Routes ─────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


@app.get("/ready")
async def ready() -> JSONResponse:
    """Readiness check; checks the vector-store backend."""
    healthy = await asyncio.to_thread(service.get_service().vector_store.health_check)
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ready" if healthy else "unavailable"},
    )


@app.post("/documents", response_model=IngestReport)
async def ingest_document(request: IngestRequest) -> IngestReport:
    """Chunk and embed a document; failed chunks are left for the backfill."""
    fields = request.model_dump(exclude_none=True)
    return await service.ingest(Document(**fields))


@app.delete("/documents/{document_id}")
async def delete_document(document_id: str) -> dict[str, Any]:
    """Delete a document and, with it, all of its chunks."""
    removed = await service.delete_document(document_id)
    return {"document_id": document_id, "deleted": removed}


@app.get("/documents/{document_id}/status", response_model=DocumentStatus)
async def document_status(document_id: str) -> DocumentStatus:
    """How many of a document's chunks are embedded and how many are pending."""
    return await service.document_status(document_id)


@app.post("/search", response_model=list[ChunkMatch])
async def search(request: SearchRequest) -> list[ChunkMatch]:
    """Find the chunks most similar to a question."""
    return await service.search(
        request.query,
        k=request.k,
        document_id=request.document_id,
        product_id=request.product_id,
    )


@app.post("/backfill", response_model=BackfillReport)
async def run_backfill(batch_size: int = settings.backfill_batch_size) -> BackfillReport:
    """Retry one batch of chunks with missing embeddings."""
    return await service.run_backfill_batch(batch_size)


@app.post("/backfill/drain", response_model=BackfillReport)
async def drain_backfill(batch_size: int = settings.backfill_batch_size) -> BackfillReport:
    """Retry batches until nothing is pending or a batch makes no progress."""
    return await service.drain_backfill(batch_size)


@app.post("/artifacts", response_model=Artifact)
async def register_artifact(request: ArtifactRequest) -> Artifact:
    """Create a placeholder QR code for an owner; a repair fills it in."""
    fields = request.model_dump(exclude={"owner_id"})
    return await service.register_artifact(request.owner_id, **fields)


@app.post("/artifacts/sweep", response_model=RepairSweepReport)
async def sweep_artifacts(limit: int = settings.artifact_max_sweep) -> RepairSweepReport:
    """Regenerate artifacts still in placeholder or failed state."""
    return await service.run_artifact_repair_sweep(limit)


@app.post("/artifacts/{owner_id}/repair", response_model=Artifact)
async def repair_artifact(owner_id: str, request: RepairRequest | None = None) -> Artifact:
    """Regenerate one owner's artifact now."""
    override = request.payload_override if request else None
    return await service.repair_artifact(owner_id, override)
