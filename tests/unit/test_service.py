"""Unit tests for the process-wide service lifecycle and host calls."""

from __future__ import annotations

import asyncio

from manual_rag import service
from manual_rag.artifacts.qr import ArtifactGenerator
from manual_rag.config import Settings
from manual_rag.ingestion.models import Document
from manual_rag.storage.models import ArtifactState


class _StaticGenerator(ArtifactGenerator):
    def generate(self, source: str) -> str:
        return f"img:{source}"


def _init(vector_store, artifact_store, embedder, **overrides):
    cfg = Settings(max_chunk_size=15, embedding_timeout_seconds=5, **overrides)
    return service.init_service(
        cfg,
        vector_store=vector_store,
        artifact_store=artifact_store,
        embedder=embedder,
        generator=_StaticGenerator(),
    )


def test_init_is_idempotent(vector_store, artifact_store, embedder) -> None:
    first = _init(vector_store, artifact_store, embedder)
    second = service.init_service()
    assert first is second
    assert service.get_service() is first


def test_shutdown_allows_fresh_init(vector_store, artifact_store, embedder) -> None:
    first = _init(vector_store, artifact_store, embedder)
    service.shutdown_service()
    second = _init(vector_store, artifact_store, embedder)
    assert first is not second


def test_settings_flow_into_workflows(vector_store, artifact_store, embedder) -> None:
    svc = _init(vector_store, artifact_store, embedder, ingest_concurrency=3, artifact_max_attempts=5)
    assert svc.orchestrator.max_chunk_size == 15
    assert svc.orchestrator.concurrency == 3
    assert svc.repair_queue.max_attempts == 5


def test_ingest_then_backfill(vector_store, artifact_store, embedder) -> None:
    _init(vector_store, artifact_store, embedder)
    embedder.fail_on.add("two")

    report = asyncio.run(service.ingest(Document(id="doc", text="Sentence one. Sentence two. Sentence three.")))
    assert report.failed == ["doc_1"]

    embedder.fail_on.clear()
    backfill = asyncio.run(service.run_backfill_batch(5))
    assert (backfill.processed_count, backfill.succeeded_count) == (1, 1)
    assert vector_store.query_null(10) == []


def test_artifact_calls(vector_store, artifact_store, embedder) -> None:
    _init(vector_store, artifact_store, embedder)
    artifact_store.create_placeholder("qr-1", "https://a")
    artifact_store.create_placeholder("qr-2", "https://b")

    repaired = asyncio.run(service.repair_artifact("qr-1", "https://custom"))
    assert repaired.payload == "img:https://custom"

    sweep = asyncio.run(service.run_artifact_repair_sweep(10))
    assert (sweep.updated, sweep.failed) == (1, 0)
    assert artifact_store.get("qr-2").state is ArtifactState.READY


def test_reingest_delete_and_status(vector_store, artifact_store, embedder) -> None:
    _init(vector_store, artifact_store, embedder)
    embedder.fail_on.add("two")
    asyncio.run(service.ingest(Document(id="doc", text="Sentence one. Sentence two. Sentence three.")))

    status = asyncio.run(service.document_status("doc"))
    assert (status.total, status.embedded, status.pending) == (3, 2, 1)

    assert asyncio.run(service.delete_document("doc")) == 3
    assert len(vector_store) == 0
    assert asyncio.run(service.document_status("doc")).total == 0


def test_drain_backfill_clears_every_batch(vector_store, artifact_store, embedder) -> None:
    _init(vector_store, artifact_store, embedder)
    embedder.fail_on.add("Sentence")
    asyncio.run(service.ingest(Document(id="doc", text="Sentence one. Sentence two. Sentence three.")))
    embedder.fail_on.clear()

    report = asyncio.run(service.drain_backfill(1))

    assert (report.processed_count, report.succeeded_count) == (3, 3)
    assert vector_store.query_null(10) == []


def test_search_finds_ingested_chunks(vector_store, artifact_store, embedder) -> None:
    _init(vector_store, artifact_store, embedder, similarity_threshold=0.0)
    asyncio.run(service.ingest(Document(id="doc", text="Sentence one.", metadata={"product_id": "p-1"})))

    matches = asyncio.run(service.search("Sentence one.", product_id="p-1"))

    assert [m.chunk_id for m in matches] == ["doc_0"]
    assert asyncio.run(service.search("Sentence one.", product_id="p-2")) == []


def test_register_artifact_creates_chat_url_placeholder(vector_store, artifact_store, embedder) -> None:
    _init(vector_store, artifact_store, embedder, qr_base_url="https://chat.example")

    artifact = asyncio.run(service.register_artifact("qr-1", business_id="biz-1", product_name="Kettle"))

    assert artifact.state is ArtifactState.PLACEHOLDER
    assert artifact.source == "https://chat.example/iqr/chat/biz-1?sent=Kettle%20describe"
    assert [a.owner_id for a in artifact_store.query_placeholders(10)] == ["qr-1"]
    repaired = asyncio.run(service.repair_artifact("qr-1"))
    assert repaired.payload == f"img:{artifact.source}"
