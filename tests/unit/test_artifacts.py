"""Unit tests for QR generation and the artifact repair queue."""

from __future__ import annotations

import asyncio
import base64
import threading
import time
from urllib.parse import parse_qs, urlparse

import pytest

from manual_rag.artifacts.qr import ArtifactGenerator, QRCodeGenerator, build_chat_url
from manual_rag.artifacts.repair import ArtifactRepairQueue, RepairSweepReport
from manual_rag.backfill.guard import ARTIFACTS
from manual_rag.errors import ArtifactNotFoundError, ProviderError, StoreError, ValidationError
from manual_rag.storage.memory_store import InMemoryArtifactStore
from manual_rag.storage.models import Artifact, ArtifactState


class FakeGenerator(ArtifactGenerator):
    """Returns ``payload:<source>``; fails the first ``failures`` calls per source."""

    def __init__(self, failures: int = 0, delay: float = 0.0) -> None:
        self.failures = failures
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def generate(self, source: str) -> str:
        with self._lock:
            self.calls.append(source)
            attempt = self.calls.count(source)
        if self.delay:
            time.sleep(self.delay)
        if attempt <= self.failures:
            raise ProviderError("renderer unavailable")
        return f"payload:{source}"


class BrokenScanArtifactStore(InMemoryArtifactStore):
    def __init__(self) -> None:
        super().__init__()
        self.scans = 0

    def query_placeholders(self, limit: int) -> list[Artifact]:
        self.scans += 1
        raise StoreError("connection reset")


class ReadOnlyArtifactStore(InMemoryArtifactStore):
    """Accepts placeholder creation but rejects every repair write."""

    def upsert(self, artifact: Artifact) -> None:
        if artifact.attempt_count > 0:
            raise StoreError("read-only replica")
        super().upsert(artifact)


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def queue(artifact_store, generator, guard) -> ArtifactRepairQueue:
    return ArtifactRepairQueue(artifact_store, generator, guard=guard, max_attempts=3, max_sweep=50)


# ── QR generation ──────────────────────────────────────────────────────


class TestQRCodeGenerator:
    def test_generates_png_data_url(self) -> None:
        payload = QRCodeGenerator().generate("https://textg.pt/iqr/chat/blender-x2")
        prefix = "data:image/png;base64,"
        assert payload.startswith(prefix)
        assert base64.b64decode(payload[len(prefix):]).startswith(b"\x89PNG")

    def test_same_source_same_payload(self) -> None:
        gen = QRCodeGenerator()
        assert gen.generate("https://example.com/a") == gen.generate("https://example.com/a")

    def test_empty_source_is_a_provider_error(self) -> None:
        with pytest.raises(ProviderError):
            QRCodeGenerator().generate("")


class TestBuildChatUrl:
    def test_text_tag_url(self) -> None:
        assert build_chat_url("https://textg.pt/", qr_text_tag="blender") == "https://textg.pt/iqr/chat/blender"

    def test_business_url_with_default_query(self) -> None:
        url = build_chat_url("https://textg.pt", business_id="biz-1", product_name="Blender X2")
        parsed = urlparse(url)
        assert parsed.path == "/iqr/chat/biz-1"
        assert parse_qs(parsed.query)["sent"] == ["Blender X2 describe"]

    def test_custom_query_wins(self) -> None:
        url = build_chat_url("https://textg.pt", business_id="biz-1", query="how do I clean it?")
        assert parse_qs(urlparse(url).query)["sent"] == ["how do I clean it?"]

    def test_business_id_required_without_tag(self) -> None:
        with pytest.raises(ValidationError):
            build_chat_url("https://textg.pt")


# ── Sweep ──────────────────────────────────────────────────────────────


class TestRunSweep:
    def test_placeholders_become_ready(self, queue, artifact_store) -> None:
        artifact_store.create_placeholder("qr-1", "https://a")
        artifact_store.create_placeholder("qr-2", "https://b")
        artifact_store.upsert(Artifact(owner_id="qr-3", source="https://c", payload="old", state=ArtifactState.READY))

        report = asyncio.run(queue.run_sweep(10))

        assert (report.updated, report.failed) == (2, 0)
        repaired = artifact_store.get("qr-1")
        assert repaired.state is ArtifactState.READY
        assert repaired.payload == "payload:https://a"
        assert repaired.attempt_count == 1
        assert artifact_store.get("qr-3").payload == "old"
        assert artifact_store.query_placeholders(10) == []

    def test_missing_source_is_marked_failed_and_stays_discoverable(self, queue, artifact_store) -> None:
        artifact_store.create_placeholder("qr-1", "")

        report = asyncio.run(queue.run_sweep(10))

        assert (report.updated, report.failed) == (0, 1)
        assert artifact_store.get("qr-1").state is ArtifactState.FAILED
        assert [a.owner_id for a in artifact_store.query_placeholders(10)] == ["qr-1"]

    def test_transient_failures_are_retried_inline(self, artifact_store, guard) -> None:
        generator = FakeGenerator(failures=2)
        queue = ArtifactRepairQueue(artifact_store, generator, guard=guard, max_attempts=3)
        artifact_store.create_placeholder("qr-1", "https://a")

        report = asyncio.run(queue.run_sweep(10))

        assert report.updated == 1
        assert generator.calls == ["https://a"] * 3

    def test_exhausted_retries_fail_then_recover_on_a_later_sweep(self, artifact_store, guard) -> None:
        generator = FakeGenerator(failures=2)
        queue = ArtifactRepairQueue(artifact_store, generator, guard=guard, max_attempts=2)
        artifact_store.create_placeholder("qr-1", "https://a")

        first = asyncio.run(queue.run_sweep(10))
        assert (first.updated, first.failed) == (0, 1)
        assert artifact_store.get("qr-1").state is ArtifactState.FAILED

        second = asyncio.run(queue.run_sweep(10))
        assert (second.updated, second.failed) == (1, 0)
        repaired = artifact_store.get("qr-1")
        assert repaired.state is ArtifactState.READY
        assert repaired.attempt_count == 2

    def test_limit_is_clamped(self, queue, artifact_store) -> None:
        for i in range(3):
            artifact_store.create_placeholder(f"qr-{i}", f"https://{i}")
        assert asyncio.run(queue.run_sweep(0)).updated == 1
        assert asyncio.run(queue.run_sweep(1000)).updated == 2

    def test_deadline_leaves_unfinished_artifacts_as_placeholders(self, artifact_store, guard) -> None:
        generator = FakeGenerator(delay=0.3)
        queue = ArtifactRepairQueue(artifact_store, generator, guard=guard, concurrency=1)
        for i in range(3):
            artifact_store.create_placeholder(f"qr-{i}", f"https://{i}")

        report = asyncio.run(queue.run_sweep(10, timeout=0.1))

        assert (report.updated, report.failed) == (0, 0)
        for i in range(3):
            artifact = artifact_store.get(f"qr-{i}")
            assert artifact.state is ArtifactState.PLACEHOLDER
            assert artifact.attempt_count == 0

    def test_failed_scan_is_retried_then_reports_nothing(self, generator, guard) -> None:
        store = BrokenScanArtifactStore()
        queue = ArtifactRepairQueue(store, generator, guard=guard)

        report = asyncio.run(queue.run_sweep(10))

        assert report == RepairSweepReport()
        assert store.scans == 3
        assert generator.calls == []

    def test_failed_write_back_counts_as_failed(self, generator, guard) -> None:
        store = ReadOnlyArtifactStore()
        queue = ArtifactRepairQueue(store, generator, guard=guard)
        store.create_placeholder("qr-1", "https://a")
        store.create_placeholder("qr-2", "https://b")

        report = asyncio.run(queue.run_sweep(10))

        assert (report.updated, report.failed) == (0, 2)
        assert store.get("qr-1").state is ArtifactState.PLACEHOLDER

    def test_overlapping_sweep_is_skipped(self, queue, artifact_store, generator, guard) -> None:
        artifact_store.create_placeholder("qr-1", "https://a")
        with guard.hold(ARTIFACTS):
            report = asyncio.run(queue.run_sweep(10))
        assert report.skipped
        assert generator.calls == []


# ── Targeted repair ────────────────────────────────────────────────────


class TestRepairArtifact:
    def test_repairs_existing_placeholder(self, queue, artifact_store) -> None:
        artifact_store.create_placeholder("qr-1", "https://a")
        artifact = asyncio.run(queue.repair_artifact("qr-1"))
        assert artifact.state is ArtifactState.READY
        assert artifact_store.get("qr-1") == artifact

    def test_override_replaces_encoded_content(self, queue, artifact_store) -> None:
        artifact_store.upsert(Artifact(owner_id="qr-1", source="https://old", payload="payload:https://old",
                                       state=ArtifactState.READY))
        artifact = asyncio.run(queue.repair_artifact("qr-1", "https://custom"))
        assert artifact.source == "https://custom"
        assert artifact.payload == "payload:https://custom"

    def test_unknown_owner_without_override_is_rejected(self, queue) -> None:
        with pytest.raises(ArtifactNotFoundError):
            asyncio.run(queue.repair_artifact("missing"))

    def test_unknown_owner_with_override_is_created(self, queue, artifact_store) -> None:
        artifact = asyncio.run(queue.repair_artifact("qr-new", "https://x"))
        assert artifact.state is ArtifactState.READY
        assert artifact_store.get("qr-new").payload == "payload:https://x"

    def test_failed_write_back_returns_failed_and_keeps_placeholder(self, generator, guard) -> None:
        store = ReadOnlyArtifactStore()
        queue = ArtifactRepairQueue(store, generator, guard=guard)
        store.create_placeholder("qr-1", "https://a")

        artifact = asyncio.run(queue.repair_artifact("qr-1"))

        assert artifact.state is ArtifactState.FAILED
        assert store.get("qr-1").state is ArtifactState.PLACEHOLDER
        assert [a.owner_id for a in store.query_placeholders(10)] == ["qr-1"]

    def test_concurrent_repairs_end_ready_with_one_payload(self, artifact_store, guard) -> None:
        generator = FakeGenerator(delay=0.05)
        queue = ArtifactRepairQueue(artifact_store, generator, guard=guard)
        artifact_store.create_placeholder("qr-1", "https://a")

        async def both() -> None:
            await asyncio.gather(
                queue.repair_artifact("qr-1", "https://first"),
                queue.repair_artifact("qr-1", "https://second"),
            )

        asyncio.run(both())

        final = artifact_store.get("qr-1")
        assert final.state is ArtifactState.READY
        assert final.payload in {"payload:https://first", "payload:https://second"}
        assert final.payload == f"payload:{final.source}"

    def test_targeted_and_sweep_share_the_same_write_back(self, queue, artifact_store) -> None:
        artifact_store.create_placeholder("qr-1", "https://a")
        artifact_store.create_placeholder("qr-2", "https://a")
        targeted = asyncio.run(queue.repair_artifact("qr-1"))
        asyncio.run(queue.run_sweep(10))
        swept = artifact_store.get("qr-2")
        assert (targeted.payload, targeted.state, targeted.attempt_count) == (
            swept.payload, swept.state, swept.attempt_count,
        )
