"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import threading
import time

import pytest

from manual_rag import service
from manual_rag.backfill.guard import SweepGuard
from manual_rag.errors import ProviderError
from manual_rag.ingestion.embedder import EmbeddingProvider
from manual_rag.storage.memory_store import InMemoryArtifactStore, InMemoryVectorStore


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class FakeEmbedder(EmbeddingProvider):
    """Deterministic embedder; fails for any text containing a marker in ``fail_on``."""

    def __init__(self, delay: float = 0.0) -> None:
        self.fail_on: set[str] = set()
        self.slow_on: dict[str, float] = {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def embed(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = next((d for marker, d in self.slow_on.items() if marker in text), self.delay)
            if delay:
                time.sleep(delay)
            if any(marker in text for marker in self.fail_on):
                raise ProviderError(f"provider rejected {text[:20]!r}")
            return [float(len(text)), 1.0, 0.5]
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture()
def guard() -> SweepGuard:
    """A private guard so tests never contend on the process-wide one."""
    return SweepGuard()


@pytest.fixture(autouse=True)
def _reset_service():
    service.shutdown_service()
    yield
    service.shutdown_service()
