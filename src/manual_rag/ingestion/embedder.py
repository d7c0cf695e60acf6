"""Embedding providers — text → fixed-length vector.

Concrete providers are thin wrappers around LangChain embedding
integrations.  Any failure of the underlying client surfaces as
:class:`~manual_rag.errors.ProviderError`; callers apply their own
timeout through :func:`embed_with_timeout`.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from manual_rag.config import settings
from manual_rag.errors import ProviderError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Backend-agnostic embedding capability."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return the embedding of *text* or raise :class:`ProviderError`."""
        ...


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapter for any LangChain ``Embeddings`` implementation.

    The client is built lazily on first use so constructing a provider
    never downloads a model or opens a connection.
    """

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        self._client: Embeddings | None = None

    @abstractmethod
    def _build_client(self) -> Embeddings: ...

    @property
    def client(self) -> Embeddings:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def embed(self, text: str) -> list[float]:
        try:
            return list(self.client.embed_query(text))
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"{self.model_name}: {exc}") from exc


class HuggingFaceEmbeddingProvider(LangChainEmbeddingProvider):
    """Local sentence-transformer embeddings."""

    def __init__(self, model_name: str = settings.embedding_model) -> None:
        super().__init__(model_name)

    def _build_client(self) -> Embeddings:
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(
            model_name=self.model_name,
            encode_kwargs={"normalize_embeddings": True},
        )


class OpenAIEmbeddingProvider(LangChainEmbeddingProvider):
    """OpenAI hosted embeddings (``text-embedding-3-small`` by default)."""

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        *,
        api_key: str = settings.openai_api_key,
    ) -> None:
        super().__init__(model_name)
        self._api_key = api_key

    def _build_client(self) -> Embeddings:
        if not self._api_key:
            raise ProviderError("OpenAI API key not configured")
        from langchain_openai import OpenAIEmbeddings

        return OpenAIEmbeddings(model=self.model_name, api_key=self._api_key)


def get_embedding_provider(backend: str = settings.embedding_backend) -> EmbeddingProvider:
    """Return the provider configured by ``settings.embedding_backend``."""
    if backend == "huggingface":
        return HuggingFaceEmbeddingProvider()
    if backend == "openai":
        return OpenAIEmbeddingProvider()
    raise ValueError(f"Unsupported embedding backend: {backend!r}")


async def embed_with_timeout(
    provider: EmbeddingProvider,
    text: str,
    timeout: float | None = settings.embedding_timeout_seconds,
) -> list[float]:
    """Run ``provider.embed`` in a worker thread, bounded by *timeout* seconds.

    A timeout is reported as :class:`ProviderError` like any other
    provider failure.  The worker thread itself cannot be interrupted;
    its late result is discarded.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(provider.embed, text), timeout)
    except asyncio.TimeoutError as exc:
        raise ProviderError(f"embedding timed out after {timeout}s") from exc
