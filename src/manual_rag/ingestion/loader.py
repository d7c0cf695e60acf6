"""Document loaders — thin wrappers around LangChain document loaders."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from langchain_community.document_loaders import PyPDFLoader, TextLoader

from manual_rag.errors import ValidationError
from manual_rag.ingestion.chunker import PARAGRAPH_DELIMITER
from manual_rag.ingestion.models import Document

if TYPE_CHECKING:
    from langchain_core.documents import Document as LCDocument


def pages_to_document(
    pages: list[LCDocument],
    *,
    document_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Document:
    """Join loader pages into one :class:`Document`, one paragraph break per page."""
    text = PARAGRAPH_DELIMITER.join(p.page_content.strip() for p in pages if p.page_content.strip())
    meta: dict[str, Any] = {"page_count": len(pages)}
    if pages:
        meta["source"] = pages[0].metadata.get("source", "")
    meta.update(metadata or {})
    fields: dict[str, Any] = {"text": text, "metadata": meta}
    if document_id is not None:
        fields["id"] = document_id
    return Document(**fields)


def load_pdf(path: str | Path, *, document_id: str | None = None, **metadata: Any) -> Document:
    """Load a PDF manual into a single :class:`Document`.

    Parameters
    ----------
    path:
        PDF file on disk.
    document_id:
        Id to assign; a random id is generated when omitted.
    metadata:
        Extra source metadata (``product_id=...`` etc.).
    """
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"No such file: {path}")
    return pages_to_document(PyPDFLoader(str(path)).load(), document_id=document_id, metadata=metadata)


def load_text(path: str | Path, *, document_id: str | None = None, **metadata: Any) -> Document:
    """Load a plain-text or Markdown manual."""
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"No such file: {path}")
    pages = TextLoader(str(path), encoding="utf-8").load()
    return pages_to_document(pages, document_id=document_id, metadata=metadata)
