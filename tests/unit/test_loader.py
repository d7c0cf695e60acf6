"""Unit tests for the document loaders."""

from __future__ import annotations

from pathlib import Path

import pytest
from langchain_core.documents import Document as LCDocument

from manual_rag.errors import ValidationError
from manual_rag.ingestion.loader import load_pdf, load_text, pages_to_document


def test_pages_are_joined_as_paragraphs() -> None:
    pages = [
        LCDocument(page_content="  Page one.  ", metadata={"source": "manual.pdf", "page": 0}),
        LCDocument(page_content="   ", metadata={"source": "manual.pdf", "page": 1}),
        LCDocument(page_content="Page three.", metadata={"source": "manual.pdf", "page": 2}),
    ]
    doc = pages_to_document(pages, document_id="m-1", metadata={"product_id": "p-9"})

    assert doc.id == "m-1"
    assert doc.text == "Page one.\n\nPage three."
    assert doc.metadata == {"page_count": 3, "source": "manual.pdf", "product_id": "p-9"}


def test_random_id_when_not_given() -> None:
    doc = pages_to_document([LCDocument(page_content="x")])
    assert len(doc.id) == 32


def test_load_text(tmp_path: Path) -> None:
    path = tmp_path / "manual.md"
    path.write_text("# Blender\n\nKeep away from water.", encoding="utf-8")

    doc = load_text(path, document_id="blender", product_id="p-1")

    assert doc.id == "blender"
    assert "Keep away from water." in doc.text
    assert doc.metadata["product_id"] == "p-1"
    assert doc.metadata["source"] == str(path)


@pytest.mark.parametrize("loader", [load_pdf, load_text])
def test_missing_file_is_rejected(tmp_path: Path, loader) -> None:
    with pytest.raises(ValidationError):
        loader(tmp_path / "nope.pdf")
