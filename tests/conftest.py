from __future__ import annotations

from pathlib import Path
from typing import Callable

import fitz
import pytest

from page_composer.infrastructure.config import AppConfig
from page_composer.infrastructure.storage import FileStore

PdfFactory = Callable[[list[str]], bytes]
PageReader = Callable[[bytes], list[tuple[str, int]]]


def _build_pdf(texts: list[str]) -> bytes:
    document = fitz.open()
    try:
        for text in texts:
            page = document.new_page()
            page.insert_text((72, 72), text)
        return document.tobytes(deflate=True, garbage=3)
    finally:
        document.close()


@pytest.fixture
def make_pdf() -> PdfFactory:
    return _build_pdf


@pytest.fixture
def read_pages() -> PageReader:
    def read(pdf_bytes: bytes) -> list[tuple[str, int]]:
        with fitz.open(stream=pdf_bytes, filetype="pdf") as document:
            return [(page.get_text("text").strip(), page.rotation) for page in document]

    return read


@pytest.fixture
def pdf_a() -> bytes:
    return _build_pdf(["Alpha page 1", "Alpha page 2", "Alpha page 3"])


@pytest.fixture
def pdf_b() -> bytes:
    return _build_pdf(["Bravo page 1", "Bravo page 2"])


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        max_pdf_size_mb=50,
        max_batch_size_mb=100,
        render_batch_size=2,
        preview_zoom=0.2,
        full_zoom=0.5,
        storage_dir=tmp_path / "storage",
    )


@pytest.fixture
def store(tmp_path: Path) -> FileStore:
    return FileStore(tmp_path / "store")
