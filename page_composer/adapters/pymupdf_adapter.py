from __future__ import annotations

from typing import cast

import fitz  # type: ignore[import-untyped]

from page_composer.domain.errors import ParsingError


class PyMuPdfAdapter:
    @staticmethod
    def _optimized_bytes(document: fitz.Document) -> bytes:
        return cast(
            bytes,
            document.tobytes(
                garbage=4,
                clean=True,
                deflate=True,
                deflate_images=True,
                deflate_fonts=True,
                no_new_id=True,
            ),
        )

    def get_page_count(self, pdf_bytes: bytes) -> int:
        try:
            with fitz.open(stream=pdf_bytes, filetype="pdf") as document:
                return int(document.page_count)
        except Exception as exc:
            raise ParsingError("Unable to read PDF page count") from exc

    def render_page(self, pdf_bytes: bytes, page_index: int, zoom: float = 0.5) -> bytes:
        try:
            with fitz.open(stream=pdf_bytes, filetype="pdf") as document:
                page = document[page_index]
                matrix = fitz.Matrix(zoom, zoom)
                pixmap = page.get_pixmap(matrix=matrix, alpha=False)
                return cast(bytes, pixmap.tobytes("png"))
        except Exception as exc:
            raise ParsingError(f"Unable to render page {page_index + 1}") from exc

    def new_document(self) -> fitz.Document:
        return fitz.open()

    def open_document(self, pdf_bytes: bytes) -> fitz.Document:
        try:
            return fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as exc:
            raise ParsingError("Unable to open source PDF") from exc

    def copy_page(
        self,
        target: fitz.Document,
        source: fitz.Document,
        page_index: int,
        rotation: int = 0,
    ) -> None:
        if not 0 <= page_index < source.page_count:
            raise ParsingError(f"Page {page_index + 1} is out of range (1-{source.page_count})")
        try:
            target.insert_pdf(source, from_page=page_index, to_page=page_index)
            if rotation:
                copied = target[target.page_count - 1]
                copied.set_rotation((copied.rotation + rotation) % 360)
        except Exception as exc:
            raise ParsingError(f"Unable to copy page {page_index + 1}") from exc

    def serialize(self, document: fitz.Document) -> bytes:
        try:
            return self._optimized_bytes(document)
        except Exception as exc:
            raise ParsingError("Unable to serialize PDF") from exc

    @staticmethod
    def close(document: fitz.Document) -> None:
        document.close()
