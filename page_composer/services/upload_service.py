from __future__ import annotations

from page_composer.adapters.pymupdf_adapter import PyMuPdfAdapter
from page_composer.domain.errors import (
    ComposerError,
    ParsingError,
    UnreadablePdf,
    ValidationError,
)
from page_composer.domain.models import (
    IngestResult,
    PageDescriptor,
    RejectedUpload,
    SourceFile,
)
from page_composer.infrastructure.config import AppConfig
from page_composer.infrastructure.logging import get_logger
from page_composer.infrastructure.storage import FileStore

logger = get_logger("upload")


class UploadService:
    def __init__(self, adapter: PyMuPdfAdapter, store: FileStore, config: AppConfig) -> None:
        self.adapter = adapter
        self.store = store
        self.config = config

    def _check_file(self, name: str, content: bytes) -> None:
        if not name.lower().endswith(".pdf"):
            raise ValidationError(f"Invalid file type for {name}. Only PDF files are allowed.")
        if len(content) > self.config.max_pdf_size_bytes:
            raise ValidationError(
                f"{name} exceeds per-file limit of {self.config.max_pdf_size_mb} MB"
            )

    def _ingest_one(self, name: str, content: bytes) -> SourceFile:
        self._check_file(name, content)
        stored = self.store.save(name, content)
        try:
            page_count = self.adapter.get_page_count(content)
        except ParsingError as exc:
            self.store.delete(stored.path)
            raise UnreadablePdf(f"{name} could not be read as a PDF") from exc
        if page_count < 1:
            self.store.delete(stored.path)
            raise UnreadablePdf(f"{name} contains no pages")
        return SourceFile(
            file_id=stored.file_id,
            original_name=name,
            storage_path=stored.path,
            page_count=page_count,
            size_bytes=len(content),
        )

    def ingest(self, uploaded_files: list[tuple[str, bytes]]) -> IngestResult:
        if not uploaded_files:
            return IngestResult(source_files=[], page_descriptors=[])

        total_size = sum(len(content) for _, content in uploaded_files)
        if total_size > self.config.max_batch_size_bytes:
            raise ValidationError(f"Batch size exceeds limit of {self.config.max_batch_size_mb} MB")

        source_files: list[SourceFile] = []
        rejected: list[RejectedUpload] = []
        for name, content in uploaded_files:
            try:
                source_files.append(self._ingest_one(name, content))
            except ComposerError as exc:
                logger.warning("Rejected upload %s: %s", name, exc)
                rejected.append(RejectedUpload(original_name=name, reason=str(exc)))

        descriptors = self.page_descriptors(source_files)
        logger.info(
            "Ingested %d file(s) with %d page(s), rejected %d",
            len(source_files),
            len(descriptors),
            len(rejected),
        )
        return IngestResult(
            source_files=source_files, page_descriptors=descriptors, rejected=rejected
        )

    @staticmethod
    def page_descriptors(source_files: list[SourceFile]) -> list[PageDescriptor]:
        descriptors: list[PageDescriptor] = []
        for source in source_files:
            descriptors.extend(
                PageDescriptor.for_page(source, index) for index in range(source.page_count)
            )
        return descriptors
