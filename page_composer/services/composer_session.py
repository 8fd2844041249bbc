from __future__ import annotations

import uuid
from pathlib import Path
from typing import Sequence

from page_composer.adapters.pymupdf_adapter import PyMuPdfAdapter
from page_composer.domain.errors import FileIOError, ValidationError
from page_composer.domain.models import (
    IngestResult,
    MergeResult,
    PageDescriptor,
    RenderBatchReport,
    RenderTier,
    SourceFile,
)
from page_composer.domain.page_order import PageOrderModel
from page_composer.infrastructure.config import AppConfig
from page_composer.infrastructure.logging import get_logger
from page_composer.infrastructure.storage import FileStore
from page_composer.services.merge_service import MergeService, OutputSender
from page_composer.services.page_cache import BatchListener, PageCache
from page_composer.services.upload_service import UploadService

logger = get_logger("session")


class ComposerSession:
    """State owned by one user session: sources, page order and render cache.

    A merge consumes the uploaded sources, so the session starts over empty
    after every merge attempt.
    """

    def __init__(
        self,
        config: AppConfig,
        adapter: PyMuPdfAdapter | None = None,
        session_id: str | None = None,
    ) -> None:
        self.config = config
        self.session_id = session_id or uuid.uuid4().hex
        self.adapter = adapter or PyMuPdfAdapter()
        self.store = FileStore(config.storage_dir / self.session_id)
        self.upload_service = UploadService(self.adapter, self.store, config)
        self.merge_service = MergeService(self.adapter, self.store)
        self.order = PageOrderModel()
        self.cache = PageCache(
            self.adapter,
            self.read_source,
            zoom_by_tier={
                RenderTier.PREVIEW: config.preview_zoom,
                RenderTier.FULL: config.full_zoom,
            },
            batch_size=config.render_batch_size,
        )
        self.source_files: dict[str, SourceFile] = {}

    def files(self) -> list[SourceFile]:
        return list(self.source_files.values())

    def pages(self) -> list[PageDescriptor]:
        return self.order.snapshot()

    def file_locations(self) -> dict[str, Path]:
        return {file_id: source.storage_path for file_id, source in self.source_files.items()}

    def read_source(self, file_id: str) -> bytes:
        source = self.source_files.get(file_id)
        if source is None:
            raise FileIOError(f"Unknown file: {file_id}")
        return self.store.read(source.storage_path)

    def upload(self, files: list[tuple[str, bytes]]) -> IngestResult:
        result = self.upload_service.ingest(files)
        for source in result.source_files:
            self.source_files[source.file_id] = source
        self.order.append(result.page_descriptors)
        return result

    def _descriptor(self, page_id: str) -> PageDescriptor:
        descriptor = self.order.get(page_id)
        if descriptor is None:
            raise ValidationError(f"Unknown page: {page_id}")
        return descriptor

    def image(self, page_id: str, tier: RenderTier = RenderTier.PREVIEW) -> bytes:
        return self.cache.get_or_render(tier, self._descriptor(page_id))

    def render_previews(
        self,
        descriptors: Sequence[PageDescriptor] | None = None,
        on_batch: BatchListener | None = None,
    ) -> RenderBatchReport:
        targets = self.order.snapshot() if descriptors is None else list(descriptors)
        return self.cache.render_batch(RenderTier.PREVIEW, targets, on_batch=on_batch)

    def remove_page(self, page_id: str) -> bool:
        removed = self.order.remove(page_id)
        self.cache.evict(page_id)
        return removed

    def remove_pages(self, page_ids: Sequence[str]) -> list[PageDescriptor]:
        removed = self.order.remove_many(page_ids)
        self.cache.evict_many([page.id for page in removed])
        return removed

    def remove_file(self, file_id: str) -> list[PageDescriptor]:
        removed = self.order.remove_by_source_file(file_id)
        self.cache.evict_many([page.id for page in removed])
        source = self.source_files.pop(file_id, None)
        if source is not None:
            self.store.delete(source.storage_path)
            logger.info("Removed %s with %d page(s)", source.original_name, len(removed))
        return removed

    def rotate(self, page_id: str, delta_degrees: int = 90) -> None:
        self.order.rotate(page_id, delta_degrees)

    def reorder(self, page_ids: Sequence[str]) -> None:
        self.order.reorder(page_ids)

    def move(self, page_id: str, new_position: int) -> None:
        self.order.move(page_id, new_position)

    def merge(self, output_name: str | None, send: OutputSender) -> MergeResult:
        order = self.order.snapshot()
        if not order:
            raise ValidationError("Cannot merge when no pages remain.")
        try:
            return self.merge_service.merge_and_deliver(
                order, self.file_locations(), output_name, send
            )
        finally:
            self.reset()

    def reset(self) -> None:
        for source in self.source_files.values():
            self.store.delete(source.storage_path)
        self.source_files = {}
        self.order = PageOrderModel()
        self.cache.clear()

    def close(self) -> None:
        self.reset()
        self.store.purge()
