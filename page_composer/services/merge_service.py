from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from page_composer.adapters.pymupdf_adapter import PyMuPdfAdapter
from page_composer.domain.errors import (
    DeliveryFailure,
    FileIOError,
    MergeFailed,
    ValidationError,
)
from page_composer.domain.models import MergeResult, PageDescriptor
from page_composer.infrastructure.logging import get_logger
from page_composer.infrastructure.storage import FileStore, safe_file_name

logger = get_logger("merge")

DEFAULT_OUTPUT_STEM = "merged"

OutputSender = Callable[[Path, str], None]


def output_file_name(requested: str | None) -> str:
    stem = (requested or "").strip()
    if stem.lower().endswith(".pdf"):
        stem = stem[:-4]
    return safe_file_name(f"{stem or DEFAULT_OUTPUT_STEM}.pdf", f"{DEFAULT_OUTPUT_STEM}.pdf")


class MergeService:
    def __init__(self, adapter: PyMuPdfAdapter, store: FileStore) -> None:
        self.adapter = adapter
        self.store = store

    def merge(
        self,
        order: Sequence[PageDescriptor],
        file_locations: Mapping[str, Path],
        output_name: str | None = None,
    ) -> MergeResult:
        """Compose ``order`` into one PDF and consume the source files.

        Sources are opened once each, on first use. Whatever happens, the
        stored bytes of every source this merge touched are deleted before
        returning.
        """
        if not order:
            raise ValidationError("Cannot merge when no pages remain.")

        name = output_file_name(output_name)
        touched_paths: list[Path] = []
        source_docs: dict[str, Any] = {}
        output = self.adapter.new_document()
        try:
            for position, page in enumerate(order, start=1):
                source = source_docs.get(page.source_file_id)
                if source is None:
                    if page.source_file_id not in file_locations:
                        raise FileIOError(f"No stored file for {page.original_name}")
                    path = Path(file_locations[page.source_file_id])
                    touched_paths.append(path)
                    source = self.adapter.open_document(self.store.read(path))
                    source_docs[page.source_file_id] = source
                self.adapter.copy_page(output, source, page.page_index, page.rotation)
                logger.debug("Copied %s to output page %d", page.id, position)
            output_pdf = self.adapter.serialize(output)
        except Exception as exc:
            logger.error("Merge of %d page(s) failed: %s", len(order), exc)
            raise MergeFailed(f"Failed to merge PDFs: {exc}") from exc
        finally:
            for path in touched_paths:
                self.store.delete(path)
            for source in source_docs.values():
                self.adapter.close(source)
            self.adapter.close(output)

        logger.info(
            "Merged %d page(s) from %d file(s) into %s", len(order), len(source_docs), name
        )
        return MergeResult(output_name=name, output_pdf=output_pdf, merged_pages=len(order))

    def deliver(self, result: MergeResult, send: OutputSender) -> None:
        staged = self.store.stage_output(result.output_name, result.output_pdf)
        try:
            send(staged, result.output_name)
        except Exception as exc:
            logger.error("Delivery of %s failed: %s", result.output_name, exc)
            raise DeliveryFailure(f"Could not deliver {result.output_name}") from exc
        finally:
            self.store.delete(staged)

    def merge_and_deliver(
        self,
        order: Sequence[PageDescriptor],
        file_locations: Mapping[str, Path],
        output_name: str | None,
        send: OutputSender,
    ) -> MergeResult:
        result = self.merge(order, file_locations, output_name)
        self.deliver(result, send)
        return result
