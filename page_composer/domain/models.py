from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

PAGE_ID_SEPARATOR = "_page_"


def page_id_for(file_id: str, page_index: int) -> str:
    return f"{file_id}{PAGE_ID_SEPARATOR}{page_index}"


def parse_page_id(page_id: str) -> tuple[str, int]:
    file_id, separator, index = page_id.rpartition(PAGE_ID_SEPARATOR)
    if not separator or not file_id or not index.isdigit():
        raise ValueError(f"Not a page id: {page_id!r}")
    return file_id, int(index)


class RenderTier(str, Enum):
    PREVIEW = "preview"
    FULL = "full"


class RenderState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceFile:
    file_id: str
    original_name: str
    storage_path: Path
    page_count: int
    size_bytes: int


@dataclass(frozen=True)
class PageDescriptor:
    id: str
    source_file_id: str
    page_index: int
    original_name: str
    rotation: int = 0

    @classmethod
    def for_page(cls, source: SourceFile, page_index: int) -> PageDescriptor:
        return cls(
            id=page_id_for(source.file_id, page_index),
            source_file_id=source.file_id,
            page_index=page_index,
            original_name=source.original_name,
        )

    @property
    def original_page(self) -> int:
        return self.page_index + 1

    @property
    def display_label(self) -> str:
        return f"{self.original_name} - Pg {self.original_page}"


@dataclass(frozen=True)
class StoredFile:
    file_id: str
    path: Path


@dataclass(frozen=True)
class RejectedUpload:
    original_name: str
    reason: str


@dataclass(frozen=True)
class IngestResult:
    source_files: list[SourceFile]
    page_descriptors: list[PageDescriptor]
    rejected: list[RejectedUpload] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.source_files)


@dataclass(frozen=True)
class RenderStatus:
    state: RenderState
    error: str | None = None


@dataclass(frozen=True)
class RenderEvent:
    tier: RenderTier
    page_id: str
    status: RenderStatus


@dataclass(frozen=True)
class RenderBatchReport:
    ready: list[str]
    failed: dict[str, str]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class MergeResult:
    output_name: str
    output_pdf: bytes
    merged_pages: int
