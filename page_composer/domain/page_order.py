from __future__ import annotations

from collections import Counter
from dataclasses import replace
from typing import Iterable, Iterator, Sequence

from page_composer.domain.errors import InvalidOrder, ValidationError
from page_composer.domain.models import PageDescriptor, parse_page_id


def _check_identity(page: PageDescriptor) -> None:
    try:
        parsed = parse_page_id(page.id)
    except ValueError as exc:
        raise InvalidOrder(str(exc)) from exc
    if parsed != (page.source_file_id, page.page_index):
        raise InvalidOrder(
            f"Page id {page.id} does not match page {page.page_index} of {page.source_file_id}"
        )


class PageOrderModel:
    """Authoritative ordered sequence of pages across all uploaded files.

    Position in the sequence is the output page order; descriptors carry no
    order field of their own.
    """

    def __init__(self, descriptors: Iterable[PageDescriptor] = ()) -> None:
        self._pages: list[PageDescriptor] = []
        self.append(list(descriptors))

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[PageDescriptor]:
        return iter(self.snapshot())

    def __contains__(self, page_id: object) -> bool:
        return any(page.id == page_id for page in self._pages)

    def ids(self) -> list[str]:
        return [page.id for page in self._pages]

    def get(self, page_id: str) -> PageDescriptor | None:
        for page in self._pages:
            if page.id == page_id:
                return page
        return None

    def snapshot(self) -> list[PageDescriptor]:
        return list(self._pages)

    def append(self, descriptors: Sequence[PageDescriptor]) -> None:
        for page in descriptors:
            _check_identity(page)
        existing = set(self.ids())
        incoming = [page.id for page in descriptors]
        duplicates = sorted(
            {page_id for page_id in incoming if page_id in existing}
            | {page_id for page_id, count in Counter(incoming).items() if count > 1}
        )
        if duplicates:
            raise InvalidOrder(f"Pages already present: {duplicates}")
        self._pages.extend(descriptors)

    def remove(self, page_id: str) -> bool:
        remaining = [page for page in self._pages if page.id != page_id]
        removed = len(remaining) != len(self._pages)
        self._pages = remaining
        return removed

    def remove_many(self, page_ids: Iterable[str]) -> list[PageDescriptor]:
        selected = set(page_ids)
        removed = [page for page in self._pages if page.id in selected]
        self._pages = [page for page in self._pages if page.id not in selected]
        return removed

    def remove_by_source_file(self, file_id: str) -> list[PageDescriptor]:
        removed = [page for page in self._pages if page.source_file_id == file_id]
        self._pages = [page for page in self._pages if page.source_file_id != file_id]
        return removed

    def reorder(self, new_ids: Sequence[str]) -> None:
        if Counter(new_ids) != Counter(self.ids()):
            current = set(self.ids())
            requested = set(new_ids)
            raise InvalidOrder(
                "Reorder must be a permutation of the current pages "
                f"(missing={sorted(current - requested)}, "
                f"unknown={sorted(requested - current)}, "
                f"expected {len(current)} pages, got {len(new_ids)})"
            )
        by_id = {page.id: page for page in self._pages}
        self._pages = [by_id[page_id] for page_id in new_ids]

    def move(self, page_id: str, new_position: int) -> None:
        ids = self.ids()
        if page_id not in ids:
            raise InvalidOrder(f"Unknown page: {page_id}")
        ids.remove(page_id)
        position = min(max(new_position, 0), len(ids))
        ids.insert(position, page_id)
        self.reorder(ids)

    def rotate(self, page_id: str, delta_degrees: int) -> None:
        if delta_degrees % 90:
            raise ValidationError(f"Rotation must be a multiple of 90 degrees, got {delta_degrees}")
        for position, page in enumerate(self._pages):
            if page.id == page_id:
                self._pages[position] = replace(
                    page, rotation=(page.rotation + delta_degrees) % 360
                )
                return
