from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Sequence

from page_composer.adapters.pymupdf_adapter import PyMuPdfAdapter
from page_composer.domain.errors import RenderFailure
from page_composer.domain.models import (
    PageDescriptor,
    RenderBatchReport,
    RenderEvent,
    RenderState,
    RenderStatus,
    RenderTier,
)
from page_composer.infrastructure.logging import get_logger

logger = get_logger("cache")

CacheKey = tuple[RenderTier, str]
SourceReader = Callable[[str], bytes]
RenderListener = Callable[[RenderEvent], None]
BatchListener = Callable[[list[str]], None]


class PageCache:
    """Rasterized pages in two tiers, keyed by page id.

    Entries never depend on position or rotation, so reordering and rotating
    leave them valid. Only explicit eviction removes them.
    """

    def __init__(
        self,
        adapter: PyMuPdfAdapter,
        read_source: SourceReader,
        zoom_by_tier: dict[RenderTier, float] | None = None,
        batch_size: int = 5,
    ) -> None:
        self.adapter = adapter
        self.read_source = read_source
        self.zoom_by_tier = zoom_by_tier or {RenderTier.PREVIEW: 0.5, RenderTier.FULL: 2.0}
        self.batch_size = max(1, batch_size)
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, bytes] = {}
        self._in_flight: dict[CacheKey, Future[bytes]] = {}
        self._statuses: dict[CacheKey, RenderStatus] = {}
        self._evicted: set[str] = set()
        self._listeners: list[RenderListener] = []

    def subscribe(self, listener: RenderListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, tier: RenderTier, page_id: str, status: RenderStatus) -> None:
        with self._lock:
            listeners = list(self._listeners)
        event = RenderEvent(tier=tier, page_id=page_id, status=status)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Render listener failed for %s", page_id)

    def peek(self, tier: RenderTier, page_id: str) -> bytes | None:
        with self._lock:
            return self._entries.get((tier, page_id))

    def status(self, tier: RenderTier, page_id: str) -> RenderStatus | None:
        with self._lock:
            return self._statuses.get((tier, page_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _render(self, tier: RenderTier, descriptor: PageDescriptor) -> bytes:
        source_bytes = self.read_source(descriptor.source_file_id)
        return self.adapter.render_page(
            source_bytes, descriptor.page_index, zoom=self.zoom_by_tier[tier]
        )

    def get_or_render(self, tier: RenderTier, descriptor: PageDescriptor) -> bytes:
        key = (tier, descriptor.id)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                return cached
            future = self._in_flight.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._in_flight[key] = future
                if descriptor.id not in self._evicted:
                    self._statuses[key] = RenderStatus(RenderState.PENDING)

        if not owner:
            return future.result()

        self._notify(tier, descriptor.id, RenderStatus(RenderState.PENDING))
        try:
            image = self._render(tier, descriptor)
        except Exception as exc:
            failure = RenderFailure(descriptor.id, str(exc))
            status = RenderStatus(RenderState.FAILED, error=str(exc))
            with self._lock:
                self._in_flight.pop(key, None)
                if descriptor.id not in self._evicted:
                    self._statuses[key] = status
            logger.warning("Render failed for %s (%s): %s", descriptor.id, tier.value, exc)
            future.set_exception(failure)
            self._notify(tier, descriptor.id, status)
            raise failure from exc

        with self._lock:
            self._in_flight.pop(key, None)
            discarded = descriptor.id in self._evicted
            if not discarded:
                self._entries[key] = image
                self._statuses[key] = RenderStatus(RenderState.READY)
        future.set_result(image)
        if discarded:
            logger.debug("Discarded render for removed page %s", descriptor.id)
        else:
            self._notify(tier, descriptor.id, RenderStatus(RenderState.READY))
        return image

    def render_batch(
        self,
        tier: RenderTier,
        descriptors: Sequence[PageDescriptor],
        on_batch: BatchListener | None = None,
    ) -> RenderBatchReport:
        pending = [page for page in descriptors if self.peek(tier, page.id) is None]
        ready: list[str] = []
        failed: dict[str, str] = {}
        for start in range(0, len(pending), self.batch_size):
            batch = pending[start : start + self.batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = {
                    page.id: executor.submit(self.get_or_render, tier, page) for page in batch
                }
                for page_id, future in futures.items():
                    try:
                        future.result()
                    except RenderFailure as exc:
                        failed[page_id] = str(exc)
                    else:
                        ready.append(page_id)
            if on_batch is not None:
                on_batch([page.id for page in batch])
        if failed:
            logger.info("Rendered %d page(s), %d failed", len(ready), len(failed))
        return RenderBatchReport(ready=ready, failed=failed)

    def evict(self, page_id: str) -> None:
        self.evict_many([page_id])

    def evict_many(self, page_ids: Sequence[str]) -> None:
        selected = set(page_ids)
        with self._lock:
            self._evicted.update(selected)
            for key in [key for key in self._entries if key[1] in selected]:
                del self._entries[key]
            for key in [key for key in self._statuses if key[1] in selected]:
                del self._statuses[key]

    def clear(self) -> None:
        with self._lock:
            # Only renders still running need to remember they were dropped.
            self._evicted = {page_id for _, page_id in self._in_flight}
            self._entries.clear()
            self._statuses.clear()
