"""coordinator.py
Debounced batching of newly added library items.

States
------
idle
    No pending ids, no timer.
accumulating
    Add-events push ids into the pending buffer; each event restarts the
    ``batch_window`` timer, so processing waits until events stop arriving.
processing
    The timer fired: the buffer was swapped out for a fresh one, and the
    captured batch waits ``settle_delay`` before its items are read and
    enriched one by one.

Teardown (:meth:`BatchCoordinator.cancel`) drops the timer and the buffer
without processing them, and cancels batches that were already captured.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from src.autorelate.doi_index import DoiIndex
from src.autorelate.entities import BatchReport
from src.autorelate.library import LibraryItem, LibraryStore
from src.autorelate.openalex_client import OpenAlexClient
from src.autorelate.pipeline import process_item, short_title
from src.autorelate.scheduler import Scheduler, TimerHandle
from src.autorelate.settings import settings
from src.common.doi import normalize_doi

logger = logging.getLogger(__name__)


class BatchCoordinator:
    """Collects add-events into batches and drives them through the pipeline."""

    def __init__(
        self,
        store: LibraryStore,
        doi_index: DoiIndex,
        client: OpenAlexClient,
        scheduler: Scheduler,
        *,
        batch_window: float | None = None,
        settle_delay: float | None = None,
        run_lock: asyncio.Lock | None = None,
    ) -> None:
        self._store = store
        self._index = doi_index
        self._client = client
        self._scheduler = scheduler
        self.batch_window = settings.batch_window if batch_window is None else batch_window
        self.settle_delay = settings.settle_delay if settle_delay is None else settle_delay

        self._pending: list[Any] = []
        self._timer: TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        # batches settle independently; the lock is shared with manual runs so
        # the pipeline (and OpenAlex) only ever sees one caller at a time
        self._run_lock = run_lock or asyncio.Lock()
        self.reports: list[BatchReport] = []

    @property
    def state(self) -> str:
        if self._timer is not None:
            return "accumulating"
        if self._tasks:
            return "processing"
        return "idle"

    @property
    def pending(self) -> list[Any]:
        return list(self._pending)

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def notify(self, event: str, type_: str, ids: list[Any], extra: dict | None = None) -> None:
        """Notifier observer entry point; only "add" events on items count."""
        if event == "add" and type_ == "item":
            self.on_items_added(ids)

    def on_items_added(self, ids: list[Any]) -> None:
        self._pending.extend(ids)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._scheduler.call_later(self.batch_window, self._flush)

    def _flush(self) -> None:
        batch, self._pending = self._pending, []
        self._timer = None
        task = asyncio.ensure_future(self.process_batch(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel(self) -> None:
        """Stop the debounce timer, discard pending ids and cancel captured batches."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending:
            logger.info("Discarding %d pending item(s)", len(self._pending))
        self._pending = []
        for task in list(self._tasks):
            if not task.done():
                logger.info("Cancelling in-flight batch")
                task.cancel()

    async def wait_cancelled(self) -> None:
        """Wait for batches cancelled by :meth:`cancel` to unwind."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def drain(self, poll: float = 0.1) -> None:
        """Wait until the pending window has closed and every batch has finished."""
        while self._timer is not None or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(poll)

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    async def _load_items(self, ids: list[Any], report: BatchReport) -> list[LibraryItem]:
        items: list[LibraryItem] = []
        for item_id in ids:
            try:
                item = await self._store.get(item_id)
            except Exception as exc:
                logger.warning("Error loading item %s: %s", item_id, exc)
                report.errors += 1
                continue
            if item is None:
                logger.info("Skipping item %s (not found)", item_id)
                report.skipped += 1
                continue
            if not item.is_regular_item():
                logger.info("Skipping item %s (%s)", item_id, item.item_type)
                report.skipped += 1
                continue
            if not normalize_doi(item.get_field("DOI")):
                logger.info("Skipping item %s (no DOI)", item_id)
                report.skipped += 1
                continue
            items.append(item)
        return items

    async def process_batch(self, ids: list[Any]) -> BatchReport:
        await self._scheduler.sleep(self.settle_delay)
        async with self._run_lock:
            report = await self._run_batch(ids)
        self.reports.append(report)
        return report

    async def _run_batch(self, ids: list[Any]) -> BatchReport:
        report = BatchReport()
        items = await self._load_items(ids, report)
        if not items:
            logger.info("No processable items in batch")
            return report

        logger.info("Processing batch of %d item(s)", len(items))
        try:
            doi_index = await self._index.get()
        except Exception as exc:
            logger.error("Cannot build DOI index, dropping batch: %s", exc)
            report.errors += len(items)
            return report

        for item in items:
            try:
                report.relations_added += await process_item(item, doi_index, self._client)
            except Exception as exc:
                logger.error('Error processing "%s": %s', short_title(item), exc)
                report.errors += 1
            report.items_processed += 1

        logger.info(
            "Batch complete: %d items processed, %d relations added",
            report.items_processed,
            report.relations_added,
        )
        return report
