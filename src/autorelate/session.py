"""session.py
Owns every piece of mutable auto-relate state for one host process: the
OpenAlex client, the DOI index cache, the batch coordinator (pending buffer
and debounce timer) and the notifier registration.

Usage::

    async with AutoRelateSession(library, library.notifier) as session:
        ...                                   # add-events are now batched
        await session.process_selected_items()
"""

from __future__ import annotations

import asyncio
import logging

from src.autorelate.coordinator import BatchCoordinator
from src.autorelate.doi_index import DoiIndex
from src.autorelate.entities import BatchReport
from src.autorelate.library import LibraryStore, Notifier
from src.autorelate.manual import ManualTrigger
from src.autorelate.openalex_client import OpenAlexClient
from src.autorelate.progress import ConsoleSurface, SelectionSurface
from src.autorelate.scheduler import LoopScheduler, Scheduler
from src.common.settings import settings as common_settings

logger = logging.getLogger(__name__)


class AutoRelateSession:
    def __init__(
        self,
        store: LibraryStore,
        notifier: Notifier,
        *,
        client: OpenAlexClient | None = None,
        scheduler: Scheduler | None = None,
        surface: SelectionSurface | None = None,
        library_id: str | None = None,
    ) -> None:
        self.scheduler = scheduler or LoopScheduler()
        self._owns_client = client is None
        self.client = client or OpenAlexClient(sleep=self.scheduler.sleep)
        self.notifier = notifier
        self.index = DoiIndex(
            store,
            library_id or common_settings.library_id,
            clock=self.scheduler.now,
        )
        # one pipeline run at a time, whether batched or manual
        self.run_lock = asyncio.Lock()
        self.coordinator = BatchCoordinator(
            store, self.index, self.client, self.scheduler, run_lock=self.run_lock
        )
        self.manual = ManualTrigger(
            self.index, self.client, surface or ConsoleSurface(), run_lock=self.run_lock
        )
        self._observer_id: str | None = None

    @property
    def started(self) -> bool:
        return self._observer_id is not None

    def start(self) -> None:
        if self._observer_id is None:
            self._observer_id = self.notifier.register_observer(
                self.coordinator.notify, ["item"], "AutoRelate"
            )
            logger.info("Notifier observer registered")

    async def close(self) -> None:
        if self._observer_id is not None:
            self.notifier.unregister_observer(self._observer_id)
            self._observer_id = None
        self.coordinator.cancel()
        await self.coordinator.wait_cancelled()
        self.index.invalidate()
        if self._owns_client:
            await self.client.aclose()
        logger.info("Auto-relate session closed")

    async def __aenter__(self) -> "AutoRelateSession":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def process_selected_items(self) -> BatchReport | None:
        return await self.manual.run()
