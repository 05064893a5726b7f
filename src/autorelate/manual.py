"""manual.py
On-demand enrichment of the items a user selected.

No debounce and no settle delay: the selection is filtered to regular items
with a DOI, the DOI index is fetched once, and every item goes through
:func:`src.autorelate.pipeline.process_item` in order while the progress
window is kept up to date.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from src.autorelate.doi_index import DoiIndex
from src.autorelate.entities import BatchReport
from src.autorelate.library import LibraryItem
from src.autorelate.openalex_client import OpenAlexClient
from src.autorelate.pipeline import is_processable, process_item, short_title
from src.autorelate.progress import SelectionSurface
from src.autorelate.settings import settings

logger = logging.getLogger(__name__)

HEADLINE = "Auto-Relate: Finding related items..."


class ManualTrigger:
    def __init__(
        self,
        doi_index: DoiIndex,
        client: OpenAlexClient,
        surface: SelectionSurface,
        *,
        close_delay: float | None = None,
        run_lock: asyncio.Lock | None = None,
    ) -> None:
        self._index = doi_index
        self._client = client
        self._surface = surface
        self.close_delay = settings.progress_close_delay if close_delay is None else close_delay
        self._run_lock = run_lock or asyncio.Lock()

    async def run(self, documents: Sequence[LibraryItem] | None = None) -> BatchReport | None:
        """Enrich *documents* (default: the surface's current selection).

        Returns:
            The run's :class:`BatchReport`, or None when nothing qualified.
        """
        selected = list(documents if documents is not None else self._surface.get_selected_documents())
        if not selected:
            logger.info("No items selected")
            return None

        items = [item for item in selected if is_processable(item)]
        if not items:
            logger.info("No selected items have DOIs")
            self._surface.notice("Auto-Relate: none of the selected items has a DOI.")
            return None

        logger.info("Manual run: %d item(s) selected", len(items))
        report = BatchReport(skipped=len(selected) - len(items))

        window = self._surface.progress_window(len(items))
        window.change_headline(HEADLINE)

        async with self._run_lock:
            doi_index = await self._index.get()
            for item in items:
                try:
                    report.relations_added += await process_item(item, doi_index, self._client)
                except Exception as exc:
                    logger.error('Error processing "%s": %s', short_title(item, 50), exc)
                    report.errors += 1
                report.items_processed += 1
                window.advance(1, relations=report.relations_added)

        window.change_headline("Auto-Relate: Done")
        window.add_line(
            f"{report.items_processed} items processed, "
            f"{report.relations_added} relations added",
            100,
        )
        window.start_close_timer(self.close_delay)

        logger.info(
            "Manual run complete: %d items, %d relations added",
            report.items_processed,
            report.relations_added,
        )
        return report
