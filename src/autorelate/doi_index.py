"""doi_index.py
Cached ``normalized DOI -> LibraryItem`` lookup over the whole library.

The mapping is rebuilt from a full library scan once it is older than
``index_ttl`` and reused unchanged (same object) until then.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from src.autorelate.library import LibraryItem, LibraryStore
from src.autorelate.settings import settings
from src.common.doi import normalize_doi

logger = logging.getLogger(__name__)

DoiMap = dict[str, LibraryItem]


class DoiIndex:
    """TTL-cached DOI index for one library."""

    def __init__(
        self,
        store: LibraryStore,
        library_id: str,
        *,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self.library_id = library_id
        self.ttl = settings.index_ttl if ttl is None else ttl
        self._clock = clock
        self._cache: DoiMap | None = None
        self._built_at = 0.0

    @property
    def is_cached(self) -> bool:
        return self._cache is not None

    def invalidate(self) -> None:
        self._cache = None

    async def get(self) -> DoiMap:
        now = self._clock()
        if self._cache is not None and now - self._built_at < self.ttl:
            return self._cache

        logger.info("Building DOI -> item map for library %s", self.library_id)
        doi_map: DoiMap = {}
        for item in await self._store.get_all(self.library_id):
            if not item.is_regular_item():
                continue
            doi = normalize_doi(item.get_field("DOI"))
            if not doi:
                continue
            previous = doi_map.get(doi)
            if previous is not None and previous.id != item.id:
                logger.warning(
                    "DOI %s shared by items %s and %s; keeping %s",
                    doi,
                    previous.key,
                    item.key,
                    item.key,
                )
            doi_map[doi] = item

        self._cache = doi_map
        self._built_at = now
        logger.info("DOI map built: %d items", len(doi_map))
        return doi_map
