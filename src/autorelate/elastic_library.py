"""Library store on top of the official async Elasticsearch client.

Provides the operations the auto-relate pipeline and CLI need:

* :py:meth:`ElasticLibrary.create_index` – keyword mapping for library items.
* :py:meth:`ElasticLibrary.add_items` – bulk-index new items and announce them
  through the notifier ("add"/"item").
* :py:meth:`ElasticLibrary.get` / :py:meth:`ElasticLibrary.get_all` /
  :py:meth:`ElasticLibrary.find_by_keys` – item lookups.
* :py:meth:`ElasticLibrary.save_item` – persist one item (refresh on write).

Items are kept in an identity map keyed by ES ``_id``; every caller shares one
:class:`LibraryItem` per stored document.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Iterable

from elasticsearch import AsyncElasticsearch
from elasticsearch.exceptions import NotFoundError
from elasticsearch.helpers import async_bulk, async_scan

from src.autorelate.entities import LibraryRecord
from src.autorelate.library import LibraryItem, Notifier

logger = logging.getLogger(__name__)


class ElasticLibraryConnectionError(RuntimeError):
    """Raised when the client fails to connect to Elasticsearch."""


class ElasticLibrary:
    """Elasticsearch-backed :class:`~src.autorelate.library.LibraryStore`."""

    def __init__(
        self,
        hosts: list[str] | str = "http://localhost:9200",
        index_name: str = "library",
        *,
        library_id: str = "user",
        notifier: Notifier | None = None,
    ) -> None:
        self._client = AsyncElasticsearch(hosts, request_timeout=10)
        self._hosts = hosts
        self.index_name = index_name
        self.library_id = library_id
        self.notifier = notifier or Notifier()
        self._items: dict[str, LibraryItem] = {}

    async def connect(self, attempts: int = 6) -> None:
        """Verify connectivity, retrying while the cluster starts up.

        Raises:
            ElasticLibraryConnectionError: If the cluster is unreachable.
        """
        for attempt in range(attempts):
            try:
                if await self._client.ping():
                    return
            except Exception as exc:
                logger.debug("ES ping error: %s", exc)

            if attempt == attempts - 1:
                raise ElasticLibraryConnectionError(
                    f"Unable to connect to Elasticsearch at {self._hosts}"
                )

            logger.info("ES ping failed (attempt %d/%d); retrying in 5s…", attempt + 1, attempts)
            await asyncio.sleep(5)

    async def close(self) -> None:
        await self._client.close()

    async def create_index(self, force_delete: bool = False) -> None:
        """Create the library index unless it already exists.

        Args:
            force_delete: Delete an existing index of the same name first.
        """
        if force_delete:
            try:
                await self._client.indices.delete(index=self.index_name)
                logger.info("Deleted existing index '%s'.", self.index_name)
            except NotFoundError:
                pass
            self._items.clear()

        if await self._client.indices.exists(index=self.index_name):
            logger.info("Index '%s' already exists; skipping creation.", self.index_name)
            return

        await self._client.indices.create(
            index=self.index_name,
            settings={"number_of_shards": 1, "number_of_replicas": 0},
            mappings={
                "properties": {
                    "key": {"type": "keyword"},
                    "title": {"type": "text"},
                    "doi": {"type": "keyword"},
                    "item_type": {"type": "keyword"},
                    "library_id": {"type": "keyword"},
                    "related": {"type": "keyword"},
                }
            },
        )
        logger.info("Created index '%s'.", self.index_name)

    # ------------------------------------------------------------------
    # Item materialisation
    # ------------------------------------------------------------------

    def _item_from_hit(self, es_id: str, src: dict[str, Any]) -> LibraryItem:
        cached = self._items.get(es_id)
        if cached is not None:
            return cached
        item = LibraryItem(
            es_id,
            src.get("key") or es_id,
            title=src.get("title") or "",
            doi=src.get("doi"),
            item_type=src.get("item_type") or "journalArticle",
            library_id=src.get("library_id") or self.library_id,
            related=src.get("related") or [],
            store=self,
        )
        self._items[es_id] = item
        return item

    # ------------------------------------------------------------------
    # LibraryStore interface
    # ------------------------------------------------------------------

    async def get(self, item_id: Any) -> LibraryItem | None:
        es_id = str(item_id)
        if es_id in self._items:
            return self._items[es_id]
        try:
            resp = await self._client.get(index=self.index_name, id=es_id)
        except NotFoundError:
            return None
        return self._item_from_hit(resp["_id"], resp["_source"])

    async def get_all(self, library_id: str) -> list[LibraryItem]:
        items = []
        async for hit in async_scan(
            self._client,
            index=self.index_name,
            query={"query": {"term": {"library_id": library_id}}},
        ):
            items.append(self._item_from_hit(hit["_id"], hit["_source"]))

        # forget cached items whose documents are gone from this library
        seen = {item.id for item in items}
        stale = [
            es_id
            for es_id, item in self._items.items()
            if item.library_id == library_id and es_id not in seen
        ]
        for es_id in stale:
            del self._items[es_id]
        if stale:
            logger.info("Dropped %d cached item(s) no longer in '%s'.", len(stale), self.index_name)
        return items

    async def find_by_keys(self, keys: Iterable[str]) -> list[LibraryItem]:
        wanted = list(dict.fromkeys(keys))
        found: dict[str, LibraryItem] = {}
        async for hit in async_scan(
            self._client,
            index=self.index_name,
            query={"query": {"terms": {"key": wanted}}},
        ):
            item = self._item_from_hit(hit["_id"], hit["_source"])
            found[item.key] = item
        missing = [k for k in wanted if k not in found]
        if missing:
            logger.warning("Unknown item key(s): %s", ", ".join(missing))
        return [found[k] for k in wanted if k in found]

    async def save_item(self, item: LibraryItem) -> None:
        await self._client.index(
            index=self.index_name,
            id=str(item.id),
            document=dict(item.to_record()),
            refresh=True,
        )

    async def add_items(self, records: Iterable[LibraryRecord], *, notify: bool = True) -> list[LibraryItem]:
        """Bulk-index *records* as new items and announce their ids."""
        items = []
        for record in records:
            record = {"library_id": self.library_id, "related": [], **record}
            items.append(self._item_from_hit(str(uuid.uuid4()), record))

        if not items:
            return items

        actions = [
            {
                "_op_type": "index",
                "_index": self.index_name,
                "_id": item.id,
                **item.to_record(),
            }
            for item in items
        ]
        await async_bulk(self._client, actions, refresh=True)
        logger.info("Indexed %d items into '%s'.", len(items), self.index_name)

        if notify:
            self.notifier.notify("add", "item", [item.id for item in items])
        return items
