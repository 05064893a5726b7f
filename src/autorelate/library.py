"""library.py
Library-side collaborators of the pipeline.

* :class:`LibraryItem` – one library record (regular item, note, attachment…)
  holding the DOI field and its related-item keys.
* :class:`LibraryStore` – the storage interface the pipeline depends on.
* :class:`Notifier` – in-process change notifications ("add"/"item" events).
* :class:`MemoryLibrary` – dict-backed store, used by tests and by hosts that
  keep their library in memory.

Stores hand out one shared :class:`LibraryItem` per item id, so the related
keys seen by the pipeline are always the current in-memory state.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from typing import Any, Callable, Iterable, Protocol

from src.autorelate.entities import LibraryRecord

logger = logging.getLogger(__name__)

NON_REGULAR_TYPES = frozenset({"attachment", "note", "annotation"})

Observer = Callable[[str, str, list[Any], dict | None], None]


class LibraryStore(Protocol):
    async def get(self, item_id: Any) -> "LibraryItem | None": ...

    async def get_all(self, library_id: str) -> list["LibraryItem"]: ...

    async def save_item(self, item: "LibraryItem") -> None: ...


class LibraryItem:
    """A library record as seen by the pipeline."""

    def __init__(
        self,
        item_id: Any,
        key: str,
        *,
        title: str = "",
        doi: str | None = None,
        item_type: str = "journalArticle",
        library_id: str = "user",
        related: Iterable[str] = (),
        store: LibraryStore | None = None,
    ) -> None:
        self.id = item_id
        self.key = key
        self.item_type = item_type
        self.library_id = library_id
        self._fields: dict[str, str] = {"title": title or "", "DOI": doi or ""}
        self._related: list[str] = list(dict.fromkeys(related))
        self._store = store

    def __repr__(self) -> str:
        return f"LibraryItem(id={self.id!r}, key={self.key!r})"

    def is_regular_item(self) -> bool:
        return self.item_type not in NON_REGULAR_TYPES

    def get_field(self, name: str) -> str:
        return self._fields.get(name, "")

    def set_field(self, name: str, value: str | None) -> None:
        self._fields[name] = value or ""

    @property
    def title(self) -> str:
        return self.get_field("title")

    @property
    def related_items(self) -> list[str]:
        return list(self._related)

    def add_related_item(self, other: "LibraryItem") -> bool:
        """Link *other*'s key on this side only; False if already linked."""
        if other.key == self.key or other.key in self._related:
            return False
        self._related.append(other.key)
        return True

    async def save(self) -> None:
        """Persist the item through its store (one transaction)."""
        if self._store is None:
            raise RuntimeError(f"{self!r} is not attached to a library store")
        await self._store.save_item(self)

    def to_record(self) -> LibraryRecord:
        return {
            "key": self.key,
            "title": self.title,
            "doi": self.get_field("DOI") or None,
            "item_type": self.item_type,
            "library_id": self.library_id,
            "related": self.related_items,
        }


class Notifier:
    """Minimal observer registry for library change events."""

    def __init__(self) -> None:
        self._observers: dict[str, tuple[Observer, frozenset[str]]] = {}
        self._ids = itertools.count(1)

    def register_observer(
        self, observer: Observer, types: Iterable[str], name: str = "observer"
    ) -> str:
        observer_id = f"{name}-{next(self._ids)}"
        self._observers[observer_id] = (observer, frozenset(types))
        return observer_id

    def unregister_observer(self, observer_id: str) -> None:
        self._observers.pop(observer_id, None)

    def notify(self, event: str, type_: str, ids: list[Any], extra: dict | None = None) -> None:
        for observer_id, (observer, types) in list(self._observers.items()):
            if type_ not in types:
                continue
            try:
                observer(event, type_, list(ids), extra)
            except Exception:
                logger.exception("Observer %s failed on %s/%s", observer_id, event, type_)


class MemoryLibrary:
    """In-memory :class:`LibraryStore` that fires "add" notifications."""

    def __init__(self, notifier: Notifier | None = None, library_id: str = "user") -> None:
        self.notifier = notifier or Notifier()
        self.library_id = library_id
        self._items: dict[int, LibraryItem] = {}
        self._ids = itertools.count(1)
        self.saves: Counter[str] = Counter()

    def add_items(self, records: Iterable[LibraryRecord], *, notify: bool = True) -> list[LibraryItem]:
        items = []
        for record in records:
            item = LibraryItem(
                next(self._ids),
                record["key"],
                title=record.get("title", ""),
                doi=record.get("doi"),
                item_type=record.get("item_type", "journalArticle"),
                library_id=record.get("library_id", self.library_id),
                related=record.get("related", ()),
                store=self,
            )
            self._items[item.id] = item
            items.append(item)
        if notify and items:
            self.notifier.notify("add", "item", [item.id for item in items])
        return items

    def remove_item(self, item_id: int) -> None:
        self._items.pop(item_id, None)

    async def get(self, item_id: Any) -> LibraryItem | None:
        return self._items.get(item_id)

    async def get_all(self, library_id: str) -> list[LibraryItem]:
        return [item for item in self._items.values() if item.library_id == library_id]

    async def save_item(self, item: LibraryItem) -> None:
        self.saves[item.key] += 1
