"""linker.py
Turns resolved related DOIs into symmetric related-item links.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from src.autorelate.library import LibraryItem

logger = logging.getLogger(__name__)


async def apply_relations(
    item: LibraryItem,
    related_dois: Iterable[str],
    doi_index: Mapping[str, LibraryItem],
) -> int:
    """Link *item* with every library item whose DOI is in *related_dois*.

    Matches already related to *item* (per its in-memory related keys) and
    *item* itself are skipped.  Each new link is written on both sides; the
    target is saved immediately and *item* once at the end.

    Args:
        item: The source library item.
        related_dois: Normalized DOIs of referenced and citing works.
        doi_index: Mapping from normalized DOI to library item.

    Returns:
        Number of relations added.
    """
    added = 0
    for doi in related_dois:
        target = doi_index.get(doi)
        if target is None or target.id == item.id:
            continue
        if target.key in item.related_items:
            continue

        item.add_related_item(target)
        target.add_related_item(item)
        await target.save()
        added += 1

    if added:
        await item.save()
    return added
