"""pipeline.py
Per-item enrichment shared by batch and manual runs: OpenAlex lookup,
related-DOI resolution (references + citing works) and relation linking.
"""

from __future__ import annotations

import logging
from typing import Mapping

from src.autorelate.library import LibraryItem
from src.autorelate.linker import apply_relations
from src.autorelate.openalex_client import OpenAlexClient
from src.common.doi import normalize_doi

logger = logging.getLogger(__name__)


def short_title(item: LibraryItem, width: int = 60) -> str:
    return item.title[:width]


def is_processable(item: LibraryItem | None) -> bool:
    """True for regular items carrying a resolvable DOI."""
    if item is None or not item.is_regular_item():
        return False
    return normalize_doi(item.get_field("DOI")) is not None


async def process_item(
    item: LibraryItem,
    doi_index: Mapping[str, LibraryItem],
    client: OpenAlexClient,
) -> int:
    """Relate *item* to every library item it cites or is cited by.

    Returns:
        Number of relations added (0 when the OpenAlex lookup fails).
    """
    title = short_title(item)
    doi = normalize_doi(item.get_field("DOI"))
    if not doi:
        logger.info('Skipping "%s" (no DOI)', title)
        return 0

    logger.info('Processing: "%s" (%s)', title, doi)

    work = await client.fetch_work(doi)
    if work is None:
        logger.info("OpenAlex lookup failed for %s", doi)
        return 0

    related_dois: set[str] = set()
    related_dois |= await client.resolve_references(work)
    related_dois |= await client.resolve_citing_works(work)
    logger.info('Found %d related DOIs for "%s"', len(related_dois), title)

    added = await apply_relations(item, related_dois, doi_index)
    if added:
        logger.info('Added %d relation(s) for "%s"', added, title)
    else:
        logger.info('No new relations for "%s"', title)
    return added
