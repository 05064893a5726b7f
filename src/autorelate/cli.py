"""cli.py
Command-line entry point for the auto-relate pipeline over an
Elasticsearch-backed library.

    python -m src.autorelate.cli import --bib-file refs.bib
    python -m src.autorelate.cli relate smith2020 doe2021

``import`` seeds the library from a BibTeX file; the resulting "add" events go
through the debounced batch pipeline exactly as they would in a live library.
``relate`` runs the manual trigger on the items with the given citation keys.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from src.autorelate.bib_parser import extract_library_records
from src.autorelate.elastic_library import ElasticLibrary
from src.autorelate.progress import ConsoleSurface
from src.autorelate.session import AutoRelateSession
from src.common.settings import settings

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Relate library items that cite each other, using OpenAlex.",
    )
    parser.add_argument(
        "--es-hosts",
        nargs="+",
        default=[settings.es_host],
        help="One or more Elasticsearch hosts",
    )
    parser.add_argument(
        "--index-name", type=str, default=settings.library_index, help="Library index name"
    )
    parser.add_argument(
        "--library-id", type=str, default=settings.library_id, help="Library to match against"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Add BibTeX entries and relate them in batches")
    imp.add_argument("--bib-file", type=Path, required=True, help="Path to .bib file")
    imp.add_argument(
        "--force-delete-index", action="store_true", help="Delete index if it exists"
    )

    rel = sub.add_parser("relate", help="Find related items for the given keys now")
    rel.add_argument("keys", nargs="+", help="Citation keys of the items to process")
    return parser.parse_args()


async def _import_bib(library: ElasticLibrary, session: AutoRelateSession, bib_file: Path,
                      force_delete: bool) -> None:
    records = extract_library_records(bib_file, library_id=library.library_id)
    if not records:
        logger.warning("No entries with a title found in %s", bib_file)
        return

    await library.create_index(force_delete=force_delete)
    await library.add_items(records)

    await session.coordinator.drain()
    for report in session.coordinator.reports:
        print(
            f"{report.items_processed} items processed, "
            f"{report.relations_added} relations added"
        )


async def _run(args: argparse.Namespace) -> None:
    library = ElasticLibrary(args.es_hosts, args.index_name, library_id=args.library_id)
    await library.connect()
    try:
        surface = ConsoleSurface()
        async with AutoRelateSession(
            library, library.notifier, surface=surface, library_id=args.library_id
        ) as session:
            if args.command == "import":
                await _import_bib(library, session, args.bib_file, args.force_delete_index)
            else:
                surface.selected = await library.find_by_keys(args.keys)
                await session.process_selected_items()
                await asyncio.sleep(session.manual.close_delay)
    finally:
        await library.close()


def main() -> None:  # noqa: D401
    """Parse CLI options and launch the selected command."""

    args = _parse_args()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
