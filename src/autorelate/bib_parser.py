"""bib_parser.py
Utility helpers for converting LaTeX-encoded metadata to plain Unicode and
loading BibTeX files into :class:`LibraryRecord` structures used to seed a
library.
"""

from __future__ import annotations

from pathlib import Path
import re
import codecs

import latexcodec  # noqa: F401  registers the "latex" codec
import pandas as pd
from pybtex.database import parse_file

from src.autorelate.entities import LibraryRecord
from src.common.doi import normalize_doi

_LATEX_PATTERN = re.compile(r"[{}]")
_MATH_PATTERN = re.compile(r"(\\\[.*?\\\]|\\\(.*?\\\)|\$\$.*?\$\$|\$.*?\$)", re.DOTALL)


def latex_to_unicode(text: str | None) -> str | None:
    """Convert LaTeX escape sequences to plain Unicode.

    Args:
        text: A string that may contain LaTeX escapes or None.

    Returns:
        The decoded Unicode string, or None if *text* is None.
    """
    if text is None:
        return None
    # drop inline / display math so titles stay readable, e.g. "MDC^3:" -> "MDC:".
    text = _MATH_PATTERN.sub("", text)

    try:
        return _LATEX_PATTERN.sub("", codecs.decode(text, "latex"))
    except Exception:
        return _LATEX_PATTERN.sub("", text)


def extract_library_records(path: Path, library_id: str = "user") -> list[LibraryRecord]:
    """Load BibTeX entries as library records.

    Args:
        path: Filesystem path to a .bib file.
        library_id: Library the records are destined for.

    Returns:
        One record per BibTeX entry that has a non-empty title.
        The BibTeX entry type becomes the item type and the DOI is normalized.
    """

    bib_data = parse_file(str(path), bib_format="bibtex")

    rows: list[dict[str, object]] = []
    for key, entry in bib_data.entries.items():
        rows.append(
            {
                "key": key,
                "title": latex_to_unicode(entry.fields.get("title")),
                "doi": normalize_doi(entry.fields.get("doi")),
                "item_type": entry.type.lower(),
            }
        )

    if not rows:
        return []

    df = pd.DataFrame(rows)
    df = df.dropna(subset=["title"])
    df = df[df["title"].str.strip() != ""].copy()
    df["doi"] = df["doi"].astype(object).where(df["doi"].notna(), None)
    df["library_id"] = library_id
    df["related"] = [[] for _ in range(len(df))]

    return df[["key", "title", "doi", "item_type", "library_id", "related"]].to_dict(orient="records")
