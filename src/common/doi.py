"""doi.py
Canonical form of DOIs, the only join key between library items and OpenAlex
works.
"""

from __future__ import annotations

import re

_RESOLVER_PREFIX = re.compile(r"^https?://doi\.org/", re.IGNORECASE)


def normalize_doi(raw: str | None) -> str | None:
    """Return the lowercase, trimmed DOI without a ``doi.org`` resolver prefix.

    Args:
        raw: A bare DOI, a resolver URL, or None.

    Returns:
        The canonical DOI, or None when *raw* is empty.
    """
    if not raw:
        return None
    doi = _RESOLVER_PREFIX.sub("", raw.strip()).strip().lower()
    return doi or None
