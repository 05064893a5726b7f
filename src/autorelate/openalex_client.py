"""openalex_client.py
Asynchronous OpenAlex client covering the three queries the pipeline needs:

1. direct lookup of a work by DOI,
2. batched DOI resolution of a work's ``referenced_works``,
3. DOI resolution of the works citing it (via ``cited_by_api_url``).

Calls are made strictly one after another; a fixed pause follows every call
that was actually sent, keeping us inside OpenAlex rate limits.  No lookup ever
raises: transport errors, bad URLs, non-2xx responses and malformed payloads
are logged and surface as :class:`LookupResult` failures (or ``None`` / empty
sets through the convenience wrappers).  Once the HTTP client is closed every
lookup fails without sending anything.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.autorelate.entities import DoiPage, LookupResult, Work
from src.autorelate.settings import settings
from src.common.doi import normalize_doi
from src.common.settings import settings as common_settings

logger = logging.getLogger(__name__)

WORK_FIELDS = "id,doi,title,referenced_works,cited_by_api_url,cited_by_count"
OPENALEX_ID_PREFIX = "https://openalex.org/"


class OpenAlexClient:
    """Paced OpenAlex client shared by batch and manual runs."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
        mailto: str | None = None,
        api_delay: float | None = None,
        attempts: int | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Args:
            client: HTTP client to use; one is created (and owned) if omitted.
            base_url: OpenAlex API root.
            mailto: Contact identifier for the polite pool; empty disables it.
            api_delay: Seconds to pause after each call.
            attempts: Attempts per call on transport errors.
            sleep: Coroutine used for pacing (injectable for tests).
        """
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(
            http2=True, timeout=settings.request_timeout
        )
        self.base_url = (base_url or settings.openalex_base_url).rstrip("/")
        self.mailto = common_settings.openalex_mailto if mailto is None else mailto
        self.api_delay = settings.api_delay if api_delay is None else api_delay
        self.attempts = max(1, attempts or settings.api_attempts)
        self._sleep = sleep or asyncio.sleep
        self.calls_made = 0

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _params(self, **params: Any) -> dict[str, Any]:
        if self.mailto:
            params["mailto"] = self.mailto
        return params

    async def _get_json(self, url: str, params: dict[str, Any]) -> LookupResult[Any]:
        """Issue one GET, then pause for ``api_delay`` whatever the outcome."""
        if self._http.is_closed:
            return LookupResult.failed("client closed")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
                sleep=self._sleep,
            ):
                with attempt:
                    self.calls_made += 1
                    resp = await self._http.get(
                        url, params=params, timeout=settings.request_timeout
                    )
            if not resp.is_success:
                return LookupResult.failed(f"HTTP {resp.status_code}")
            return LookupResult.found(resp.json())
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return LookupResult.failed(f"{type(exc).__name__}: {exc}")
        except ValueError as exc:
            return LookupResult.failed(f"invalid JSON: {exc}")
        finally:
            await self._sleep(self.api_delay)

    # ------------------------------------------------------------------
    # Direct lookup
    # ------------------------------------------------------------------

    async def lookup_work(self, doi: str) -> LookupResult[Work]:
        url = f"{self.base_url}/works/doi:{quote(doi, safe='')}"
        result = await self._get_json(url, self._params(select=WORK_FIELDS))
        if not result.ok:
            logger.warning("OpenAlex lookup failed for %s: %s", doi, result.error)
            return result
        try:
            return LookupResult.found(Work.model_validate(result.value))
        except ValidationError as exc:
            logger.warning("Unexpected OpenAlex work payload for %s: %s", doi, exc)
            return LookupResult.failed("invalid work payload")

    async def fetch_work(self, doi: str) -> Work | None:
        """Return the OpenAlex work for *doi*, or None if it cannot be fetched."""
        result = await self.lookup_work(doi)
        return result.value if result.ok else None

    # ------------------------------------------------------------------
    # Related DOIs
    # ------------------------------------------------------------------

    async def _query_dois(self, url: str, params: dict[str, Any], what: str) -> LookupResult[set[str]]:
        result = await self._get_json(url, params)
        if not result.ok:
            logger.warning("Error fetching %s: %s", what, result.error)
            return result
        try:
            page = DoiPage.model_validate(result.value)
        except ValidationError as exc:
            logger.warning("Unexpected OpenAlex payload for %s: %s", what, exc)
            return LookupResult.failed("invalid results payload")

        dois = {
            doi
            for record in page.results or []
            if (doi := normalize_doi(record.doi))
        }
        return LookupResult.found(dois) if dois else LookupResult.empty()

    async def resolve_references_result(self, work: Work) -> LookupResult[set[str]]:
        if not work.referenced_works:
            return LookupResult.empty()
        ref_ids = [
            ref.removeprefix(OPENALEX_ID_PREFIX)
            for ref in work.referenced_works[: settings.reference_limit]
        ]
        params = self._params(
            filter=f"openalex_id:{'|'.join(ref_ids)}",
            select="doi",
            per_page=settings.page_size,
        )
        return await self._query_dois(f"{self.base_url}/works", params, "references")

    async def resolve_citing_works_result(self, work: Work) -> LookupResult[set[str]]:
        if not work.cited_by_api_url:
            return LookupResult.empty()
        params = self._params(select="doi", per_page=settings.page_size)
        return await self._query_dois(work.cited_by_api_url, params, "cited_by")

    async def resolve_references(self, work: Work) -> set[str]:
        """Normalized DOIs of (at most the first 100) works *work* references."""
        return (await self.resolve_references_result(work)).value or set()

    async def resolve_citing_works(self, work: Work) -> set[str]:
        """Normalized DOIs of the first page of works citing *work*."""
        return (await self.resolve_citing_works_result(work)).value or set()

