"""Shared pytest fixtures: a virtual scheduler, an in-memory library and a fake
OpenAlex served through ``httpx.MockTransport``."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from src.autorelate.library import MemoryLibrary, Notifier
from src.autorelate.openalex_client import OpenAlexClient

OPENALEX = "https://api.openalex.org"


class VirtualTimer:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Scheduler whose clock only moves on :meth:`advance` or :meth:`sleep`."""

    def __init__(self) -> None:
        self.time = 0.0
        self.sleeps: list[float] = []
        self._timers: list[VirtualTimer] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualTimer:
        timer = VirtualTimer(self.time + delay, callback)
        self._timers.append(timer)
        return timer

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.time += delay

    @property
    def pending_timers(self) -> list[VirtualTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [t for t in self.pending_timers if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self._timers.remove(timer)
            self.time = timer.when
            timer.callback()
        self.time = target
        self._timers = self.pending_timers


class FakeOpenAlex:
    """Request handler emulating the OpenAlex endpoints the client uses."""

    def __init__(self) -> None:
        self.works: dict[str, dict] = {}
        self.doi_by_id: dict[str, str] = {}
        self.citing: dict[str, list[str]] = {}
        self.status_by_doi: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def add_work(self, short_id: str, doi: str, references=(), cited_by=()) -> dict:
        work = {
            "id": f"https://openalex.org/{short_id}",
            "doi": f"https://doi.org/{doi}",
            "title": f"Work {short_id}",
            "referenced_works": [f"https://openalex.org/{ref}" for ref in references],
            "cited_by_api_url": f"{OPENALEX}/works?filter=cites:{short_id}",
            "cited_by_count": len(cited_by),
        }
        self.works[doi.lower()] = work
        self.doi_by_id[short_id] = f"https://doi.org/{doi}"
        self.citing[short_id] = list(cited_by)
        return work

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/works/doi:"):
            doi = path[len("/works/doi:"):].lower()
            if doi in self.status_by_doi:
                return httpx.Response(self.status_by_doi[doi], json={"error": "boom"})
            work = self.works.get(doi)
            if work is None:
                return httpx.Response(404, json={"error": "Not Found"})
            return httpx.Response(200, json=work)

        if path == "/works":
            flt = request.url.params.get("filter", "")
            if flt.startswith("openalex_id:"):
                ids = flt[len("openalex_id:"):].split("|")
            elif flt.startswith("cites:"):
                ids = self.citing.get(flt[len("cites:"):], [])
            else:
                return httpx.Response(400, json={"error": "bad filter"})
            results = [{"doi": self.doi_by_id.get(i)} for i in ids]
            return httpx.Response(200, json={"meta": {"count": len(results)}, "results": results})

        return httpx.Response(404)


@pytest.fixture
def scheduler() -> VirtualScheduler:
    return VirtualScheduler()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def library(notifier: Notifier) -> MemoryLibrary:
    return MemoryLibrary(notifier)


@pytest.fixture
def openalex() -> FakeOpenAlex:
    return FakeOpenAlex()


@pytest.fixture
def make_client(openalex: FakeOpenAlex, scheduler: VirtualScheduler):
    def _make(**kwargs) -> OpenAlexClient:
        kwargs.setdefault("mailto", "")
        kwargs.setdefault("api_delay", 0.5)
        kwargs.setdefault("attempts", 1)
        handler = kwargs.pop("handler", openalex)
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return OpenAlexClient(http, base_url=OPENALEX, sleep=scheduler.sleep, **kwargs)

    return _make


@pytest.fixture
def client(make_client) -> OpenAlexClient:
    return make_client()
