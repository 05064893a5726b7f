import asyncio

import httpx

from src.autorelate.entities import LookupStatus, Work
from src.autorelate.openalex_client import WORK_FIELDS


def test_fetch_work_parses_selected_fields(client, openalex, scheduler):
    openalex.add_work("W1", "10.1/a", references=["W2"])

    work = asyncio.run(client.fetch_work("10.1/a"))

    assert work is not None
    assert work.id == "https://openalex.org/W1"
    assert work.referenced_works == ["https://openalex.org/W2"]
    assert work.cited_by_api_url.endswith("filter=cites:W1")

    (request,) = openalex.requests
    assert request.url.path == "/works/doi:10.1/a"
    assert request.url.params["select"] == WORK_FIELDS
    assert "mailto" not in request.url.params
    assert scheduler.sleeps == [0.5]


def test_fetch_work_not_found_returns_none(client, openalex, scheduler):
    result = asyncio.run(client.lookup_work("10.1/missing"))

    assert result.status is LookupStatus.FAILED
    assert result.error == "HTTP 404"
    assert asyncio.run(client.fetch_work("10.1/missing")) is None
    assert scheduler.sleeps == [0.5, 0.5]


def test_transport_error_is_reported_not_raised(make_client, scheduler):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler=handler)

    assert asyncio.run(client.fetch_work("10.1/a")) is None
    assert client.calls_made == 1
    assert scheduler.sleeps == [0.5]


def test_malformed_payload_is_not_found(make_client):
    client = make_client(handler=lambda request: httpx.Response(200, json=["not", "a", "work"]))
    assert asyncio.run(client.fetch_work("10.1/a")) is None

    client = make_client(handler=lambda request: httpx.Response(200, text="<html>"))
    assert asyncio.run(client.fetch_work("10.1/a")) is None


def test_retry_is_opt_in(make_client):
    calls = []

    def flaky(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json={"id": "https://openalex.org/W1"})

    client = make_client(handler=flaky, attempts=2)
    work = asyncio.run(client.fetch_work("10.1/a"))

    assert work is not None
    assert client.calls_made == 2


def test_resolve_references_batches_first_hundred(client, openalex, scheduler):
    refs = [f"W{i}" for i in range(150)]
    for ref in refs:
        openalex.doi_by_id[ref] = f"https://doi.org/10.9/{ref}"
    work = Work(id="https://openalex.org/W0", referenced_works=[f"https://openalex.org/{r}" for r in refs])

    dois = asyncio.run(client.resolve_references(work))

    (request,) = openalex.requests
    flt = request.url.params["filter"]
    assert flt.startswith("openalex_id:W0|W1|")
    assert len(flt[len("openalex_id:"):].split("|")) == 100
    assert "https://openalex.org" not in flt
    assert request.url.params["select"] == "doi"
    assert request.url.params["per_page"] == "100"
    assert len(dois) == 100
    assert "10.9/w0" in dois and "10.9/w100" not in dois
    assert scheduler.sleeps == [0.5]


def test_resolve_references_without_references_makes_no_call(client, openalex, scheduler):
    work = Work(id="https://openalex.org/W1")

    assert asyncio.run(client.resolve_references(work)) == set()
    assert openalex.requests == []
    assert scheduler.sleeps == []


def test_resolve_citing_works_uses_cited_by_handle(client, openalex):
    openalex.doi_by_id.update({"W7": "https://doi.org/10.1/SEVEN", "W8": None})
    openalex.citing["W1"] = ["W7", "W8"]
    work = Work(id="https://openalex.org/W1", cited_by_api_url="https://api.openalex.org/works?filter=cites:W1")

    dois = asyncio.run(client.resolve_citing_works(work))

    assert dois == {"10.1/seven"}
    (request,) = openalex.requests
    assert request.url.params["filter"] == "cites:W1"
    assert request.url.params["select"] == "doi"
    assert request.url.params["per_page"] == "100"


def test_resolve_citing_works_without_handle_makes_no_call(client, openalex):
    work = Work(id="https://openalex.org/W1", cited_by_api_url=None)

    result = asyncio.run(client.resolve_citing_works_result(work))

    assert result.status is LookupStatus.EMPTY
    assert openalex.requests == []


def test_failed_reference_query_yields_empty_set(make_client, scheduler):
    client = make_client(handler=lambda request: httpx.Response(503))
    work = Work(id="https://openalex.org/W1", referenced_works=["https://openalex.org/W2"])

    assert asyncio.run(client.resolve_references(work)) == set()
    assert scheduler.sleeps == [0.5]


def test_mailto_is_sent_on_every_call(make_client, openalex, scheduler):
    openalex.add_work("W1", "10.1/a", references=["W2"], cited_by=["W3"])
    openalex.add_work("W2", "10.1/b")
    openalex.add_work("W3", "10.1/c")
    client = make_client(mailto="me@example.org")

    async def run():
        work = await client.fetch_work("10.1/a")
        refs = await client.resolve_references(work)
        citing = await client.resolve_citing_works(work)
        return refs, citing

    refs, citing = asyncio.run(run())

    assert refs == {"10.1/b"}
    assert citing == {"10.1/c"}
    assert len(openalex.requests) == 3
    assert all(r.url.params["mailto"] == "me@example.org" for r in openalex.requests)
    assert scheduler.sleeps == [0.5, 0.5, 0.5]


def test_bad_citing_url_fails_without_raising(client, openalex, scheduler):
    work = Work(id="https://openalex.org/W1", cited_by_api_url="https://api.openalex.org:abc/works")

    result = asyncio.run(client.resolve_citing_works_result(work))

    assert result.status is LookupStatus.FAILED
    assert asyncio.run(client.resolve_citing_works(work)) == set()
    assert openalex.requests == []


def test_closed_client_fails_without_sending(openalex, scheduler):
    from src.autorelate.openalex_client import OpenAlexClient

    async def run():
        http = httpx.AsyncClient(transport=httpx.MockTransport(openalex))
        client = OpenAlexClient(http, mailto="", api_delay=0.5, sleep=scheduler.sleep)
        await http.aclose()
        return await client.lookup_work("10.1/a")

    result = asyncio.run(run())

    assert result.status is LookupStatus.FAILED
    assert result.error == "client closed"
    assert openalex.requests == []
    assert scheduler.sleeps == []
