import asyncio

import httpx
import pytest

from conftest import make_bookmark
from ingestion.base import Article, FetchError
from processing.link_enricher import (
    LinkEnricher,
    UrlMetadata,
    extract_meta,
    extract_urls,
    format_context_line,
    parse_metadata,
)

HTML = {"content-type": "text/html; charset=utf-8"}


def _page(head: str) -> bytes:
    return f"<html><head>{head}</head><body>hi</body></html>".encode("utf-8")


def _enricher(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, LinkEnricher(client, **kwargs)


def test_extract_meta_handles_both_attribute_orders():
    page = (
        '<meta property="og:title" content="First">'
        '<meta content="Second" name="twitter:title">'
    )
    assert extract_meta(page, "og:title") == "First"
    assert extract_meta(page, "twitter:title") == "Second"
    assert extract_meta(page, "description") is None


def test_parse_metadata_precedence_and_entities():
    page = (
        "<title>Fallback title</title>"
        '<meta name="twitter:title" content="Twitter title">'
        '<meta property="og:title" content="Tom &amp; Jerry&#39;s guide">'
        '<meta name="description" content="Plain description">'
    )
    meta = parse_metadata("https://example.com", "example.com", page)

    assert meta.title == "Tom & Jerry's guide"
    assert meta.description == "Plain description"


def test_parse_metadata_truncates():
    page = f'<meta property="og:title" content="{"t" * 500}"><meta property="og:description" content="{"d" * 500}">'
    meta = parse_metadata("https://example.com", "example.com", page)

    assert len(meta.title) == 200
    assert len(meta.description) == 300


def test_parse_metadata_falls_back_to_title_tag():
    meta = parse_metadata("https://example.com", "example.com", "<title> Only a title </title>")
    assert meta.title == "Only a title"
    assert meta.description is None


def test_format_context_line():
    assert format_context_line(UrlMetadata("u", "example.com", "Title", "Desc")) == '[example.com] "Title" - Desc'
    assert format_context_line(UrlMetadata("u", "example.com", None, "Desc")) == "[example.com] - Desc"
    assert format_context_line(UrlMetadata("u", "example.com", "Title", None)) == '[example.com] "Title"'


def test_extract_urls_prefers_entities():
    with_entities = make_bookmark("1", "see https://t.co/abc", urls=["https://example.com/post"])
    without_entities = make_bookmark("2", "see https://t.co/abc and https://example.org/x")

    assert extract_urls(with_entities) == ["https://example.com/post"]
    assert extract_urls(without_entities) == ["https://t.co/abc", "https://example.org/x"]


@pytest.mark.asyncio
async def test_enrich_builds_context_per_bookmark():
    def handler(request):
        if request.url.host == "www.example.com":
            return httpx.Response(
                200,
                headers=HTML,
                content=_page('<meta property="og:title" content="Example"><meta property="og:description" content="About it">'),
            )
        return httpx.Response(200, headers=HTML, content=_page("<title>Other</title>"))

    client, enricher = _enricher(handler)
    async with client:
        context = await enricher.enrich(
            [
                make_bookmark("1", "two links", urls=["https://www.example.com/a", "https://other.dev/b"]),
                make_bookmark("2", "no links at all"),
            ]
        )

    assert context == {"1": '[example.com] "Example" - About it\n[other.dev] "Other"'}


@pytest.mark.asyncio
async def test_follows_relative_redirects_and_reports_final_domain():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        if request.url.host == "t.co":
            return httpx.Response(301, headers={"location": "https://www.target.com/start"})
        if request.url.path == "/start":
            return httpx.Response(302, headers={"location": "/final?x=1"})
        return httpx.Response(200, headers=HTML, content=_page("<title>Landed</title>"))

    client, enricher = _enricher(handler)
    async with client:
        context = await enricher.enrich([make_bookmark("1", "look https://t.co/abc")])

    assert seen == ["https://t.co/abc", "https://www.target.com/start", "https://www.target.com/final?x=1"]
    assert context == {"1": '[target.com] "Landed"'}


@pytest.mark.asyncio
async def test_redirect_chain_is_capped():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(302, headers={"location": f"/hop{len(calls)}"})

    client, enricher = _enricher(handler, max_redirects=2)
    async with client:
        context = await enricher.enrich([make_bookmark("1", "loop https://loop.example/start")])

    assert len(calls) == 3
    assert context == {}


@pytest.mark.asyncio
async def test_reads_at_most_max_body_bytes():
    padding = "x" * 60_000

    def handler(request):
        return httpx.Response(
            200,
            headers=HTML,
            content=f"<html><body>{padding}<title>Too late</title></body></html>".encode("utf-8"),
        )

    client, enricher = _enricher(handler)
    async with client:
        context = await enricher.enrich([make_bookmark("1", "https://big.example/page")])

    assert context == {}


@pytest.mark.asyncio
async def test_failed_urls_are_omitted():
    def handler(request):
        if request.url.host == "down.example":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, headers=HTML, content=_page("<title>Up</title>"))

    client, enricher = _enricher(handler)
    async with client:
        context = await enricher.enrich(
            [
                make_bookmark("1", "https://down.example/a"),
                make_bookmark("2", "https://up.example/b"),
            ]
        )

    assert context == {"2": '[up.example] "Up"'}


@pytest.mark.asyncio
async def test_slow_url_times_out():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, headers=HTML, content=_page("<title>Slow</title>"))

    client, enricher = _enricher(handler, timeout=0.05)
    async with client:
        meta = await enricher.fetch_metadata(client, "https://slow.example/")

    assert meta == UrlMetadata(url="https://slow.example/", domain="unknown")


@pytest.mark.asyncio
async def test_shared_urls_are_fetched_once():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, headers=HTML, content=_page("<title>Shared</title>"))

    client, enricher = _enricher(handler)
    async with client:
        context = await enricher.enrich(
            [
                make_bookmark("1", "https://shared.example/post"),
                make_bookmark("2", "also https://shared.example/post"),
            ]
        )

    assert calls == ["https://shared.example/post"]
    assert context["1"] == context["2"] == '[shared.example] "Shared"'


@pytest.mark.asyncio
async def test_fetches_in_bounded_waves():
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, headers=HTML, content=_page("<title>Page</title>"))

    bookmarks = [make_bookmark(str(i), f"https://site{i}.example/") for i in range(12)]
    client, enricher = _enricher(handler, concurrency=5)
    async with client:
        context = await enricher.enrich(bookmarks)

    assert len(context) == 12
    assert peak <= 5


@pytest.mark.asyncio
async def test_status_links_use_lookup_instead_of_http():
    looked_up = []

    async def lookup(status_id):
        looked_up.append(status_id)
        return make_bookmark(
            status_id,
            "Shipping our new agent framework today",
            username="bob",
            article=Article(title="Agent design", preview_text="Why we built it"),
        )

    def handler(request):
        raise AssertionError(f"unexpected HTTP request to {request.url}")

    client, enricher = _enricher(handler, status_lookup=lookup)
    async with client:
        context = await enricher.enrich(
            [make_bookmark("1", "quote", urls=["https://x.com/bob/status/12345"])]
        )

    assert looked_up == ["12345"]
    assert context == {
        "1": '[x.com] "@bob: Shipping our new agent framework today" - Article: Agent design - Why we built it'
    }


@pytest.mark.asyncio
async def test_status_links_skipped_without_lookup():
    def handler(request):
        raise AssertionError(f"unexpected HTTP request to {request.url}")

    client, enricher = _enricher(handler)
    async with client:
        context = await enricher.enrich(
            [make_bookmark("1", "https://twitter.com/bob/status/999")]
        )

    assert context == {}


@pytest.mark.asyncio
async def test_failed_status_lookup_is_omitted():
    async def lookup(status_id):
        raise FetchError("Bird CLI failed to fetch tweet 5: suspended")

    client, enricher = _enricher(lambda request: httpx.Response(404), status_lookup=lookup)
    async with client:
        context = await enricher.enrich([make_bookmark("1", "https://x.com/bob/status/5")])

    assert context == {}
