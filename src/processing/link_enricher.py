"""
Fetch page titles and descriptions for links found in bookmarks so the
summarizer has context for link-heavy posts.
"""
import asyncio
import html
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import httpx

from ingestion.base import Bookmark, FetchError

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s]+")
STATUS_URL_PATTERN = re.compile(
    r"^https?://(?:www\.|mobile\.)?(?:x|twitter)\.com/(\w+)/status/(\d+)", re.IGNORECASE
)

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 300

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,*/*",
}

StatusLookup = Callable[[str], Awaitable[Bookmark]]


@dataclass(frozen=True)
class UrlMetadata:
    url: str
    domain: str
    title: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.description


def extract_urls(bookmark: Bookmark) -> List[str]:
    """Prefer expanded URL entities; fall back to URLs in the text (t.co included)."""
    if bookmark.urls:
        expanded = [u.expanded_url or u.url for u in bookmark.urls]
        return [u for u in expanded if u]
    return URL_PATTERN.findall(bookmark.text)


def _domain(host: str) -> str:
    return re.sub(r"^www\.", "", host or "") or "unknown"


def extract_meta(page: str, name: str) -> Optional[str]:
    """Extract <meta name|property="..." content="..."> in either attribute order."""
    escaped = re.escape(name)
    pattern = re.compile(
        rf"<meta\s+(?:name|property)=[\"']{escaped}[\"']\s+content=[\"']([^\"']+)[\"']"
        rf"|<meta\s+content=[\"']([^\"']+)[\"']\s+(?:name|property)=[\"']{escaped}[\"']",
        re.IGNORECASE,
    )
    match = pattern.search(page)
    if not match:
        return None
    value = (match.group(1) or match.group(2) or "").strip()
    return html.unescape(value) or None


def extract_tag(page: str, tag: str) -> Optional[str]:
    match = re.search(rf"<{tag}[^>]*>([^<]+)</{tag}>", page, re.IGNORECASE)
    if not match:
        return None
    return html.unescape(match.group(1).strip()) or None


def parse_metadata(url: str, domain: str, page: str) -> UrlMetadata:
    title = (
        extract_meta(page, "og:title")
        or extract_meta(page, "twitter:title")
        or extract_tag(page, "title")
    )
    description = (
        extract_meta(page, "og:description")
        or extract_meta(page, "twitter:description")
        or extract_meta(page, "description")
    )
    return UrlMetadata(
        url=url,
        domain=domain,
        title=title[:MAX_TITLE_LENGTH] if title else None,
        description=description[:MAX_DESCRIPTION_LENGTH] if description else None,
    )


def format_context_line(meta: UrlMetadata) -> str:
    line = f"[{meta.domain}]"
    if meta.title:
        line += f' "{meta.title}"'
    if meta.description:
        line += f" - {meta.description}"
    return line


class LinkEnricher:
    """
    Resolves link metadata for a set of bookmarks.

    Status links back into X are answered by `status_lookup` (a single-post
    fetch) instead of the login wall a plain GET would return. Without a
    lookup, for example when no credentials are available, they are skipped.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        status_lookup: Optional[StatusLookup] = None,
        timeout: float = 5.0,
        max_body_bytes: int = 50_000,
        max_redirects: int = 5,
        concurrency: int = 5,
    ):
        self._client = client
        self.status_lookup = status_lookup
        self.timeout = timeout
        self.max_body_bytes = max_body_bytes
        self.max_redirects = max_redirects
        self.concurrency = max(1, concurrency)

    async def enrich(self, bookmarks: Iterable[Bookmark]) -> Dict[str, str]:
        """Return bookmark id -> context string, for bookmarks with recoverable metadata."""
        urls_by_bookmark: Dict[str, List[str]] = {}
        for bookmark in bookmarks:
            urls = extract_urls(bookmark)
            if urls:
                urls_by_bookmark[bookmark.id] = urls

        unique_urls = list(dict.fromkeys(u for urls in urls_by_bookmark.values() for u in urls))
        if not unique_urls:
            return {}

        status_urls = [u for u in unique_urls if STATUS_URL_PATTERN.match(u)]
        web_urls = [u for u in unique_urls if not STATUS_URL_PATTERN.match(u)]

        cache: Dict[str, UrlMetadata] = {}
        cache.update(await self._resolve_status_urls(status_urls))
        cache.update(await self._fetch_in_waves(web_urls))

        enrichments: Dict[str, str] = {}
        for bookmark_id, urls in urls_by_bookmark.items():
            lines = [
                format_context_line(cache[u])
                for u in urls
                if u in cache and not cache[u].is_empty
            ]
            if lines:
                enrichments[bookmark_id] = "\n".join(lines)

        logger.info(
            f"Link context: {len(unique_urls)} unique URLs, {len(enrichments)} bookmarks enriched"
        )
        return enrichments

    async def _resolve_status_urls(self, urls: List[str]) -> Dict[str, UrlMetadata]:
        if not urls:
            return {}
        if self.status_lookup is None:
            logger.debug(f"Skipping {len(urls)} status link(s): no credentials for lookup")
            return {}

        resolved: Dict[str, UrlMetadata] = {}
        # Sequential: each lookup spawns a heavy subprocess.
        for url in urls:
            match = STATUS_URL_PATTERN.match(url)
            status_id = match.group(2)
            try:
                post = await self.status_lookup(status_id)
            except FetchError as e:
                logger.debug(f"Status lookup failed for {url}: {e}")
                continue

            title = f"@{post.author.username}: {post.text.strip()}" if post.text.strip() else None
            description = None
            if post.article and post.article.title:
                description = f"Article: {post.article.title}"
                if post.article.preview_text:
                    description += f" - {post.article.preview_text}"

            resolved[url] = UrlMetadata(
                url=url,
                domain="x.com",
                title=title[:MAX_TITLE_LENGTH] if title else None,
                description=description[:MAX_DESCRIPTION_LENGTH] if description else None,
            )
        return resolved

    async def _fetch_in_waves(self, urls: List[str]) -> Dict[str, UrlMetadata]:
        if not urls:
            return {}

        results: Dict[str, UrlMetadata] = {}
        client = self._client or httpx.AsyncClient(headers=DEFAULT_HEADERS, timeout=self.timeout)
        try:
            for i in range(0, len(urls), self.concurrency):
                wave = urls[i:i + self.concurrency]
                metas = await asyncio.gather(*(self.fetch_metadata(client, u) for u in wave))
                for meta in metas:
                    results[meta.url] = meta
        finally:
            if self._client is None:
                await client.aclose()
        return results

    async def fetch_metadata(self, client: httpx.AsyncClient, url: str) -> UrlMetadata:
        """Fetch one URL; never raises, returns empty metadata on any failure."""
        try:
            return await asyncio.wait_for(self._fetch(client, url), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Timed out fetching {url}")
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.debug(f"Failed to fetch {url}: {e}")
        return UrlMetadata(url=url, domain="unknown")

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> UrlMetadata:
        current = httpx.URL(url)
        hops_left = self.max_redirects

        while True:
            async with client.stream(
                "GET", current, headers=DEFAULT_HEADERS, follow_redirects=False
            ) as response:
                location = response.headers.get("location")
                if response.is_redirect and location and hops_left > 0:
                    current = current.join(location)
                    hops_left -= 1
                    continue

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self.max_body_bytes:
                        break

                encoding = response.charset_encoding or "utf-8"
                try:
                    page = bytes(body[:self.max_body_bytes]).decode(encoding, errors="replace")
                except LookupError:
                    page = bytes(body[:self.max_body_bytes]).decode("utf-8", errors="replace")

                return parse_metadata(url, _domain(current.host), page)
