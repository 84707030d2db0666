from __future__ import annotations

import asyncio
from typing import Protocol

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from websynth.config import settings
from websynth.models.context import ScrapedPage
from websynth.tools import web_utils

NON_VISIBLE_TAGS = ("script", "style", "noscript", "template")
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> str: ...


def extract_visible_text(html: str) -> str:
    """Body text of an HTML document, non-visible markup removed, whitespace collapsed."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(NON_VISIBLE_TAGS):
        tag.decompose()
    root = soup.body or soup
    return web_utils.collapse_whitespace(root.get_text(" "))


class WebFetcher:
    """Single-page scraper with a short, fixed per-request timeout.

    ``fetch`` is soft-fail: network errors, timeouts, error statuses and
    non-text responses all come back as ``""``.
    """

    def __init__(
        self,
        timeout: float | None = None,
        user_agent: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.timeout = float(timeout or settings.fetch_timeout_seconds)
        self.user_agent = user_agent or settings.fetch_user_agent
        self._http_client = http_client

    async def fetch(self, url: str) -> str:
        if not web_utils.is_valid_url(url):
            logger.warning(f"Skipping invalid url: {url}")
            return ""
        try:
            response = await self._get(url)
            response.raise_for_status()
        except Exception as exc:
            logger.warning(f"Fetch failed for {url}: {exc}")
            return ""

        content_type = response.headers.get("content-type", "").lower()
        try:
            if not content_type or any(kind in content_type for kind in HTML_CONTENT_TYPES):
                text = extract_visible_text(response.text)
            elif content_type.startswith("text/plain"):
                text = web_utils.collapse_whitespace(response.text)
            else:
                logger.info(f"Ignoring non-text response from {url} ({content_type})")
                return ""
        except Exception as exc:
            logger.warning(f"Could not extract text from {url}: {exc}")
            return ""

        logger.info(f"Scraped: {url} ({len(text)} chars)")
        return text

    async def _get(self, url: str) -> httpx.Response:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,text/plain;q=0.8,*/*;q=0.5",
        }
        if self._http_client is not None:
            return await self._http_client.get(url, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await client.get(url, headers=headers)


async def fetch_pages(
    urls: list[str],
    fetcher: PageFetcher,
    *,
    max_parallel: int = 1,
) -> list[ScrapedPage]:
    """Fetch urls with at most ``max_parallel`` requests in flight.

    The default of one keeps the outbound request rate predictable. Output
    order always follows ``urls``, whatever order requests complete in.
    """
    semaphore = asyncio.Semaphore(max(int(max_parallel), 1))

    async def run_one(url: str) -> ScrapedPage:
        async with semaphore:
            return ScrapedPage(url=url, content=await fetcher.fetch(url))

    if max_parallel <= 1:
        return [await run_one(url) for url in urls]
    return list(await asyncio.gather(*(run_one(url) for url in urls)))


_fetcher: WebFetcher | None = None


def get_fetcher() -> WebFetcher:
    global _fetcher
    if _fetcher is None:
        _fetcher = WebFetcher()
    return _fetcher
