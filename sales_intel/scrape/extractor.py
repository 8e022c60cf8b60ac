"""Batch content fetcher: concurrent fetch plus text extraction.

Tier 1: trafilatura (main-content extraction)
Tier 2: regex stripping, preferring <main>/<article> regions
"""

from __future__ import annotations

import asyncio
import logging
import re
import time

import httpx
import trafilatura

from sales_intel.config import Config
from sales_intel.models import FetchResult
from sales_intel.scrape.http_scraper import fetch_url

logger = logging.getLogger(__name__)

_CONTENT_REGIONS = [
    re.compile(r"<main\b[^>]*>(.*?)</main>", re.I | re.S),
    re.compile(r"<article\b[^>]*>(.*?)</article>", re.I | re.S),
    re.compile(r"<[a-z]+\b[^>]*role=[\"']main[\"'][^>]*>(.*)", re.I | re.S),
]
_BOILERPLATE_TAGS = ("script", "style", "nav", "footer", "header", "noscript", "aside")


class HttpContentFetcher:
    """ContentFetcher over httpx: one FetchResult per URL, input order kept.

    Fetches run concurrently; a failure for one URL never affects siblings.
    """

    def __init__(self, config: Config, client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_batch(self, urls: list[str]) -> list[FetchResult]:
        if not urls:
            return []
        start = time.perf_counter()
        outcomes = await asyncio.gather(
            *(self.fetch_one(url) for url in urls),
            return_exceptions=True,
        )

        results = []
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Fetch crashed for %s: %s", url[:80], outcome)
                results.append(FetchResult(url=url, error=str(outcome) or outcome.__class__.__name__))
            else:
                results.append(outcome)

        ok = sum(1 for r in results if r.ok)
        logger.info(
            "Fetched %d/%d URLs in %.2fs", ok, len(urls), time.perf_counter() - start,
        )
        return results

    async def fetch_one(self, url: str) -> FetchResult:
        start = time.perf_counter()
        body, error, status = await fetch_url(
            url,
            timeout=self.config.fetch_timeout,
            max_redirects=self.config.fetch_max_redirects,
            client=self._client,
        )
        if body is None:
            logger.debug("Fetch failed for %s: %s", url[:80], error)
            return FetchResult(
                url=url, error=error, status_code=status,
                fetch_time=time.perf_counter() - start,
            )

        text = extract_text(body, url=url, max_chars=self.config.content_max_chars)
        if not text:
            return FetchResult(
                url=url, error="no_extractable_content", status_code=status,
                fetch_time=time.perf_counter() - start,
            )
        return FetchResult(
            url=url, content=text, status_code=status,
            fetch_time=time.perf_counter() - start,
        )


def extract_text(html: str, url: str = "", max_chars: int = 5000) -> str:
    """Extract readable text from HTML, collapsed and truncated."""
    content = trafilatura.extract(
        html,
        include_tables=True,
        include_links=False,
        include_comments=False,
        favor_recall=True,
        url=url or None,
    )
    if not content or len(content) < 100:
        content = _basic_html_to_text(html)
    content = re.sub(r"\s+", " ", content or "").strip()
    return _truncate_content(content, max_chars)


def _basic_html_to_text(html: str) -> str:
    """Fallback HTML-to-text when trafilatura fails."""
    text = html
    for tag in _BOILERPLATE_TAGS:
        text = re.sub(rf"<{tag}\b.*?</{tag}>", " ", text, flags=re.I | re.S)
    text = re.sub(r"<!--[\s\S]*?-->", "", text)

    # Prefer the main content region when the page marks one
    for pattern in _CONTENT_REGIONS:
        match = pattern.search(text)
        if match and len(match.group(1)) > 200:
            text = match.group(1)
            break

    text = re.sub(r"<[^>]+>", " ", text)
    text = text.replace("&nbsp;", " ")
    text = text.replace("&amp;", "&")
    text = text.replace("&lt;", "<")
    text = text.replace("&gt;", ">")
    text = text.replace("&quot;", '"')
    text = text.replace("&#39;", "'")
    text = re.sub(r"&[a-z]+;", " ", text, flags=re.I)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _truncate_content(text: str, max_chars: int) -> str:
    """Truncate at sentence boundary if over max length."""
    if len(text) <= max_chars:
        return text

    truncated = text[:max_chars]
    cut_point = truncated.rfind(". ")
    if cut_point > max_chars * 0.8:
        return truncated[:cut_point + 1]
    return truncated + "..."
