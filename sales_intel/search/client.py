"""Rate-limited, strictly sequential search execution over a SearchProvider."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime
from typing import Awaitable, Callable
from urllib.parse import urlparse

from sales_intel.cache.keys import search_cache_key
from sales_intel.config import Config
from sales_intel.interfaces import SearchProvider, Store
from sales_intel.models import CacheType, SearchResponse, SearchResult

logger = logging.getLogger(__name__)

_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")


class SearchClient:
    """Executes queries one at a time, never faster than the configured rate.

    A failing query yields an empty SearchResponse; it never aborts the
    remaining queries.
    """

    def __init__(
        self,
        provider: SearchProvider,
        config: Config,
        store: Store | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.provider = provider
        self.config = config
        self.store = store
        self._sleep = sleep
        self._monotonic = monotonic
        self._now = now
        rps = config.search_rate_limit_rps
        self.min_interval = 1.0 / rps if rps > 0 else 0.0
        self._last_request_time: float | None = None
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def search(
        self,
        query: str,
        max_results: int | None = None,
        use_cache: bool = True,
    ) -> SearchResponse:
        """Run one query. Returns an empty response (with error set) on failure."""
        requested = max_results or self.config.max_results_per_query
        num = max(1, min(requested, self.provider.max_results_per_request))
        key = search_cache_key(query, num, self.provider.name)

        if use_cache and self.store is not None:
            cached = self.store.get(key)
            if cached is not None:
                try:
                    response = SearchResponse.model_validate(cached)
                    response.from_cache = True
                    logger.debug("Search cache hit: %s", query[:80])
                    return response
                except ValueError as e:
                    logger.debug("Discarding invalid cached search for '%s': %s", query[:80], e)

        effective_query = self._enhance_for_recency(query) if self.config.prioritize_recent else query

        async with self._get_lock():
            await self._apply_rate_limit()
            start = time.perf_counter()
            try:
                raw = await self.provider.search(effective_query, num)
            except Exception as e:
                logger.warning("Search failed for '%s': %s", query[:80], e)
                return SearchResponse(
                    query=query,
                    search_time=time.perf_counter() - start,
                    error=str(e) or e.__class__.__name__,
                )
            finally:
                self._last_request_time = self._monotonic()

        results = [
            SearchResult(
                url=item["url"],
                title=item.get("title", "") or "",
                snippet=item.get("snippet", "") or "",
                source_domain=extract_domain(item["url"]),
            )
            for item in raw.get("items", [])[:num]
            if item.get("url")
        ]
        response = SearchResponse(
            results=results,
            total_results=int(raw.get("total_results", len(results)) or 0),
            search_time=time.perf_counter() - start,
            query=query,
        )
        logger.info("Search '%s': %d results in %.2fs", query[:80], len(results), response.search_time)

        if use_cache and self.store is not None and results:
            self.store.set(
                key,
                response.model_dump(mode="json"),
                type=CacheType.SEARCH_RESULTS,
                ttl_hours=self.config.search_cache_ttl_hours,
            )
        return response

    async def search_all(
        self,
        queries: list[str],
        max_results: int | None = None,
        use_cache: bool = True,
    ) -> list[SearchResponse]:
        """Run queries strictly sequentially, one response per query in order."""
        responses = []
        for query in queries:
            responses.append(await self.search(query, max_results, use_cache))
        return responses

    async def _apply_rate_limit(self) -> None:
        if self._last_request_time is None or self.min_interval <= 0:
            return
        elapsed = self._monotonic() - self._last_request_time
        if elapsed < self.min_interval:
            delay = self.min_interval - elapsed
            logger.debug("Applying rate limit delay: %.2fs", delay)
            await self._sleep(delay)

    def _enhance_for_recency(self, query: str) -> str:
        if _YEAR_RE.search(query):
            return query
        return f"{query} {self._now().year}"


def extract_domain(url: str) -> str:
    """Return the host without a leading www."""
    try:
        host = urlparse(url).netloc.lower()
    except ValueError:
        return ""
    host = host.split("@")[-1].split(":")[0]
    return host[4:] if host.startswith("www.") else host


def flatten_results(responses: list[SearchResponse]) -> list[SearchResult]:
    """Flatten responses, de-duplicating by URL and keeping first occurrence."""
    seen: set[str] = set()
    flat = []
    for response in responses:
        for result in response.results:
            if result.url in seen:
                continue
            seen.add(result.url)
            flat.append(result)
    return flat
