"""Free DuckDuckGo search provider, no API key required."""

from __future__ import annotations

import asyncio
import logging

from ddgs import DDGS

logger = logging.getLogger(__name__)


class DuckDuckGoProvider:
    """SearchProvider backed by the ddgs metasearch library.

    The ddgs client is synchronous, so each call runs in a worker thread.
    """

    name = "duckduckgo"
    max_results_per_request = 10

    async def search(self, query: str, max_results: int) -> dict:
        try:
            raw = await asyncio.to_thread(
                _ddg_search_sync, query, min(max_results, self.max_results_per_request),
            )
        except Exception as e:
            logger.warning("DuckDuckGo search error for '%s': %s", query[:80], e)
            raise

        items = [
            {
                "url": item.get("href", ""),
                "title": item.get("title", ""),
                "snippet": item.get("body", ""),
            }
            for item in raw
            if item.get("href")
        ]
        return {"items": items, "total_results": len(items)}


def _ddg_search_sync(query: str, num_results: int) -> list[dict]:
    """Run the synchronous DDG search in a thread."""
    with DDGS() as ddgs:
        return list(ddgs.text(query, max_results=num_results))
