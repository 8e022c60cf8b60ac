"""Async SerpAPI provider (Google organic results)."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

SERPAPI_BASE_URL = "https://serpapi.com/search.json"


class SerpApiProvider:
    """SearchProvider backed by SerpAPI's Google engine.

    Raises on failure; the SearchClient isolates errors per query.
    """

    name = "serpapi"
    max_results_per_request = 10  # Google's per-request ceiling

    def __init__(self, api_key: str, timeout: int = 20, client: httpx.AsyncClient | None = None):
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    async def search(self, query: str, max_results: int) -> dict:
        params = {
            "engine": "google",
            "q": query,
            "api_key": self.api_key,
            "num": str(min(max_results, self.max_results_per_request)),
        }

        try:
            if self._client is not None:
                response = await self._client.get(SERPAPI_BASE_URL, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(SERPAPI_BASE_URL, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning("SerpAPI timeout for query: %s", query[:80])
            raise
        except httpx.HTTPStatusError as e:
            logger.warning("SerpAPI HTTP %d for query: %s", e.response.status_code, query[:80])
            raise

        if data.get("error"):
            raise RuntimeError(f"SerpAPI error: {data['error']}")

        items = [
            {
                "url": item.get("link", ""),
                "title": item.get("title", ""),
                "snippet": item.get("snippet", ""),
            }
            for item in data.get("organic_results", [])
            if item.get("link")
        ]
        total = data.get("search_information", {}).get("total_results", len(items))
        try:
            total = int(total)
        except (TypeError, ValueError):
            total = len(items)
        return {"items": items, "total_results": total}
