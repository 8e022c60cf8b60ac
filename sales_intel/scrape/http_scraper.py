"""Async HTTP fetch with browser-like headers."""

from __future__ import annotations

import logging
import random

import httpx

logger = logging.getLogger(__name__)

# Rotate through realistic user agents to avoid blocks
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.5 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36",
]


def _get_headers() -> dict[str, str]:
    return {
        "User-Agent": random.choice(USER_AGENTS),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }


async def fetch_url(
    url: str,
    timeout: int = 10,
    max_redirects: int = 5,
    client: httpx.AsyncClient | None = None,
) -> tuple[str | None, str | None, int | None]:
    """Fetch a URL and return (body, error_message, status_code).

    Returns (body, None, status) on success or (None, error, status) on
    failure. No retries: a failed URL is simply reported as failed.
    """
    try:
        if client is not None:
            response = await client.get(url, headers=_get_headers(), timeout=timeout)
        else:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                max_redirects=max_redirects,
            ) as own_client:
                response = await own_client.get(url, headers=_get_headers())
    except httpx.TimeoutException:
        return None, "timeout", None
    except httpx.TooManyRedirects:
        return None, "too_many_redirects", None
    except httpx.HTTPError as e:
        return None, str(e)[:100] or e.__class__.__name__, None

    if response.status_code >= 400:
        return None, f"HTTP {response.status_code}", response.status_code

    content_type = response.headers.get("content-type", "")
    if content_type and not any(t in content_type for t in ("text/html", "text/plain", "xml", "json")):
        return None, f"Non-HTML content: {content_type[:50]}", response.status_code

    return response.text, None, response.status_code
