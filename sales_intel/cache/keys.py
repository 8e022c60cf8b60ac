"""Deterministic cache keys built from semantic request parameters."""

from __future__ import annotations

import re

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_part(value: str | None) -> str:
    """Lower-case and strip everything except [a-z0-9]."""
    if not value:
        return ""
    return _NON_ALNUM.sub("", str(value).lower())


def cache_key(domain: str, context: str = "", extra: str | None = None) -> str:
    """Build the cache key for (domain, context, extra).

    e.g. ("www.Shopify.com", "discovery", "Acme Inc") -> "wwwshopifycom:discovery:acmeinc"
    Pure function: identical inputs always give the identical key.
    """
    parts = [normalize_part(domain), normalize_part(context)]
    extra_part = normalize_part(extra)
    if extra_part:
        parts.append(extra_part)
    return ":".join(parts)


def search_cache_key(query: str, max_results: int, provider: str = "") -> str:
    return cache_key(query, f"search{max_results}", provider)


def request_key(request_id: str) -> str:
    return f"request:{request_id}"


def execution_key(execution_id: str) -> str:
    return f"execution:{execution_id}"
