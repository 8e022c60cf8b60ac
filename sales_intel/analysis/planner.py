"""Selective fetch planning: gate the expensive full fetch to a few URLs."""

from __future__ import annotations

import logging

from sales_intel.models import CriticalUrl, GapAnalysis, OverviewGapAnalysis, SearchResult

logger = logging.getLogger(__name__)

MAX_SELECTIVE_FETCH = 3
FALLBACK_POOL = 5


def plan_selective_fetch(
    gap_analysis: GapAnalysis | OverviewGapAnalysis | None,
    raw_search_results: list[SearchResult],
    limit: int = MAX_SELECTIVE_FETCH,
) -> list[str]:
    """Pick at most `limit` (never more than 3) URLs worth fetching in full.

    Critical URLs from the gap analysis win, highest priority first. With
    none, fall back to the top search results. An empty plan means
    synthesis runs on snippets alone.
    """
    limit = max(0, min(limit, MAX_SELECTIVE_FETCH))
    critical: list[CriticalUrl] = list(gap_analysis.critical_urls) if gap_analysis else []

    if critical:
        ranked = sorted(critical, key=lambda c: c.priority, reverse=True)
        planned = _dedupe([c.url for c in ranked if c.url])[:limit]
        logger.debug("Planned %d critical URLs for full fetch", len(planned))
        if planned:
            return planned

    planned = _dedupe([r.url for r in raw_search_results[:FALLBACK_POOL] if r.url])[:limit]
    logger.debug("No critical URLs, falling back to %d top search results", len(planned))
    return planned


def _dedupe(urls: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            unique.append(url)
    return unique
