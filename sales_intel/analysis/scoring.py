"""Relevancy scoring, relevancy filtering and confidence scores.

All scores are deterministic heuristics in [0, 1].
"""

from __future__ import annotations

import logging
import re

from sales_intel.models import FetchResult, RelevancyScored, SearchResult

logger = logging.getLogger(__name__)

BUSINESS_KEYWORDS = [
    "revenue", "funding", "growth", "employees", "strategy", "expansion",
    "acquisition", "merger", "leadership", "ceo", "cfo", "executives",
    "market", "industry", "competition", "customers", "products", "services",
    "technology", "innovation", "investment", "valuation", "ipo",
]

MENTION_WEIGHT = 0.3
MENTION_CAP = 0.6
URL_MATCH_BONUS = 0.2
SNIPPET_MATCH_BONUS = 0.15
KEYWORD_WEIGHT = 0.02
KEYWORD_CAP = 0.2
SHORT_CONTENT_CHARS = 200
LONG_CONTENT_CHARS = 1000


def score_relevancy(
    content: str | None,
    company_name: str,
    url: str = "",
    snippet: str = "",
) -> float:
    """Score how relevant fetched content is to the company, in [0, 1]."""
    if not content or not company_name.strip():
        return 0.0

    name = company_name.strip().lower()
    text = content.lower()
    score = 0.0

    # Whole-word company mentions
    mentions = len(re.findall(rf"\b{re.escape(name)}\b", text))
    score += min(mentions * MENTION_WEIGHT, MENTION_CAP)

    compact_name = re.sub(r"\s+", "", name)
    if compact_name and compact_name in url.lower():
        score += URL_MATCH_BONUS

    if snippet and name in snippet.lower():
        score += SNIPPET_MATCH_BONUS

    keyword_hits = sum(1 for kw in BUSINESS_KEYWORDS if re.search(rf"\b{kw}\b", text))
    score += min(keyword_hits * KEYWORD_WEIGHT, KEYWORD_CAP)

    if len(content) < SHORT_CONTENT_CHARS:
        score *= 0.5
    elif len(content) > LONG_CONTENT_CHARS:
        score += 0.1

    return round(max(0.0, min(1.0, score)), 4)


def filter_by_relevancy(
    fetch_results: list[FetchResult],
    search_results: list[SearchResult],
    company_name: str,
    threshold: float = 0.3,
) -> list[RelevancyScored]:
    """Keep fetched items scoring >= threshold, sorted by descending score.

    Failed fetches never survive. Raising the threshold can only shrink the
    output.
    """
    by_url = {r.url: r for r in search_results}
    kept = []
    for fetch in fetch_results:
        if not fetch.ok:
            continue
        search_result = by_url.get(fetch.url)
        score = score_relevancy(
            fetch.content,
            company_name,
            url=fetch.url,
            snippet=search_result.snippet if search_result else "",
        )
        if score >= threshold:
            kept.append(RelevancyScored(fetch=fetch, score=score, search_result=search_result))
    kept.sort(key=lambda item: item.score, reverse=True)
    return kept


def calculate_confidence_score(content_count: int, successful_fetches: int) -> float:
    """Confidence in [0, 1] from how much usable content a run gathered.

    70% weight on volume (saturating at 10 items), 30% on fetch success rate.
    """
    if content_count <= 0:
        return 0.0
    volume = min(content_count / 10, 1.0)
    success_rate = min(successful_fetches / content_count, 1.0)
    return round(volume * 0.7 + success_rate * 0.3, 2)


def calculate_comprehensive_confidence(
    relevancy_scores: list[float],
    credibility_scores: list[float],
    successful_fetches: int,
    attempted_fetches: int,
) -> float:
    """Blend average relevancy (0.4), average credibility (0.3) and fetch success (0.3)."""
    if not relevancy_scores and not credibility_scores:
        return 0.0
    avg_relevancy = sum(relevancy_scores) / len(relevancy_scores) if relevancy_scores else 0.0
    avg_credibility = sum(credibility_scores) / len(credibility_scores) if credibility_scores else 0.0
    success_rate = successful_fetches / attempted_fetches if attempted_fetches else 0.0
    score = avg_relevancy * 0.4 + avg_credibility * 0.3 + success_rate * 0.3
    return round(max(0.0, min(1.0, score)), 2)


def assess_content_quality(content: str) -> dict:
    """Rough quality assessment of fetched text.

    Returns {"score", "length", "structure", "density", "readability"}, each in [0, 1].
    """
    if not content:
        return {"score": 0.0, "length": 0.0, "structure": 0.0, "density": 0.0, "readability": 0.0}

    length = min(len(content) / 3000, 1.0)

    sentences = [s for s in re.split(r"[.!?]+\s", content) if s.strip()]
    structure = min(len(sentences) / 20, 1.0)

    words = re.findall(r"[A-Za-z]{3,}", content)
    keyword_hits = sum(1 for kw in BUSINESS_KEYWORDS if kw in content.lower())
    density = min(keyword_hits / 8, 1.0)

    avg_sentence_words = len(words) / len(sentences) if sentences else 0
    # Readable prose sits around 10-30 words per sentence
    readability = 1.0 if 10 <= avg_sentence_words <= 30 else 0.5 if avg_sentence_words else 0.0

    score = length * 0.3 + structure * 0.2 + density * 0.3 + readability * 0.2
    return {
        "score": round(score, 2),
        "length": round(length, 2),
        "structure": round(structure, 2),
        "density": round(density, 2),
        "readability": readability,
    }


def filter_by_quality(items: list[RelevancyScored], threshold: float = 0.5) -> list[RelevancyScored]:
    """Drop relevant items whose text is too thin or noisy to cite. Order is kept."""
    if threshold <= 0:
        return list(items)
    kept = [item for item in items if assess_content_quality(item.fetch.content or "")["score"] >= threshold]
    if len(kept) < len(items):
        logger.info("Quality filter kept %d of %d items (threshold %.2f)", len(kept), len(items), threshold)
    return kept
