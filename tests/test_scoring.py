from __future__ import annotations

import pytest

from sales_intel.analysis.scoring import (
    assess_content_quality,
    calculate_comprehensive_confidence,
    calculate_confidence_score,
    filter_by_quality,
    filter_by_relevancy,
    score_relevancy,
)
from sales_intel.models import FetchResult, RelevancyScored, SearchResult

from conftest import SHOPIFY_PAGE

LONG_TEXT = "Shopify grew revenue and expanded its market. " * 30


def _fetches():
    return [
        FetchResult(url="https://shopify.com/about", content=LONG_TEXT),
        FetchResult(url="https://news.example/a", content="Shopify mention. " + "filler words " * 100),
        FetchResult(url="https://other.example/b", content="Nothing relevant here at all. " * 50),
        FetchResult(url="https://down.example/c", error="timeout"),
    ]


def test_score_is_bounded():
    for content in ("", "x", LONG_TEXT, "Shopify " * 1000):
        score = score_relevancy(content, "Shopify", url="https://shopify.com", snippet="Shopify")
        assert 0.0 <= score <= 1.0


def test_mentions_are_whole_word():
    assert score_relevancy("Shopifying is a verb. " * 20, "Shopify") < score_relevancy(
        "Shopify is a company. " * 20, "Shopify"
    )


def test_url_and_snippet_matches_raise_score():
    base = score_relevancy(LONG_TEXT, "Shopify")
    with_url = score_relevancy(LONG_TEXT, "Shopify", url="https://www.shopify.com/x")
    with_both = score_relevancy(LONG_TEXT, "Shopify", url="https://www.shopify.com/x", snippet="Shopify news")
    assert base < with_url < with_both


def test_short_content_is_penalised():
    assert score_relevancy("Shopify revenue", "Shopify") < score_relevancy(
        "Shopify revenue " + "padding " * 40, "Shopify"
    )


def test_filter_drops_failed_fetches_and_sorts_descending():
    kept = filter_by_relevancy(_fetches(), [], "Shopify", threshold=0.0)
    urls = [k.fetch.url for k in kept]
    assert "https://down.example/c" not in urls
    scores = [k.score for k in kept]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.parametrize("low,high", [(0.0, 0.2), (0.2, 0.5), (0.05, 0.9)])
def test_raising_threshold_only_shrinks_output(low, high):
    fetches = _fetches()
    low_urls = {k.fetch.url for k in filter_by_relevancy(fetches, [], "Shopify", low)}
    high_urls = {k.fetch.url for k in filter_by_relevancy(fetches, [], "Shopify", high)}
    assert high_urls <= low_urls


def test_filter_attaches_search_result_and_uses_snippet():
    fetch = FetchResult(url="https://news.example/a", content=LONG_TEXT)
    sr = SearchResult(url=fetch.url, title="T", snippet="Shopify earnings")
    kept = filter_by_relevancy([fetch], [sr], "Shopify", threshold=0.0)
    assert kept[0].search_result == sr
    assert kept[0].score > score_relevancy(LONG_TEXT, "Shopify", url=fetch.url)


def test_confidence_score():
    assert calculate_confidence_score(0, 0) == 0.0
    assert calculate_confidence_score(10, 10) == 1.0
    assert calculate_confidence_score(5, 5) == 0.65
    assert 0.0 <= calculate_confidence_score(40, 3) <= 1.0


def test_comprehensive_confidence_blend():
    assert calculate_comprehensive_confidence([], [], 0, 0) == 0.0
    assert calculate_comprehensive_confidence([1.0], [1.0], 1, 1) == 1.0
    assert calculate_comprehensive_confidence([0.5], [0.5], 0, 0) == 0.35


def test_content_quality_assessment():
    empty = assess_content_quality("")
    assert empty["score"] == 0.0
    rich = assess_content_quality(
        "Shopify revenue growth accelerated as the company expanded its market. " * 40
    )
    assert 0.0 < rich["score"] <= 1.0
    assert all(0.0 <= rich[k] <= 1.0 for k in ("length", "structure", "density", "readability"))


def test_filter_by_quality_drops_thin_pages_and_keeps_order():
    items = [
        RelevancyScored(fetch=FetchResult(url="https://a.example/1", content=SHOPIFY_PAGE), score=0.9),
        RelevancyScored(fetch=FetchResult(url="https://b.example/2", content="ok"), score=0.8),
        RelevancyScored(fetch=FetchResult(url="https://c.example/3", content=SHOPIFY_PAGE), score=0.4),
    ]
    kept = filter_by_quality(items, threshold=0.5)
    assert [k.fetch.url for k in kept] == ["https://a.example/1", "https://c.example/3"]
    assert filter_by_quality(items, threshold=0) == items
