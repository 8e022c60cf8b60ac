from __future__ import annotations

from datetime import datetime

from sales_intel.search.strategy import (
    build_competitive_queries,
    build_financial_queries,
    build_overview_queries,
    build_queries,
    build_queries_from_intent,
    build_recent_queries,
    build_technology_queries,
    classify_intent,
    extract_company_name,
    get_query_strategy,
    normalize_domain,
)


def fixed_now() -> datetime:
    return datetime(2025, 3, 1)


def test_extract_company_name_from_domain():
    assert extract_company_name("shopify.com") == "Shopify"
    assert extract_company_name("https://www.shopify.com/about") == "Shopify"
    assert extract_company_name("bank-of-america.com") == "Bank Of America"


def test_normalize_domain():
    assert normalize_domain("https://www.Shopify.com/pricing") == "shopify.com"
    assert normalize_domain("  stripe.com ") == "stripe.com"


def test_generic_discovery_queries():
    queries = build_queries("shopify.com", "discovery", now=fixed_now)
    assert queries == [
        "Shopify company overview",
        "Shopify news 2025",
        "Shopify growth initiatives 2025",
    ]


def test_generic_unknown_context_gives_two_queries():
    queries = build_queries("shopify.com", "something-else", now=fixed_now)
    assert queries == ["Shopify company overview", "Shopify news 2025"]


def test_relationship_aware_queries_always_three():
    queries = build_queries("shopify.com", "competitive", "Acme", now=fixed_now)
    assert queries == [
        "Shopify company overview",
        "Shopify technology stack problems",
        "Acme vs Shopify case study success",
    ]


def test_relationship_aware_unknown_context_uses_fallbacks():
    queries = build_queries("shopify.com", "qualification", "Acme", now=fixed_now)
    assert queries[1] == "Shopify business challenges 2025"
    assert queries[2] == "Acme Shopify partnership"


def test_blank_seller_is_treated_as_generic():
    assert len(build_queries("shopify.com", "unknown", "   ", now=fixed_now)) == 2


def test_get_query_strategy_labels_strategy():
    relationship = get_query_strategy("shopify.com", "discovery", "Acme", now=fixed_now)
    assert relationship["strategy"] == "relationship_aware"
    assert relationship["target_company"] == "Shopify"
    assert len(relationship["queries"]) == 3

    generic = get_query_strategy("shopify.com", "discovery", now=fixed_now)
    assert generic["strategy"] == "generic"


def test_classify_intent_first_match_wins():
    assert classify_intent("What problems do they have with their tech stack?") == {
        "type": "challenges", "confidence": 0.9,
    }
    assert classify_intent("Who is the CEO?")["type"] == "leadership"
    assert classify_intent("")["type"] == "overview"


def test_intent_queries_capped_at_three_and_anchored_with_overview():
    queries = build_queries_from_intent("shopify.com", {"type": "leadership"}, now=fixed_now)
    assert queries == [
        "Shopify leadership team executives",
        "Shopify CEO",
        "Shopify company overview",
    ]


def test_focused_intents_use_dedicated_builders():
    assert build_queries_from_intent("shopify.com", {"type": "financial"}, now=fixed_now) == [
        "Shopify revenue 2025",
        "Shopify funding valuation",
        "Shopify company overview",
    ]
    assert build_queries_from_intent("shopify.com", "technology", now=fixed_now)[:2] == (
        build_technology_queries("shopify.com")[:2]
    )
    assert build_queries_from_intent("shopify.com", "news", now=fixed_now)[0] == "Shopify news 2025"
    assert build_queries_from_intent("shopify.com", "competitive", "Acme", now=fixed_now)[0] == (
        "Acme vs Shopify"
    )


def test_relationship_intent_without_seller_does_not_leave_placeholder():
    queries = build_queries_from_intent("shopify.com", "relationship", now=fixed_now)
    assert all("{" not in q for q in queries)
    assert queries[0] == "Shopify partners"


def test_specialised_query_builders():
    assert build_overview_queries("shopify.com", now=fixed_now)[0] == "Shopify company overview"
    assert "Shopify news 2025" in build_recent_queries("shopify.com", now=fixed_now)
    assert build_competitive_queries("shopify.com", "Acme")[-1] == "Acme vs Shopify"
    assert len(build_competitive_queries("shopify.com")) == 2
    assert build_financial_queries("shopify.com", now=fixed_now)[0] == "Shopify revenue 2025"
    assert "Shopify technology stack" in build_technology_queries("shopify.com")
