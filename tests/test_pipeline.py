from __future__ import annotations

import json

import pytest

from conftest import GAP_JSON, SYNTHESIS_JSON, FakeFetcher, FakeModel, FakeSearchProvider
from sales_intel.models import CacheType
from sales_intel.pipeline import IntelligencePipeline, intelligence_cache_key, is_overview_successful
from sales_intel.search.client import SearchClient
from sales_intel.workflow import (
    ANALYSIS_STATE,
    CACHE_CHECK_STATE,
    CACHE_RESPONSE_STATE,
    COLLECTION_STATE,
)

OVERVIEW_JSON = json.dumps({
    "snippetInsights": {"summary": "Shopify sells commerce software", "industry": "E-commerce"},
    "missingInfo": ["leadership"],
    "criticalUrls": [
        {"url": "https://www.news0.com/shopify-company-overview", "reason": "profile", "priority": 9},
        {"url": "https://www.news1.com/shopify-company-overview", "reason": "profile", "priority": 8},
        {"url": "https://www.news2.com/shopify-company-overview", "reason": "profile", "priority": 7},
        {"url": "https://www.news3.com/shopify-company-overview", "reason": "profile", "priority": 6},
    ],
    "confidence": 0.8,
})


class FailingLookup:
    async def lookup(self, company_name):
        raise RuntimeError("lookup service down")


@pytest.fixture
def provider():
    return FakeSearchProvider()


@pytest.fixture
def fetcher():
    return FakeFetcher()


def make_pipeline(config, store, clock, provider, fetcher, model, entity_lookup=None):
    return IntelligencePipeline(
        config,
        search_client=SearchClient(provider, config, store=store, now=clock),
        fetcher=fetcher,
        model=model,
        store=store,
        entity_lookup=entity_lookup,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_discovery_run_produces_cited_result(config, store, clock, provider, fetcher):
    model = FakeModel(GAP_JSON, SYNTHESIS_JSON)
    pipeline = make_pipeline(config, store, clock, provider, fetcher, model)
    stages = []

    result = await pipeline.generate_intelligence("https://www.Shopify.com/", "Discovery", on_stage=stages.append)

    assert stages == [CACHE_CHECK_STATE, COLLECTION_STATE, ANALYSIS_STATE, CACHE_RESPONSE_STATE]
    assert result.domain == "shopify.com"
    assert result.sales_context == "discovery"
    assert result.company_name == "Shopify"
    assert len(provider.queries) == 3
    assert len(fetcher.batches) == 1
    assert len(fetcher.batches[0]) <= config.max_fetch_urls
    assert 0 < result.total_sources <= config.max_fetch_urls
    assert [s.id for s in result.sources] == list(range(1, result.total_sources + 1))
    assert 0.0 <= result.confidence_score <= 1.0
    assert result.insights.deal_probability == 62
    assert result.gap_analysis.summary == "Shopify is a large commerce platform"
    assert result.degraded_reasons == []
    assert not result.from_cache
    assert len(model.calls) == 2
    assert result.insight_support > 0


@pytest.mark.asyncio
async def test_second_run_is_served_from_cache(config, store, clock, provider, fetcher):
    model = FakeModel(GAP_JSON, SYNTHESIS_JSON)
    pipeline = make_pipeline(config, store, clock, provider, fetcher, model)

    first = await pipeline.generate_intelligence("shopify.com", "discovery")
    searches, fetches, calls = len(provider.queries), len(fetcher.batches), len(model.calls)
    stages = []
    second = await pipeline.generate_intelligence("www.shopify.com", "discovery", on_stage=stages.append)

    assert second.from_cache
    assert stages == [CACHE_CHECK_STATE]
    assert (len(provider.queries), len(fetcher.batches), len(model.calls)) == (searches, fetches, calls)
    assert second.insights == first.insights
    assert store.get_entry(first.cache_key).type == CacheType.SALES_INTELLIGENCE


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache(config, store, clock, provider, fetcher):
    model = FakeModel(GAP_JSON, SYNTHESIS_JSON)
    pipeline = make_pipeline(config, store, clock, provider, fetcher, model)
    await pipeline.generate_intelligence("shopify.com", "discovery")
    refreshed = await pipeline.generate_intelligence("shopify.com", "discovery", force_refresh=True)
    assert not refreshed.from_cache
    assert len(model.calls) == 4


@pytest.mark.asyncio
async def test_seller_changes_cache_key_and_queries(config, store, clock, provider, fetcher):
    pipeline = make_pipeline(config, store, clock, provider, fetcher, FakeModel(GAP_JSON, SYNTHESIS_JSON))
    result = await pipeline.generate_intelligence("shopify.com", "discovery", seller_company="Acme Inc")
    assert result.cache_key == "shopifycom:discovery:acmeinc"
    assert any("Acme Inc" in q for q in result.queries)


@pytest.mark.asyncio
async def test_model_failure_returns_conservative_result_and_is_not_cached(
    config, store, clock, provider, fetcher,
):
    model = FakeModel(error=RuntimeError("model unavailable"))
    pipeline = make_pipeline(config, store, clock, provider, fetcher, model)

    result = await pipeline.generate_intelligence("shopify.com", "discovery")

    assert result.insights.confidence.overall == 25
    assert result.insights.company_overview.name == "Shopify"
    assert any(r.startswith("model call failed") for r in result.degraded_reasons)
    assert store.get(result.cache_key) is None


@pytest.mark.asyncio
async def test_empty_search_still_returns_result(config, store, clock, fetcher):
    provider = FakeSearchProvider(results_per_query=0)
    pipeline = make_pipeline(config, store, clock, provider, fetcher, FakeModel(GAP_JSON, SYNTHESIS_JSON))

    result = await pipeline.generate_intelligence("shopify.com", "discovery")

    assert result.total_sources == 0
    assert result.confidence_score == 0.0
    assert "no snippets to analyze" in result.degraded_reasons


@pytest.mark.asyncio
async def test_intent_text_drives_queries(config, store, clock, provider, fetcher):
    pipeline = make_pipeline(config, store, clock, provider, fetcher, FakeModel(GAP_JSON, SYNTHESIS_JSON))
    result = await pipeline.generate_intelligence(
        "shopify.com", "discovery", intent_text="What challenges is Shopify facing?",
    )
    assert result.queries
    assert len(provider.queries) == len(result.queries)


def test_intelligence_cache_key_includes_intent_type():
    assert intelligence_cache_key("shopify.com", "discovery") == "shopifycom:discovery"
    assert intelligence_cache_key("shopify.com", "discovery", "Acme", {"type": "financial"}) == (
        "shopifycom:discovery:acmeintentfinancial"
    )
    assert intelligence_cache_key("shopify.com", "discovery", intent={"type": "news"}) == "shopifycom:discovery:intentnews"


@pytest.mark.asyncio
async def test_different_intents_do_not_share_cached_results(config, store, clock, provider, fetcher):
    pipeline = make_pipeline(config, store, clock, provider, fetcher, FakeModel(GAP_JSON, SYNTHESIS_JSON))

    leadership = await pipeline.generate_intelligence("shopify.com", "discovery", intent_text="Who is the CEO?")
    financial = await pipeline.generate_intelligence(
        "shopify.com", "discovery", intent_text="What is their revenue and funding?",
    )
    plain = await pipeline.generate_intelligence("shopify.com", "discovery")
    repeat = await pipeline.generate_intelligence("shopify.com", "discovery", intent_text="Who leads the executive team?")

    assert not financial.from_cache
    assert not plain.from_cache
    assert financial.queries != leadership.queries
    assert len({leadership.cache_key, financial.cache_key, plain.cache_key}) == 3
    assert repeat.from_cache
    assert repeat.cache_key == leadership.cache_key


@pytest.mark.asyncio
async def test_entity_lookup_failure_is_not_fatal(config, store, clock, provider, fetcher):
    pipeline = make_pipeline(
        config, store, clock, provider, fetcher, FakeModel(GAP_JSON, SYNTHESIS_JSON),
        entity_lookup=FailingLookup(),
    )
    result = await pipeline.generate_intelligence("shopify.com", "discovery")
    assert result.company_record is None


@pytest.mark.asyncio
@pytest.mark.parametrize("domain, context", [("", "discovery"), ("localhost", "discovery"), ("shopify.com", " ")])
async def test_invalid_input_raises(config, store, clock, provider, fetcher, domain, context):
    pipeline = make_pipeline(config, store, clock, provider, fetcher, FakeModel())
    with pytest.raises(ValueError):
        await pipeline.generate_intelligence(domain, context)
    assert provider.queries == []


@pytest.mark.asyncio
async def test_overview_fetches_at_most_three_pages(config, store, clock, provider, fetcher):
    model = FakeModel(OVERVIEW_JSON, SYNTHESIS_JSON)
    pipeline = make_pipeline(config, store, clock, provider, fetcher, model)

    result = await pipeline.generate_overview("shopify.com")

    assert result.sales_context == "overview"
    assert len(fetcher.batches) == 1
    assert fetcher.batches[0] == [
        "https://www.news0.com/shopify-company-overview",
        "https://www.news1.com/shopify-company-overview",
        "https://www.news2.com/shopify-company-overview",
    ]
    assert result.overview_gap.confidence == 0.8
    assert result.confidence_score >= 0.2
    assert is_overview_successful(result)

    cached = await pipeline.generate_overview("shopify.com")
    assert cached.from_cache
    assert len(model.calls) == 2


@pytest.mark.asyncio
async def test_failed_overview_is_not_cached(config, store, clock, provider, fetcher):
    model = FakeModel(error=RuntimeError("model unavailable"))
    pipeline = make_pipeline(config, store, clock, provider, fetcher, model)

    result = await pipeline.generate_overview("shopify.com")

    # fallback plan fetches the top three snippets
    assert len(fetcher.batches[0]) == 3
    assert store.get(result.cache_key) is None


@pytest.mark.asyncio
async def test_run_workflow_records_states(config, store, clock, provider, fetcher):
    pipeline = make_pipeline(config, store, clock, provider, fetcher, FakeModel(GAP_JSON, SYNTHESIS_JSON))
    states = []
    output = await pipeline.run_workflow(
        {"domain": "shopify.com", "sales_context": "discovery"}, states.append,
    )
    assert output["domain"] == "shopify.com"
    assert output["insights"]["deal_probability"] == 62
    assert states[0] == CACHE_CHECK_STATE
    assert states[-1] == CACHE_RESPONSE_STATE
