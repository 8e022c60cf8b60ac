from __future__ import annotations

from datetime import datetime

import pytest

from sales_intel.models import CacheType, SearchResponse, SearchResult
from sales_intel.search.client import SearchClient, extract_domain, flatten_results

from conftest import FakeSearchProvider


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_queries_run_sequentially_in_order(config):
    provider = FakeSearchProvider()
    client = SearchClient(provider, config)
    responses = await client.search_all(["a", "b", "c"])
    assert provider.queries == ["a", "b", "c"]
    assert [r.query for r in responses] == ["a", "b", "c"]
    assert all(len(r.results) == 5 for r in responses)


@pytest.mark.asyncio
async def test_rate_limit_waits_between_queries(config):
    config.search_rate_limit_rps = 1.0
    sleep = RecordingSleep()
    client = SearchClient(FakeSearchProvider(), config, sleep=sleep, monotonic=lambda: 100.0)
    await client.search_all(["a", "b", "c"])
    # First query goes immediately; each later one waits the full interval
    assert sleep.delays == [1.0, 1.0]


@pytest.mark.asyncio
async def test_no_wait_once_interval_has_passed(config):
    config.search_rate_limit_rps = 1.0
    ticks = iter([0.0, 5.0, 5.0])
    sleep = RecordingSleep()
    client = SearchClient(FakeSearchProvider(), config, sleep=sleep, monotonic=lambda: next(ticks))
    await client.search_all(["a", "b"])
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_failing_query_does_not_abort_the_rest(config):
    provider = FakeSearchProvider(fail_on={"b"})
    client = SearchClient(provider, config)
    responses = await client.search_all(["a", "b", "c"])
    assert provider.queries == ["a", "b", "c"]
    assert responses[1].results == []
    assert responses[1].error == "provider unavailable"
    assert len(responses[2].results) == 5


@pytest.mark.asyncio
async def test_max_results_capped_at_provider_limit(config):
    provider = FakeSearchProvider(results_per_query=50)
    client = SearchClient(provider, config)
    response = await client.search("a", max_results=25)
    assert len(response.results) == provider.max_results_per_request


@pytest.mark.asyncio
async def test_results_are_cached_and_skip_the_provider(config, store):
    provider = FakeSearchProvider()
    client = SearchClient(provider, config, store=store)
    first = await client.search("shopify news")
    second = await client.search("shopify news")
    assert provider.queries == ["shopify news"]
    assert first.from_cache is False
    assert second.from_cache is True
    assert second.results == first.results
    assert store.list_keys(type=CacheType.SEARCH_RESULTS)


@pytest.mark.asyncio
async def test_empty_results_are_not_cached(config, store):
    provider = FakeSearchProvider(results_per_query=0)
    client = SearchClient(provider, config, store=store)
    await client.search("nothing")
    await client.search("nothing")
    assert provider.queries == ["nothing", "nothing"]


@pytest.mark.asyncio
async def test_prioritize_recent_appends_year_once(config):
    config.prioritize_recent = True
    provider = FakeSearchProvider()
    client = SearchClient(provider, config, now=lambda: datetime(2025, 1, 1))
    await client.search("shopify funding")
    await client.search("shopify news 2024")
    assert provider.queries == ["shopify funding 2025", "shopify news 2024"]


def test_extract_domain_strips_www():
    assert extract_domain("https://www.reuters.com/a?b=1") == "reuters.com"
    assert extract_domain("https://blog.shopify.com:443/x") == "blog.shopify.com"


def test_flatten_results_dedupes_by_url_keeping_first():
    a = SearchResult(url="https://x.com/1", title="first")
    b = SearchResult(url="https://x.com/1", title="dupe")
    c = SearchResult(url="https://x.com/2")
    flat = flatten_results([SearchResponse(results=[a, c]), SearchResponse(results=[b])])
    assert [r.title for r in flat] == ["first", ""]
