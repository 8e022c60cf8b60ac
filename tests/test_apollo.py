from __future__ import annotations

import httpx
import pytest

from sales_intel.enrichment.apollo import APOLLO_BASE_URL, ApolloEntityLookup

ORGANIZATION = {
    "name": "Shopify",
    "website_url": "https://www.shopify.com/",
    "industry": "internet",
    "estimated_num_employees": 8100,
    "founded_year": 2006,
    "linkedin_url": "http://www.linkedin.com/company/shopify",
    "city": "Ottawa",
    "country": "Canada",
    "keywords": ["ecommerce", "saas"],
}


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_lookup(handler, api_key="apollo-key", **kwargs):
    sleep = RecordingSleep()
    client = httpx.AsyncClient(base_url=APOLLO_BASE_URL, transport=httpx.MockTransport(handler))
    return ApolloEntityLookup(api_key, client=client, sleep=sleep, **kwargs), sleep


@pytest.mark.asyncio
async def test_lookup_parses_first_organization():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"organizations": [ORGANIZATION, {"name": "Other"}]})

    lookup, sleep = make_lookup(handler)
    record = await lookup.lookup("Shopify")
    await lookup.close()

    assert seen[0].url.path.endswith("/mixed_companies/search")
    assert record["name"] == "Shopify"
    assert record["domain"] == "shopify.com"
    assert record["employee_count"] == 8100
    assert record["keywords"] == ["ecommerce", "saas"]
    assert record["short_description"] == ""
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_exponential_backoff():
    statuses = iter([429, 503, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json={"organizations": [ORGANIZATION]})

    lookup, sleep = make_lookup(handler)
    record = await lookup.lookup("Shopify")

    assert record["name"] == "Shopify"
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhausted_retries_return_none():
    lookup, sleep = make_lookup(lambda request: httpx.Response(429), max_attempts=2)
    assert await lookup.lookup("Shopify") is None
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_timeouts_are_retried_then_give_up():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    lookup, sleep = make_lookup(handler, base_delay=0.5)
    assert await lookup.lookup("Shopify") is None
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "invalid api key"})

    lookup, sleep = make_lookup(handler)
    assert await lookup.lookup("Shopify") is None
    assert len(calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_no_match_returns_none():
    lookup, _ = make_lookup(lambda request: httpx.Response(200, json={"organizations": []}))
    assert await lookup.lookup("Nonexistent Corp") is None


@pytest.mark.asyncio
async def test_unconfigured_lookup_makes_no_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    lookup, _ = make_lookup(handler, api_key="")
    assert not lookup.is_configured
    assert await lookup.lookup("Shopify") is None
