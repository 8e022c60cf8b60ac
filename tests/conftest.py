from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from sales_intel.cache.store import SqliteStore
from sales_intel.config import Config
from sales_intel.models import FetchResult


class FakeClock:
    """Manually advanced clock for TTL and expiry tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSearchProvider:
    """Returns five results per query, all on distinct URLs."""

    name = "fake"
    max_results_per_request = 10

    def __init__(self, fail_on: set[str] | None = None, results_per_query: int = 5):
        self.queries: list[str] = []
        self.fail_on = fail_on or set()
        self.results_per_query = results_per_query

    async def search(self, query: str, max_results: int) -> dict:
        self.queries.append(query)
        if query in self.fail_on:
            raise RuntimeError("provider unavailable")
        slug = "-".join(query.lower().split())
        n = min(max_results, self.results_per_query)
        return {
            "items": [
                {
                    "url": f"https://www.news{i}.com/{slug}",
                    "title": f"Shopify result {i} for {query}",
                    "snippet": f"Shopify revenue and growth details, item {i}.",
                }
                for i in range(n)
            ],
            "total_results": n,
        }


SHOPIFY_PAGE = (
    "Shopify is a commerce platform. Shopify reported revenue growth of 26 percent "
    "as Shopify expanded its enterprise customers. The company's strategy focuses on "
    "technology, innovation and market expansion. "
) * 10


class FakeFetcher:
    """ContentFetcher that returns canned page text for every URL."""

    def __init__(self, content: str = SHOPIFY_PAGE, fail_urls: set[str] | None = None):
        self.content = content
        self.fail_urls = fail_urls or set()
        self.batches: list[list[str]] = []

    async def fetch_batch(self, urls: list[str]) -> list[FetchResult]:
        self.batches.append(list(urls))
        return [
            FetchResult(url=u, error="HTTP 500", status_code=500)
            if u in self.fail_urls
            else FetchResult(url=u, content=self.content, status_code=200)
            for u in urls
        ]


class FakeModel:
    """ModelInvoker returning scripted responses in order (last one repeats)."""

    def __init__(self, *responses: str, error: Exception | None = None):
        self.responses = list(responses) or ["{}"]
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def invoke(self, system_prompt, user_prompt, max_tokens=4000, temperature=0.1) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]


GAP_JSON = """```json
{
  "summary": "Shopify is a large commerce platform",
  "keyInsights": ["Revenue growing 26%", "Enterprise push"],
  "identifiedGaps": ["Leadership changes"],
  "dataQuality": "good",
  "confidenceLevel": "high",
  "criticalUrls": [{"url": "https://www.news0.com/a", "reason": "financials", "priority": 9}],
  "additionalQuestionsNeeded": []
}
```"""

SYNTHESIS_JSON = """{
  "companyOverview": {"name": "Shopify", "industry": "E-commerce", "size": "10,000+",
                      "sizeCitations": [1], "revenue": "$7B", "revenueCitations": [2, 99],
                      "recentNews": ["Launched new AI tools [1]"]},
  "painPoints": ["Scaling enterprise support [1]"],
  "keyInsights": [{"text": "Revenue grew 26%", "citations": [2]}],
  "opportunities": ["Enterprise analytics [3]"],
  "talkingPoints": ["Ask about the Plus migration [1]"],
  "potentialObjections": [{"objection": "Budget", "response": "ROI in 6 months [2]"}],
  "recommendedActions": ["Book discovery call"],
  "dealProbability": 62,
  "dealProbabilityCitations": [1, 2],
  "confidence": {"overall": 0.8, "dataQuality": 70, "sourceReliability": 85}
}"""


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return Config(
        anthropic_api_key="test-key",
        cache_db_path=str(tmp_path / "cache.db"),
        search_rate_limit_rps=0,
    )


@pytest.fixture
def store(tmp_path, clock):
    s = SqliteStore(str(tmp_path / "cache.db"), clock=clock)
    yield s
    s.close()
