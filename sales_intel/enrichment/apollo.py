"""Apollo.io organization lookup: structured company records for the target."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

APOLLO_BASE_URL = "https://api.apollo.io/api/v1"
RETRY_STATUSES = {429, 500, 502, 503, 504}


class ApolloEntityLookup:
    """EntityLookup over Apollo's company search.

    Transient failures (429, 5xx, timeouts) are retried with exponential
    backoff: base_delay, 2*base_delay, ... up to max_attempts tries.
    """

    def __init__(
        self,
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self._sleep = sleep
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=APOLLO_BASE_URL,
                headers={"Content-Type": "application/json"},
                timeout=20,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def lookup(self, company_name: str) -> dict | None:
        """Best match for company_name, or None when Apollo has nothing."""
        if not self.api_key or not company_name:
            return None
        data = await self._post(
            "/mixed_companies/search",
            {"q_organization_name": company_name, "page": 1, "per_page": 1},
        )
        orgs = data.get("organizations") or data.get("accounts") or []
        if not orgs:
            logger.info("Apollo has no organization matching %s", company_name)
            return None
        return _parse_organization(orgs[0])

    async def _post(self, endpoint: str, payload: dict) -> dict:
        """Authenticated POST with retry on transient failures."""
        client = await self._get_client()
        body = {**payload, "api_key": self.api_key}

        for attempt in range(1, self.max_attempts + 1):
            try:
                r = await client.post(endpoint, json=body)
                if r.status_code in RETRY_STATUSES and attempt < self.max_attempts:
                    logger.info("Apollo %s returned %d, retrying", endpoint, r.status_code)
                    await self._backoff(attempt)
                    continue
                r.raise_for_status()
                return r.json()
            except httpx.TimeoutException:
                if attempt < self.max_attempts:
                    logger.info("Apollo %s timed out, retrying", endpoint)
                    await self._backoff(attempt)
                    continue
                logger.warning("Apollo %s timed out after %d attempts", endpoint, attempt)
                return {}
            except httpx.HTTPStatusError as e:
                logger.warning("Apollo API error %s for %s: %s", e.response.status_code, endpoint, e)
                return {}
            except httpx.HTTPError as e:
                logger.warning("Apollo request failed for %s: %s", endpoint, e)
                return {}
        return {}

    async def _backoff(self, attempt: int) -> None:
        await self._sleep(self.base_delay * (2 ** (attempt - 1)))


def _parse_organization(o: dict[str, Any]) -> dict:
    domain = o.get("primary_domain") or ""
    if not domain and o.get("website_url"):
        domain = o["website_url"].split("//")[-1].split("/")[0].removeprefix("www.")
    return {
        "name": o.get("name", ""),
        "domain": domain,
        "industry": o.get("industry", "") or "",
        "employee_count": o.get("estimated_num_employees"),
        "founded_year": o.get("founded_year"),
        "annual_revenue": o.get("annual_revenue"),
        "total_funding": o.get("total_funding"),
        "linkedin_url": o.get("linkedin_url", "") or "",
        "city": o.get("city", "") or "",
        "country": o.get("country", "") or "",
        "short_description": o.get("short_description", "") or "",
        "keywords": o.get("keywords", []) or [],
    }
