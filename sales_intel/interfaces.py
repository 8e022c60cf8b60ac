"""Collaborator interfaces injected into pipeline components.

Each capability is a Protocol so tests (and alternative backends) can supply
their own implementation without subclassing.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from sales_intel.models import CacheType, FetchResult


@runtime_checkable
class Store(Protocol):
    """Key-value store used for the intelligence cache and request tracking."""

    def get(self, key: str) -> Any | None: ...

    def set(
        self,
        key: str,
        value: Any,
        type: CacheType = CacheType.UNKNOWN,
        ttl_hours: float | None = None,
    ) -> None: ...

    def get_many(self, keys: list[str]) -> dict[str, Any]: ...

    def delete(self, key: str) -> None: ...

    def list_keys(
        self,
        pattern: str | None = None,
        limit: int = 100,
        type: CacheType | None = None,
    ) -> list[str]: ...

    def clear(self, type: CacheType | None = None) -> int: ...


@runtime_checkable
class SearchProvider(Protocol):
    """External web-search API.

    search() returns {"items": [{"url", "title", "snippet"}], "total_results": int}
    and raises on failure; rate limiting is the caller's job.
    """

    name: str
    max_results_per_request: int

    async def search(self, query: str, max_results: int) -> dict: ...


@runtime_checkable
class ContentFetcher(Protocol):
    async def fetch_batch(self, urls: list[str]) -> list[FetchResult]: ...


@runtime_checkable
class ModelInvoker(Protocol):
    """Language-model inference endpoint."""

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4000,
        temperature: float = 0.1,
    ) -> str: ...


@runtime_checkable
class TaskDispatcher(Protocol):
    """Fire-and-forget dispatch to a background worker."""

    def invoke_async(self, function_name: str, payload: dict) -> None: ...


@runtime_checkable
class WorkflowEngine(Protocol):
    """Multi-step external workflow engine."""

    async def start_execution(self, name: str, input: dict) -> str: ...

    async def describe_execution(self, execution_id: str) -> dict:
        """Return {"status", "start_time", "end_time"}."""
        ...

    async def get_execution_history(self, execution_id: str) -> list[dict]:
        """Return [{"state_name", "timestamp", "event_type"}] oldest first."""
        ...


@runtime_checkable
class EntityLookup(Protocol):
    """Structured company record lookup ({name, domain, industry, employee_count, ...})."""

    async def lookup(self, company_name: str) -> dict | None: ...
