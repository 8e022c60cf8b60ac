"""Persisted state machine for long-running requests that callers poll.

pending -> processing -> {completed, failed}. Records live in the Store, so
the process that creates a request and the worker that drives it share
nothing but the record.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Callable

from sales_intel.cache.keys import request_key
from sales_intel.config import Config
from sales_intel.errors import InvalidTransitionError, RequestNotFoundError
from sales_intel.interfaces import Store
from sales_intel.models import AsyncRequest, CacheType, RequestStatus, RequestType

logger = logging.getLogger(__name__)

# Allowed next statuses. Same-status updates are allowed while non-terminal.
TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"pending", "processing", "completed", "failed"}),
    "processing": frozenset({"processing", "completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}

_BASE36 = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class AsyncRequestTracker:
    def __init__(
        self,
        store: Store,
        config: Config,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.ttl_hours = config.request_ttl_hours
        self._clock = clock

    def new_request_id(self) -> str:
        """req_{base36 epoch ms}_{random}."""
        millis = int(self._clock().timestamp() * 1000)
        suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
        return f"req_{_base36(millis)}_{suffix}"

    def create_request(
        self,
        company_domain: str,
        request_type: RequestType,
        additional_data: dict[str, Any] | None = None,
    ) -> str:
        """Persist a new pending request and return its id."""
        now = self._clock()
        request = AsyncRequest(
            request_id=self.new_request_id(),
            status="pending",
            company_domain=company_domain,
            request_type=request_type,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(hours=self.ttl_hours),
            additional_data=additional_data,
        )
        self._save(request)
        logger.info("Created %s request %s for %s", request_type, request.request_id, company_domain)
        return request.request_id

    def get_request(self, request_id: str) -> AsyncRequest | None:
        """Return the record, or None if absent or past its own expiry."""
        raw = self.store.get(request_key(request_id))
        if raw is None:
            return None
        return self._live(request_id, raw)

    def _live(self, request_id: str, raw: Any) -> AsyncRequest | None:
        try:
            request = AsyncRequest.model_validate(raw)
        except ValueError as e:
            logger.warning("Corrupt request record %s: %s", request_id, e)
            return None
        if self._clock() > request.expires_at:
            logger.debug("Request %s expired", request_id)
            return None
        return request

    def update_status(
        self,
        request_id: str,
        status: RequestStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> AsyncRequest:
        """The only mutator. Rejects regressions and any update of a terminal request."""
        current = self.get_request(request_id)
        if current is None:
            raise RequestNotFoundError(request_id)
        if status not in TRANSITIONS[current.status]:
            logger.warning(
                "Rejected status update for %s: %s -> %s", request_id, current.status, status,
            )
            raise InvalidTransitionError(request_id, current.status, status)

        now = self._clock()
        updates: dict[str, Any] = {"status": status, "updated_at": now}
        if result is not None:
            updates["result"] = result
        if error is not None:
            updates["error"] = error
        if status in ("completed", "failed"):
            updates["processing_time"] = (now - current.created_at).total_seconds()

        updated = current.model_copy(update=updates)
        self._save(updated)
        logger.info("Request %s: %s -> %s", request_id, current.status, status)
        return updated

    def get_requests_by_company(self, company_domain: str, limit: int = 10) -> list[AsyncRequest]:
        """Live requests for a domain, newest first."""
        keys = self.store.list_keys("request:*", limit=1000, type=CacheType.ASYNC_REQUEST)
        requests = []
        for key, raw in self.store.get_many(keys).items():
            request = self._live(key.split(":", 1)[1], raw)
            if request is not None and request.company_domain == company_domain:
                requests.append(request)
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests[:limit]

    def _save(self, request: AsyncRequest) -> None:
        self.store.set(
            request_key(request.request_id),
            request.model_dump(mode="json"),
            type=CacheType.ASYNC_REQUEST,
            ttl_hours=self.ttl_hours,
        )
