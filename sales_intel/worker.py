"""Background worker: drives an AsyncRequest through the pipeline.

The dispatching handler and the worker share nothing but the persisted
request record; the payload carries only plain data.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from fastapi import BackgroundTasks

from sales_intel.errors import SalesIntelError
from sales_intel.pipeline import IntelligencePipeline
from sales_intel.tracker import AsyncRequestTracker

logger = logging.getLogger(__name__)

PROCESS_INTELLIGENCE = "process_intelligence"

Handler = Callable[[dict], Awaitable[Any]]


class BackgroundTaskDispatcher:
    """TaskDispatcher that runs handlers in-process after the response is sent.

    Uses FastAPI BackgroundTasks when given one, otherwise schedules an
    asyncio task on the running loop.
    """

    def __init__(
        self,
        handlers: dict[str, Handler],
        background_tasks: BackgroundTasks | None = None,
    ):
        self.handlers = dict(handlers)
        self.background_tasks = background_tasks
        self._tasks: set[asyncio.Task] = set()

    def invoke_async(self, function_name: str, payload: dict) -> None:
        handler = self.handlers.get(function_name)
        if handler is None:
            raise KeyError(f"No handler registered for {function_name}")

        if self.background_tasks is not None:
            self.background_tasks.add_task(handler, payload)
        else:
            task = asyncio.get_running_loop().create_task(handler(payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.info("Dispatched %s for request %s", function_name, payload.get("request_id"))

    async def wait(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def process_intelligence(
    payload: dict,
    tracker: AsyncRequestTracker,
    pipeline: IntelligencePipeline,
) -> None:
    """Worker entry point for one dispatched request.

    Marks the request processing, runs the pipeline, then records the result
    or a human-readable error. Never raises; a request that expired or moved
    on while the pipeline ran is logged and left alone.
    """
    request_id = payload["request_id"]
    try:
        tracker.update_status(request_id, "processing")
    except SalesIntelError as e:
        logger.warning("Skipping request %s: %s", request_id, e)
        return

    try:
        if payload.get("request_type") == "overview":
            result = await pipeline.generate_overview(
                payload["domain"], force_refresh=bool(payload.get("force_refresh")),
            )
        else:
            result = await pipeline.generate_intelligence(
                payload["domain"],
                payload.get("sales_context", "discovery"),
                seller_company=payload.get("seller_company"),
                intent_text=payload.get("intent_text"),
                force_refresh=bool(payload.get("force_refresh")),
            )
    except Exception as e:
        logger.exception("Request %s failed", request_id)
        _record_outcome(tracker, request_id, "failed", error=f"{e.__class__.__name__}: {e}")
        return

    _record_outcome(tracker, request_id, "completed", result=result.model_dump(mode="json"))


def _record_outcome(tracker: AsyncRequestTracker, request_id: str, status: str, **fields: Any) -> None:
    try:
        tracker.update_status(request_id, status, **fields)
    except SalesIntelError as e:
        logger.warning("Could not mark request %s %s: %s", request_id, status, e)


def build_dispatcher(
    tracker: AsyncRequestTracker,
    pipeline: IntelligencePipeline,
    background_tasks: BackgroundTasks | None = None,
) -> BackgroundTaskDispatcher:
    async def handle(payload: dict) -> None:
        await process_intelligence(payload, tracker, pipeline)

    return BackgroundTaskDispatcher({PROCESS_INTELLIGENCE: handle}, background_tasks)
