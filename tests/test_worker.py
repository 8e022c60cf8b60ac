from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import BackgroundTasks

from sales_intel.models import IntelligenceResult
from sales_intel.tracker import AsyncRequestTracker
from sales_intel.worker import (
    PROCESS_INTELLIGENCE,
    BackgroundTaskDispatcher,
    build_dispatcher,
    process_intelligence,
)


@pytest.fixture
def tracker(store, config, clock):
    return AsyncRequestTracker(store, config, clock=clock)


def fake_pipeline(error=None):
    pipeline = AsyncMock()
    result = IntelligenceResult(company_name="Shopify", domain="shopify.com", sales_context="discovery")
    overview = IntelligenceResult(company_name="Shopify", domain="shopify.com", sales_context="overview")
    if error is not None:
        pipeline.generate_intelligence.side_effect = error
        pipeline.generate_overview.side_effect = error
    else:
        pipeline.generate_intelligence.return_value = result
        pipeline.generate_overview.return_value = overview
    return pipeline


@pytest.mark.asyncio
async def test_worker_completes_request(tracker):
    request_id = tracker.create_request("shopify.com", "discovery")
    pipeline = fake_pipeline()

    await process_intelligence(
        {"request_id": request_id, "domain": "shopify.com", "sales_context": "discovery"},
        tracker,
        pipeline,
    )

    request = tracker.get_request(request_id)
    assert request.status == "completed"
    assert request.result["sales_context"] == "discovery"
    assert request.processing_time is not None
    pipeline.generate_intelligence.assert_awaited_once()


@pytest.mark.asyncio
async def test_worker_runs_overview(tracker):
    request_id = tracker.create_request("shopify.com", "overview")
    pipeline = fake_pipeline()

    await process_intelligence(
        {"request_id": request_id, "request_type": "overview", "domain": "shopify.com"},
        tracker,
        pipeline,
    )

    assert tracker.get_request(request_id).result["sales_context"] == "overview"
    pipeline.generate_intelligence.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_records_failure(tracker):
    request_id = tracker.create_request("shopify.com", "discovery")

    await process_intelligence(
        {"request_id": request_id, "domain": "shopify.com"},
        tracker,
        fake_pipeline(error=RuntimeError("search quota exhausted")),
    )

    request = tracker.get_request(request_id)
    assert request.status == "failed"
    assert request.error == "RuntimeError: search quota exhausted"


@pytest.mark.asyncio
async def test_worker_skips_terminal_request(tracker):
    request_id = tracker.create_request("shopify.com", "discovery")
    tracker.update_status(request_id, "failed", error="cancelled")
    pipeline = fake_pipeline()

    await process_intelligence({"request_id": request_id, "domain": "shopify.com"}, tracker, pipeline)

    assert tracker.get_request(request_id).error == "cancelled"
    pipeline.generate_intelligence.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_skips_missing_request(tracker):
    pipeline = fake_pipeline()
    await process_intelligence({"request_id": "req_gone", "domain": "shopify.com"}, tracker, pipeline)
    pipeline.generate_intelligence.assert_not_awaited()


@pytest.mark.asyncio
async def test_dispatcher_schedules_on_running_loop(tracker):
    request_id = tracker.create_request("shopify.com", "discovery")
    dispatcher = build_dispatcher(tracker, fake_pipeline())

    dispatcher.invoke_async(PROCESS_INTELLIGENCE, {"request_id": request_id, "domain": "shopify.com"})
    await dispatcher.wait()

    assert tracker.get_request(request_id).status == "completed"


@pytest.mark.asyncio
async def test_dispatcher_uses_background_tasks(tracker):
    request_id = tracker.create_request("shopify.com", "discovery")
    background_tasks = BackgroundTasks()
    dispatcher = build_dispatcher(tracker, fake_pipeline(), background_tasks)

    dispatcher.invoke_async(PROCESS_INTELLIGENCE, {"request_id": request_id, "domain": "shopify.com"})
    assert tracker.get_request(request_id).status == "pending"

    await background_tasks()
    assert tracker.get_request(request_id).status == "completed"


@pytest.mark.asyncio
async def test_dispatcher_rejects_unknown_handler():
    dispatcher = BackgroundTaskDispatcher({})
    with pytest.raises(KeyError):
        dispatcher.invoke_async("missing", {})
    await asyncio.sleep(0)


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [None, RuntimeError("model down")])
async def test_worker_tolerates_request_expiring_mid_run(tracker, clock, error):
    request_id = tracker.create_request("shopify.com", "discovery")
    result = IntelligenceResult(company_name="Shopify", domain="shopify.com", sales_context="discovery")

    async def slow_run(*args, **kwargs):
        clock.advance(hours=25)
        if error is not None:
            raise error
        return result

    pipeline = AsyncMock()
    pipeline.generate_intelligence.side_effect = slow_run

    await process_intelligence({"request_id": request_id, "domain": "shopify.com"}, tracker, pipeline)

    assert tracker.get_request(request_id) is None
