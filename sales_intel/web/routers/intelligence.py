"""Intelligence API: synchronous runs, polled async requests, SSE progress."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from sales_intel.models import AsyncRequest, IntelligenceResult, RequestType, WorkflowProgress
from sales_intel.pipeline import IntelligencePipeline, validate_request
from sales_intel.search.strategy import normalize_domain
from sales_intel.tracker import AsyncRequestTracker
from sales_intel.web.deps import (
    INTELLIGENCE_WORKFLOW,
    get_engine,
    get_pipeline,
    get_poller,
    get_tracker,
)
from sales_intel.worker import PROCESS_INTELLIGENCE, build_dispatcher
from sales_intel.workflow import StoreWorkflowEngine, WorkflowPoller

logger = logging.getLogger(__name__)
router = APIRouter(tags=["intelligence"])

STREAM_POLL_SECONDS = 0.5


class IntelligenceRequest(BaseModel):
    domain: str
    sales_context: str = "discovery"
    seller_company: str | None = None
    intent_text: str | None = None
    force_refresh: bool = False


class OverviewRequest(BaseModel):
    domain: str
    force_refresh: bool = False


class AsyncIntelligenceRequest(IntelligenceRequest):
    request_type: RequestType = "discovery"


@router.post("/intelligence", response_model=IntelligenceResult)
async def generate_intelligence(
    req: IntelligenceRequest,
    pipeline: IntelligencePipeline = Depends(get_pipeline),
):
    """Run the full pipeline and return the result (cached when available)."""
    try:
        return await pipeline.generate_intelligence(
            req.domain,
            req.sales_context,
            seller_company=req.seller_company,
            intent_text=req.intent_text,
            force_refresh=req.force_refresh,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/overview", response_model=IntelligenceResult)
async def generate_overview(
    req: OverviewRequest,
    pipeline: IntelligencePipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.generate_overview(req.domain, force_refresh=req.force_refresh)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/intelligence/async", status_code=202)
async def start_intelligence(
    req: AsyncIntelligenceRequest,
    background_tasks: BackgroundTasks,
    tracker: AsyncRequestTracker = Depends(get_tracker),
    pipeline: IntelligencePipeline = Depends(get_pipeline),
):
    """Create a pending request and hand it to the worker. Returns the request id."""
    context = "overview" if req.request_type == "overview" else req.sales_context
    try:
        domain, context = validate_request(req.domain, context)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    request_id = tracker.create_request(
        domain,
        req.request_type,
        additional_data={"sales_context": context, "seller_company": req.seller_company},
    )
    dispatcher = build_dispatcher(tracker, pipeline, background_tasks)
    dispatcher.invoke_async(PROCESS_INTELLIGENCE, {
        "request_id": request_id,
        "request_type": "overview" if req.request_type == "overview" else "intelligence",
        "domain": domain,
        "sales_context": context,
        "seller_company": req.seller_company,
        "intent_text": req.intent_text,
        "force_refresh": req.force_refresh,
    })
    return {"request_id": request_id, "status": "pending"}


@router.get("/requests/{request_id}", response_model=AsyncRequest)
async def request_status(
    request_id: str,
    tracker: AsyncRequestTracker = Depends(get_tracker),
):
    request = tracker.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return request


@router.get("/requests/{request_id}/stream")
async def request_stream(
    request_id: str,
    tracker: AsyncRequestTracker = Depends(get_tracker),
):
    """SSE stream of status changes, polling the persisted record."""
    if tracker.get_request(request_id) is None:
        raise HTTPException(status_code=404, detail="Request not found")

    async def event_generator():
        last_status = None
        while True:
            request = tracker.get_request(request_id)
            if request is None:
                yield {"event": "error", "data": json.dumps({"request_id": request_id, "error": "expired"})}
                return
            if request.status != last_status:
                last_status = request.status
                yield {
                    "event": "status",
                    "data": json.dumps({
                        "request_id": request_id,
                        "status": request.status,
                        "error": request.error,
                        "processing_time": request.processing_time,
                    }),
                }
            if request.is_terminal:
                return
            await asyncio.sleep(STREAM_POLL_SECONDS)

    return EventSourceResponse(event_generator())


@router.get("/requests", response_model=list[AsyncRequest])
async def list_requests(
    domain: str,
    limit: int = 10,
    tracker: AsyncRequestTracker = Depends(get_tracker),
):
    """Live requests for a company, newest first."""
    return tracker.get_requests_by_company(normalize_domain(domain), limit=limit)


@router.post("/workflow", status_code=202)
async def start_workflow(
    req: IntelligenceRequest,
    engine: StoreWorkflowEngine = Depends(get_engine),
):
    """Start a workflow execution of the pipeline; poll its progress by id."""
    try:
        domain, context = validate_request(req.domain, req.sales_context)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    payload = req.model_dump() | {"domain": domain, "sales_context": context}
    execution_id = await engine.start_execution(INTELLIGENCE_WORKFLOW, payload)
    return {"execution_id": execution_id}


@router.get("/workflow/{execution_id}/progress", response_model=WorkflowProgress)
async def workflow_progress(
    execution_id: str,
    poller: WorkflowPoller = Depends(get_poller),
):
    try:
        return await poller.get_progress(execution_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Execution not found")
