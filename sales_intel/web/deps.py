"""FastAPI dependencies: shared config, store, pipeline and workflow engine."""

from __future__ import annotations

from functools import lru_cache

from sales_intel.cache.store import SqliteStore
from sales_intel.config import Config, load_config
from sales_intel.pipeline import IntelligencePipeline
from sales_intel.tracker import AsyncRequestTracker
from sales_intel.workflow import StoreWorkflowEngine, WorkflowPoller

INTELLIGENCE_WORKFLOW = "intelligence"


@lru_cache
def get_config() -> Config:
    return load_config()


_store_instance: SqliteStore | None = None
_pipeline_instance: IntelligencePipeline | None = None
_engine_instance: StoreWorkflowEngine | None = None


def get_store() -> SqliteStore:
    global _store_instance
    if _store_instance is None:
        _store_instance = SqliteStore.from_config(get_config())
    return _store_instance


def get_tracker() -> AsyncRequestTracker:
    return AsyncRequestTracker(get_store(), get_config())


def get_pipeline() -> IntelligencePipeline:
    global _pipeline_instance
    if _pipeline_instance is None:
        _pipeline_instance = IntelligencePipeline.from_config(get_config(), store=get_store())
    return _pipeline_instance


def get_engine() -> StoreWorkflowEngine:
    global _engine_instance
    if _engine_instance is None:
        _engine_instance = StoreWorkflowEngine(
            get_store(), ttl_hours=get_config().request_ttl_hours,
        )
        _engine_instance.register(INTELLIGENCE_WORKFLOW, get_pipeline().run_workflow)
    return _engine_instance


def get_poller() -> WorkflowPoller:
    return WorkflowPoller(get_engine())


async def close_all() -> None:
    global _store_instance, _pipeline_instance, _engine_instance
    if _engine_instance is not None:
        await _engine_instance.wait()
        _engine_instance = None
    if _pipeline_instance is not None:
        await _pipeline_instance.close()
        _pipeline_instance = None
    if _store_instance is not None:
        _store_instance.close()
        _store_instance = None
