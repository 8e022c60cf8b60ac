"""Workflow progress polling plus a store-backed in-process workflow engine."""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime
from typing import Any, Awaitable, Callable

from sales_intel.cache.keys import execution_key
from sales_intel.interfaces import Store, WorkflowEngine
from sales_intel.models import CacheType, WorkflowProgress, WorkflowStep

logger = logging.getLogger(__name__)

# State names as they appear in execution history
CACHE_CHECK_STATE = "CacheCheckTask"
COLLECTION_STATE = "SmartCollectionTask"
ANALYSIS_STATE = "LLMAnalysisTask"
CACHE_RESPONSE_STATE = "CacheResponseTask"

# Substring of the entered state name -> (stage, percent)
STATE_STAGES: list[tuple[str, str, int]] = [
    ("CacheCheck", "cache_check", 25),
    ("SmartCollection", "data_collection", 50),
    ("LLMAnalysis", "llm_analysis", 75),
    ("CacheResponse", "finalization", 90),
]

# Elapsed seconds upper bound -> (stage, percent); anything later is finalization
ELAPSED_STAGES: list[tuple[float, str, int]] = [
    (30, "cache_check", 25),
    (120, "data_collection", 50),
    (180, "llm_analysis", 75),
]

STEP_INFO: dict[str, tuple[int, str]] = {
    "cache_check": (1, "Checking existing data"),
    "data_collection": (2, "Gathering intelligence"),
    "llm_analysis": (3, "Generating AI insights"),
    "finalization": (4, "Finalizing results"),
    "completed": (4, "Analysis complete"),
    "failed": (0, "Analysis failed"),
}
STAGE_ORDER = ["cache_check", "data_collection", "llm_analysis", "finalization"]

SUCCEEDED = "SUCCEEDED"
FAILED_STATUSES = {"FAILED", "TIMED_OUT", "ABORTED"}
ENTERED_EVENTS = {"TaskStateEntered", "PassStateEntered"}
HISTORY_WINDOW = 10


class WorkflowPoller:
    """Maps a workflow execution onto the 4-stage progress vocabulary."""

    def __init__(self, engine: WorkflowEngine, clock: Callable[[], datetime] = datetime.now):
        self.engine = engine
        self._clock = clock

    async def get_progress(self, execution_id: str) -> WorkflowProgress:
        description = await self.engine.describe_execution(execution_id)
        status = str(description.get("status", "RUNNING")).upper()

        if status == SUCCEEDED:
            return _progress(execution_id, "completed", "completed", 100, "terminal")
        if status in FAILED_STATUSES:
            return _progress(execution_id, "failed", "failed", 0, "terminal")

        elapsed = self._elapsed_seconds(description.get("start_time"))
        stage = await self._stage_from_history(execution_id)
        if stage is not None:
            name, percent = stage
            return _progress(execution_id, "running", name, percent, "history", elapsed)

        name, percent = stage_for_elapsed(elapsed or 0.0)
        return _progress(execution_id, "running", name, percent, "elapsed_time", elapsed)

    async def _stage_from_history(self, execution_id: str) -> tuple[str, int] | None:
        try:
            history = await self.engine.get_execution_history(execution_id)
        except Exception as e:
            logger.warning("Execution history unavailable for %s: %s", execution_id, e)
            return None

        # Newest first, limited window
        for event in list(reversed(history))[:HISTORY_WINDOW]:
            if event.get("event_type") in ENTERED_EVENTS and event.get("state_name"):
                return stage_for_state(event["state_name"])
        # Nothing entered yet: the first state is always the cache check
        return stage_for_state(CACHE_CHECK_STATE)

    def _elapsed_seconds(self, start_time: Any) -> float | None:
        start = _as_datetime(start_time)
        if start is None:
            return None
        now = self._clock()
        if start.tzinfo is not None and now.tzinfo is None:
            now = now.astimezone()
        elif start.tzinfo is None and now.tzinfo is not None:
            start = start.astimezone()
        return max(0.0, (now - start).total_seconds())


def stage_for_state(state_name: str) -> tuple[str, int] | None:
    """Map a workflow state name onto (stage, percent), or None if unrecognised."""
    for marker, stage, percent in STATE_STAGES:
        if marker in state_name:
            return stage, percent
    return None


def stage_for_elapsed(elapsed_seconds: float) -> tuple[str, int]:
    for limit, stage, percent in ELAPSED_STAGES:
        if elapsed_seconds < limit:
            return stage, percent
    return "finalization", 90


def build_steps(current: str) -> list[WorkflowStep]:
    """Per-stage pending / running / completed flags."""
    if current == "completed":
        index = len(STAGE_ORDER)
    elif current == "failed":
        index = -1
    else:
        index = STAGE_ORDER.index(current)

    steps = []
    for i, stage in enumerate(STAGE_ORDER):
        if index == -1 or i > index:
            status = "pending"
        elif i == index:
            status = "running"
        else:
            status = "completed"
        steps.append(WorkflowStep(name=stage, description=STEP_INFO[stage][1], status=status))
    return steps


def _progress(
    execution_id: str,
    status: str,
    stage: str,
    percent: int,
    strategy: str,
    elapsed: float | None = None,
) -> WorkflowProgress:
    step_number, description = STEP_INFO[stage]
    return WorkflowProgress(
        execution_id=execution_id,
        status=status,
        current_step=stage,
        step_number=step_number,
        step_description=description,
        progress_percent=percent,
        steps=build_steps(stage),
        strategy=strategy,
        elapsed_seconds=elapsed,
    )


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# In-process engine
# ---------------------------------------------------------------------------

StageRecorder = Callable[[str], None]
WorkflowRunner = Callable[[dict, StageRecorder], Awaitable[dict]]


class StoreWorkflowEngine:
    """WorkflowEngine that runs registered coroutines as asyncio tasks.

    Execution records (status, timestamps, state history) are persisted in
    the Store, so a poller in another process sees the same progress.
    """

    def __init__(
        self,
        store: Store,
        runners: dict[str, WorkflowRunner] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        ttl_hours: float = 24,
    ):
        self.store = store
        self.runners: dict[str, WorkflowRunner] = dict(runners or {})
        self._clock = clock
        self.ttl_hours = ttl_hours
        self._tasks: set[asyncio.Task] = set()

    def register(self, name: str, runner: WorkflowRunner) -> None:
        self.runners[name] = runner

    async def start_execution(self, name: str, input: dict) -> str:
        if name not in self.runners:
            raise KeyError(f"Unknown workflow: {name}")
        execution_id = f"exec_{secrets.token_hex(8)}"
        now = self._clock().isoformat()
        self._save({
            "execution_id": execution_id,
            "name": name,
            "status": "RUNNING",
            "start_time": now,
            "end_time": None,
            "input": input,
            "output": None,
            "error": None,
            "history": [{"state_name": name, "timestamp": now, "event_type": "ExecutionStarted"}],
        })
        task = asyncio.create_task(self._run(execution_id, name, input))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Started workflow %s (%s)", execution_id, name)
        return execution_id

    async def describe_execution(self, execution_id: str) -> dict:
        record = self._load(execution_id)
        return {
            "status": record["status"],
            "start_time": record["start_time"],
            "end_time": record["end_time"],
            "output": record.get("output"),
            "error": record.get("error"),
        }

    async def get_execution_history(self, execution_id: str) -> list[dict]:
        return list(self._load(execution_id)["history"])

    def record_state(self, execution_id: str, state_name: str) -> None:
        record = self.store.get(execution_key(execution_id))
        if record is None:
            logger.warning("Dropping state %s for unknown execution %s", state_name, execution_id)
            return
        record["history"].append({
            "state_name": state_name,
            "timestamp": self._clock().isoformat(),
            "event_type": "TaskStateEntered",
        })
        self._save(record)

    async def wait(self) -> None:
        """Wait for all running executions (used by tests and graceful shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, execution_id: str, name: str, input: dict) -> None:
        runner = self.runners[name]
        try:
            output = await runner(input, lambda state: self.record_state(execution_id, state))
        except Exception as e:
            logger.exception("Workflow %s failed", execution_id)
            self._finish(execution_id, "FAILED", error=str(e))
            return
        self._finish(execution_id, "SUCCEEDED", output=output)

    def _finish(self, execution_id: str, status: str, output: dict | None = None, error: str | None = None) -> None:
        record = self.store.get(execution_key(execution_id))
        if record is None:
            logger.warning("Execution %s expired before it finished (%s)", execution_id, status)
            return
        now = self._clock().isoformat()
        record.update({"status": status, "end_time": now, "output": output, "error": error})
        record["history"].append({
            "state_name": record["name"],
            "timestamp": now,
            "event_type": "ExecutionSucceeded" if status == SUCCEEDED else "ExecutionFailed",
        })
        self._save(record)

    def _load(self, execution_id: str) -> dict:
        record = self.store.get(execution_key(execution_id))
        if record is None:
            raise KeyError(f"Unknown execution: {execution_id}")
        return record

    def _save(self, record: dict) -> None:
        self.store.set(
            execution_key(record["execution_id"]),
            record,
            type=CacheType.WORKFLOW_EXECUTION,
            ttl_hours=self.ttl_hours,
        )
