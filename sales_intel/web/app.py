"""FastAPI application exposing the intelligence pipeline."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from sales_intel import __version__
from sales_intel.cache.store import SqliteStore
from sales_intel.web.deps import close_all, get_store
from sales_intel.web.routers.intelligence import router as intelligence_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: open the store, drain running work on exit."""
    logger.info("Starting sales intelligence API...")
    get_store()
    yield
    await close_all()
    logger.info("Sales intelligence API shut down.")


app = FastAPI(
    title="Sales Intelligence",
    description="Cited sales intelligence for target companies, synchronous or polled",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(intelligence_router, prefix="/api")


@app.get("/health")
async def health(store: SqliteStore = Depends(get_store)):
    return {"status": "ok", "store": store.health_check()}
