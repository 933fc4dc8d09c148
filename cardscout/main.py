"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from cardscout.api.identity import IdentityClient
from cardscout.api.routes import pipelines
from cardscout.config import settings
from cardscout.db.models import Base
from cardscout.db.session import AsyncSessionLocal, engine
from cardscout.db.store import SQLRecordStore
from cardscout.errors import IdentityError, SetupError, StoreError
from cardscout.ingest.registry import build_default_registry
from cardscout.worker.cycle_lock import cycle_lock_manager
from cardscout.worker.orchestrator import Orchestrator
from cardscout.worker.scheduler import setup_scheduler
from cardscout.worker.tasks import PipelineRunner

# Configure structured logging
from cardscout.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting cardscout...")

    # Initialize database
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    store = SQLRecordStore(AsyncSessionLocal)
    registry = build_default_registry(settings)
    runner = PipelineRunner(Orchestrator(store, registry), store, lock_manager=cycle_lock_manager)
    identity_client = IdentityClient()

    app.state.store = store
    app.state.runner = runner
    app.state.identity_client = identity_client
    app.state.lock_manager = cycle_lock_manager
    logger.info(
        f"Registered {len(registry.ranking_sources)} ranking sources and "
        f"marketplaces {registry.list_platforms()}"
    )

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = setup_scheduler(runner)
        scheduler.start()
        logger.info("Scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")

    if scheduler:
        scheduler.shutdown()

    await registry.close()
    await identity_client.close()
    await cycle_lock_manager.close()
    await engine.dispose()

    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Cardscout",
    description="Prospect scoring and trading-card deal discovery",
    version="0.1.0",
    lifespan=lifespan,
)

# Add Prometheus instrumentation
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics", "/health"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["monitoring"])

# Include API routes
app.include_router(pipelines.router)


@app.exception_handler(SetupError)
async def setup_error_handler(request: Request, exc: SetupError):
    logger.error(f"Setup failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError):
    return JSONResponse(status_code=503, content={"success": False, "error": str(exc)})


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    # Run with uvicorn
    uvicorn.run(
        "cardscout.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
