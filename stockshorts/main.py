"""
FastAPI entrypoint for the Stock Shorts Factory.

Runs start from POST /generate, from the cron schedule, or from the
run_once CLI. Browsers follow progress on /events.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from stockshorts.api.routes import router as pipeline_router
from stockshorts.core.config import settings
from stockshorts.core.logging_config import get_logger, setup_logging
from stockshorts.pipelines.context import build_context
from stockshorts.pipelines.orchestrator import PipelineOrchestrator
from stockshorts.services.schedule_manager import ScheduleManager

setup_logging(log_level=settings.log_level, log_file=settings.log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the pipeline context and keep the scheduler alive for the app's lifetime."""
    context = build_context(settings, logger)
    orchestrator = PipelineOrchestrator(context)
    scheduler = ScheduleManager(settings, logger, context.settings_repository, orchestrator)

    app.state.context = context
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler

    scheduled = scheduler.start()
    logger.info(
        f"{settings.app_name} v{settings.app_version} ready on port {settings.port} "
        f"(schedule {'on' if scheduled else 'off'}, overlap policy '{settings.run_overlap_policy}')"
    )
    try:
        yield
    finally:
        scheduler.stop()
        if context.active_runs:
            logger.warning(f"Shutting down with {len(context.active_runs)} run(s) still active")
        logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Topic in, vertical YouTube Short out: Pexels clips, ffmpeg cross-fades, YouTube upload",
    lifespan=lifespan,
)

# the dashboard page may be served from another origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(pipeline_router)


@app.get("/")
async def root(request: Request):
    """Service summary with the current status line and schedule settings."""
    context = request.app.state.context
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": context.status_line,
        "settings": context.settings_repository.current.model_dump(),
        "running": list(context.active_runs),
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    import uvicorn

    uvicorn.run(
        "stockshorts.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
