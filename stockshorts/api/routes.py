"""FastAPI routes for triggering runs, streaming progress and managing settings."""

import asyncio

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse

from stockshorts.core.errors import NoCredentialError, RunInProgressError
from stockshorts.core.logging_config import get_logger
from stockshorts.models.schemas import GenerateRequest, GenerateResponse, RunSettings, RunTrigger, SettingsUpdate
from stockshorts.services.schedule_manager import validate_cron
from stockshorts.utils.error_handler import format_status_line
from stockshorts.utils.text_utils import pick_random_topic

router = APIRouter(tags=["pipeline"])
logger = get_logger(__name__)

KEEPALIVE_SECONDS = 15.0


@router.get("/events")
async def events(request: Request) -> StreamingResponse:
    """
    Server-sent event stream of progress, done and error events.

    Every connected observer receives every event published after it
    connected. A comment line is sent when the channel is idle.
    """
    broadcaster = request.app.state.context.broadcaster
    subscription = broadcaster.subscribe()

    async def event_generator():
        try:
            yield ": connected\n\n"
            while not subscription.closed:
                if await request.is_disconnected():
                    break
                event = await subscription.get(timeout=KEEPALIVE_SECONDS)
                if event is None:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {event.model_dump_json()}\n\n"
        finally:
            subscription.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/generate", response_model=GenerateResponse, status_code=202)
async def generate(payload: GenerateRequest, request: Request):
    """
    Start a run and acknowledge immediately.

    Progress follows on /events. Without a YouTube credential nothing is
    started and the response carries the consent link instead.
    """
    context = request.app.state.context
    orchestrator = request.app.state.orchestrator
    privacy = payload.privacy.value if payload.privacy else None

    try:
        handle = await orchestrator.start(topic=payload.topic, privacy=privacy, trigger=RunTrigger.MANUAL)
    except NoCredentialError as e:
        context.status_line = format_status_line(str(e))
        return JSONResponse(
            status_code=401,
            content={"message": str(e), "auth_url": e.auth_url or "/auth"},
        )
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"Run {handle.record.run_id} accepted: {handle.record.topic}")
    return GenerateResponse(run_id=handle.record.run_id, topic=handle.record.topic)


@router.get("/generate-topic")
async def generate_topic() -> dict:
    """Random topic from the built-in pool."""
    return {"topic": pick_random_topic()}


@router.get("/settings", response_model=RunSettings)
async def get_settings(request: Request) -> RunSettings:
    return request.app.state.context.settings_repository.current


@router.post("/settings", response_model=RunSettings)
async def update_settings(update: SettingsUpdate, request: Request) -> RunSettings:
    """Persist the scheduling settings and reschedule."""
    if update.auto_schedule_cron and update.auto_schedule_cron.strip():
        try:
            validate_cron(update.auto_schedule_cron)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    context = request.app.state.context
    new_settings = context.settings_repository.update(update)
    scheduled = request.app.state.scheduler.start()
    logger.info(f"Settings updated, scheduler {'running' if scheduled else 'stopped'}")
    return new_settings


@router.get("/auth")
async def auth(request: Request):
    """Redirect to the Google consent page."""
    store = request.app.state.context.credential_store
    try:
        url = store.authorization_url()
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return RedirectResponse(url)


@router.get("/oauth2callback")
async def oauth2callback(request: Request, code: str = ""):
    """Exchange the consent code for a token and persist it."""
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    context = request.app.state.context
    try:
        await asyncio.to_thread(context.credential_store.exchange_code, code)
    except Exception as e:
        logger.error(f"OAuth token exchange failed: {e}")
        raise HTTPException(status_code=400, detail=f"Authorization failed: {e}")

    context.status_line = format_status_line("YouTube connected")
    return RedirectResponse("/")


@router.get("/status")
async def status(request: Request) -> dict:
    """Status line and the most recent run record."""
    context = request.app.state.context
    last_run = context.last_run.model_dump(mode="json") if context.last_run else None
    connected = await asyncio.to_thread(context.credential_store.has_valid_credentials)
    return {
        "status": context.status_line,
        "youtube_connected": connected,
        "active_runs": list(context.active_runs),
        "last_run": last_run,
    }
