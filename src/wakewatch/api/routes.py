"""FastAPI routes for the wakewatch JSON API."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from wakewatch import __version__
from wakewatch.api.models import (
    CheckResponse,
    EventResponse,
    ForegroundRequest,
    PreferencesUpdate,
    StatusResponse,
    WakeResponse,
)
from wakewatch.config.loader import validate_preference
from wakewatch.core.events import Event, WakeOutcome
from wakewatch.core.orchestrator import WakeOrchestrator

DEFAULT_CONFIG = Path.home() / ".config" / "wakewatch" / "config.yaml"


def _event_to_response(event: Event) -> EventResponse:
    """Flatten either terminal event type into one response shape."""
    if isinstance(event, WakeOutcome):
        return EventResponse(
            kind="wake_result", host=event.host, at=event.at, result=event.result.value
        )
    return EventResponse(
        kind="device_availability",
        host=event.host,
        at=event.at,
        is_available=event.is_available,
        attempts=event.attempts,
    )


def create_app(
    config_path: Optional[str] = None, engine: Optional[WakeOrchestrator] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The engine is started when the app starts serving and stopped on shutdown.

    Args:
        config_path: Path to wakewatch config.yaml. If None, uses the default location.
        engine: Pre-built orchestrator (tests); built from ``config_path`` otherwise.

    Returns:
        FastAPI application instance
    """
    if engine is None:
        engine = WakeOrchestrator.from_config(Path(config_path) if config_path else DEFAULT_CONFIG)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine.start()
        try:
            yield
        finally:
            engine.stop()

    app = FastAPI(
        title="wakewatch",
        version=__version__,
        description="Wake-on-LAN sender and reachability tracker",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # ── State ─────────────────────────────────────────────────────────────────

    @app.get("/status", response_model=StatusResponse)
    async def get_status() -> StatusResponse:
        return StatusResponse(**engine.status())

    @app.get("/events", response_model=list[EventResponse])
    async def get_events() -> list[EventResponse]:
        return [_event_to_response(e) for e in engine.events.recent()]

    # ── Actions ───────────────────────────────────────────────────────────────

    # Plain def: sending the packet blocks, so FastAPI runs these in its threadpool.
    @app.post("/wake", response_model=WakeResponse)
    def post_wake() -> WakeResponse:
        result = engine.wake_device()
        return WakeResponse(result=result.value, host=engine.device.value.address)

    @app.post("/check", response_model=CheckResponse)
    def post_check() -> CheckResponse:
        scheduled = engine.check_device_connectivity()
        return CheckResponse(
            scheduled=scheduled, device_state=engine.device.value.connection_state.value
        )

    @app.post("/foreground")
    async def post_foreground(req: ForegroundRequest) -> JSONResponse:
        engine.set_foreground(req.foreground)
        return JSONResponse({"foreground": engine.is_foreground()})

    # ── Preferences ───────────────────────────────────────────────────────────

    @app.get("/preferences")
    async def get_preferences() -> JSONResponse:
        return JSONResponse(engine.preferences.snapshot())

    @app.put("/preferences")
    def put_preferences(req: PreferencesUpdate) -> JSONResponse:
        updates = {k: v for k, v in req.model_dump().items() if v is not None}
        errors = [e for e in (validate_preference(k, v) for k, v in updates.items()) if e]
        if errors:
            return JSONResponse({"errors": errors}, status_code=400)
        for key, value in updates.items():
            engine.preferences.set(key, value)
        return JSONResponse(engine.preferences.snapshot())

    return app
