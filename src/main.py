"""Entry point for the call-to-EVI bridge service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_evi_service
from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings
from evi.errors import EVIError, InitError

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = app.dependency_overrides.get(get_evi_service, get_evi_service)()
    if settings.evi_initialize_on_startup:
        try:
            await service.initialize()
        except InitError as exc:
            # Keep serving; /api/evi/initialize can retry once configuration is fixed.
            LOGGER.error("EVI service failed to initialize: %s", exc)
    yield
    await service.shutdown()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="EVI Call Bridge",
    description="Bridges phone calls to Hume EVI conversations over a realtime stream.",
    lifespan=lifespan,
)


@app.exception_handler(EVIError)
async def evi_error_handler(request: Request, exc: EVIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(api_router, prefix="/api")
app.include_router(twilio_router, prefix="/api")
