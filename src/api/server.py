#!/usr/bin/env python
"""FastAPI server for moviegen."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Add src directory to Python path for imports
src_dir = Path(__file__).parent.parent
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import (
    close_services,
    get_request_store,
    get_runner,
    get_sound_effect_service,
    get_story_service,
    get_tts_service,
    get_uploader,
    get_video_gen_service,
)
from api.routers.movies import router as movies_router
from api.schemas import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    await get_request_store()
    logger.info("moviegen API started")
    try:
        yield
    finally:
        await close_services()
        logger.info("moviegen API stopped")


app = FastAPI(title="moviegen API", version="0.1.0", lifespan=lifespan)

# CORS middleware for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(movies_router)


@app.get("/api/health", response_model=HealthResponse, summary="Health check")
async def health() -> HealthResponse:
    services = {
        "video": get_video_gen_service().is_configured(),
        "tts": get_tts_service().is_configured(),
        "sound_effects": get_sound_effect_service().is_configured(),
        "upload": get_uploader().is_configured(),
        "story": get_story_service().is_configured(),
    }
    ffmpeg = get_runner().is_available()
    ready = ffmpeg and services["video"] and services["upload"]
    return HealthResponse(
        status="healthy" if ready else "degraded",
        ffmpeg=ffmpeg,
        services=services,
    )
