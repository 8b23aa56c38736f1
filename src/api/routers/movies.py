"""Movie creation routes for the moviegen API."""

import asyncio
import logging
import uuid

from fastapi import APIRouter, HTTPException

from api.dependencies import get_processor, get_request_store
from api.schemas import (
    AssembleMovieRequest,
    CreateMovieRequest,
    MovieAcceptedResponse,
    MovieRequestResponse,
)
from models.scene import Dialogue, Scene
from services.request_store import STATUS_PROCESSING

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Movies"])

# Keep references to background tasks to prevent garbage collection
_background_tasks: set = set()


async def _run_request(request_id: str, prompt: str, scenes: list[Scene] | None = None) -> None:
    """Run a claimed request in the background."""
    processor = await get_processor()
    try:
        await processor.run(request_id, prompt, scenes)
    except Exception as e:
        # Already recorded as failed in the request store
        logger.error(f"Movie request {request_id} failed: {e}")


def _schedule(request_id: str, prompt: str, scenes: list[Scene] | None = None) -> None:
    task = asyncio.create_task(_run_request(request_id, prompt, scenes))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


@router.post(
    "/api/movies",
    status_code=202,
    response_model=MovieAcceptedResponse,
    summary="Create a movie from a prompt",
)
async def create_movie(body: CreateMovieRequest) -> MovieAcceptedResponse:
    """Queue a creation request. A duplicate request ID is rejected with 409."""
    request_id = body.request_id or str(uuid.uuid4())
    processor = await get_processor()

    if not await processor.claim(request_id, body.prompt):
        raise HTTPException(
            status_code=409, detail=f"Request {request_id} is already processing or completed"
        )

    _schedule(request_id, body.prompt)
    return MovieAcceptedResponse(request_id=request_id, status=STATUS_PROCESSING)


@router.post(
    "/api/movies/assemble",
    status_code=202,
    response_model=MovieAcceptedResponse,
    summary="Assemble a movie from explicit scenes",
)
async def assemble_movie(body: AssembleMovieRequest) -> MovieAcceptedResponse:
    request_id = body.request_id or str(uuid.uuid4())
    try:
        scenes = [
            Scene(
                prompt=s.prompt,
                duration=s.duration,
                sound_effect=s.sound_effect,
                dialogue=Dialogue(s.dialogue.text, s.dialogue.description) if s.dialogue else None,
            )
            for s in body.scenes
        ]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    processor = await get_processor()
    summary = f"{len(scenes)} scenes: {scenes[0].prompt[:80]}"
    if not await processor.claim(request_id, summary):
        raise HTTPException(
            status_code=409, detail=f"Request {request_id} is already processing or completed"
        )

    _schedule(request_id, summary, scenes)
    return MovieAcceptedResponse(request_id=request_id, status=STATUS_PROCESSING)


@router.get(
    "/api/movies/{request_id}",
    response_model=MovieRequestResponse,
    summary="Get a creation request",
)
async def get_movie(request_id: str) -> MovieRequestResponse:
    store = await get_request_store()
    record = await store.get(request_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Request not found")
    return MovieRequestResponse(**record)


@router.get(
    "/api/movies",
    response_model=list[MovieRequestResponse],
    summary="List recent creation requests",
)
async def list_movies(limit: int = 50) -> list[MovieRequestResponse]:
    store = await get_request_store()
    records = await store.list_requests(limit=max(1, min(limit, 500)))
    return [MovieRequestResponse(**r) for r in records]
