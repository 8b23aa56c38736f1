"""End-to-end handling of a movie creation request.

prompt -> story -> assembled and uploaded movie -> playback link callback
"""

import asyncio
import logging
import re
from typing import Protocol

from models.media import PlaybackReference
from models.scene import Scene
from scene_pipeline.assembler import SceneAssembler
from services.request_store import RequestStore
from services.story_service import StoryService
from utils.logging import clear_request_context, set_request_context

logger = logging.getLogger(__name__)


def _safe_name(request_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", request_id)[:64]


class PlaybackSink(Protocol):
    """Receives the playback link once a request's movie is live."""

    async def set_playback_link(self, request_id: str, url: str) -> None: ...


class LoggingPlaybackSink:
    """Default sink that only records the link in the log."""

    async def set_playback_link(self, request_id: str, url: str) -> None:
        logger.info(f"Request {request_id} playback link: {url}")


class MovieRequestProcessor:
    """Processes creation requests at most once per request ID."""

    def __init__(
        self,
        story_service: StoryService,
        assembler: SceneAssembler,
        store: RequestStore,
        sink: PlaybackSink | None = None,
    ):
        self.story_service = story_service
        self.assembler = assembler
        self.store = store
        self.sink = sink or LoggingPlaybackSink()

    async def handle(
        self, request_id: str, prompt: str, scenes: list[Scene] | None = None
    ) -> PlaybackReference | None:
        """Create, upload and publish the movie for one request.

        Returns:
            The playback reference, or None if the request was a duplicate

        Raises:
            AssemblyError, UploadError: After the request has been released
                so that it may be retried
        """
        if not await self.claim(request_id, prompt):
            return None
        return await self.run(request_id, prompt, scenes)

    async def claim(self, request_id: str, prompt: str) -> bool:
        """Reserve a request ID. False means it is a duplicate."""
        if not await self.store.try_begin(request_id, prompt):
            logger.info(f"Request {request_id} already processing or completed, skipping")
            return False
        return True

    async def run(
        self, request_id: str, prompt: str, scenes: list[Scene] | None = None
    ) -> PlaybackReference:
        """Process a request that has already been claimed.

        When ``scenes`` is given the story step is skipped.
        """
        set_request_context(request_id)
        try:
            if scenes is None:
                story = await self.story_service.generate_story(prompt)
                scenes = story.scenes
                logger.info(
                    f"Request {request_id}: {len(scenes)} scenes"
                    f"{' (fallback story)' if story.is_fallback else ''}"
                )

            playback = await self.assembler.assemble(
                scenes, name=f"movie_{_safe_name(request_id)}"
            )
            await self.sink.set_playback_link(request_id, playback.url)
            await self.store.mark_completed(request_id, playback.url)
            return playback
        except asyncio.CancelledError:
            logger.warning(f"Request {request_id} cancelled")
            await self.store.mark_failed(request_id, "cancelled")
            raise
        except Exception as e:
            logger.error(f"Request {request_id} failed: {e}")
            await self.store.mark_failed(request_id, str(e))
            raise
        finally:
            clear_request_context()
