"""Video generation service - text-to-video via the fal.ai queue API."""

import asyncio
import logging
import math
from pathlib import Path

import httpx

from models.media import AssetUrl
from scene_pipeline.errors import GenerationError
from services.media_download import download_to_file
from utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

FAL_QUEUE_BASE = "https://queue.fal.run"
DEFAULT_MODEL = "fal-ai/fast-svd/text-to-video"

# The model renders at most this many frames per request
MAX_FRAMES = 48

PORTRAIT_PROMPT_SUFFIX = ", vertical composition, portrait orientation, centered subject"
NEGATIVE_PROMPT = "blurry, low quality, distorted, watermark, text, horizontal, landscape"


class VideoGenServiceError(Exception):
    """Raised when video generation fails."""


def normalize_fal_video(data: dict) -> AssetUrl:
    """Extract the clip URL from a completed fal.ai result.

    Raises:
        VideoGenServiceError: If the payload carries no video URL
    """
    video = data.get("video") if isinstance(data, dict) else None
    url = video.get("url") if isinstance(video, dict) else None
    if not url:
        raise VideoGenServiceError("fal.ai returned no video URL")
    return AssetUrl(asset_url=url)


class VideoGenService:
    """Generates short clips from text prompts on fal.ai."""

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        retry_policy: RetryPolicy | None = None,
        poll_interval: float = 2.0,
        max_wait: float = 600.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or ""
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.client = client or httpx.AsyncClient(timeout=120.0)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(
        self, prompt: str, duration: float, width: int, height: int, fps: int
    ) -> dict:
        num_frames = min(math.ceil(duration * fps), MAX_FRAMES)
        return {
            "prompt": prompt + PORTRAIT_PROMPT_SUFFIX,
            "negative_prompt": NEGATIVE_PROMPT,
            "width": width,
            "height": height,
            "num_frames": num_frames,
            "fps": fps,
            "guidance_scale": 9.0,
            "num_inference_steps": 30,
        }

    async def generate_clip(
        self,
        prompt: str,
        duration: float,
        width: int = 576,
        height: int = 1024,
        fps: int = 24,
    ) -> AssetUrl:
        """Generate a clip and return its remote location.

        Args:
            prompt: Visual description of the scene
            duration: Desired clip length in seconds (a hint; the model may return less)
            width: Output width in pixels
            height: Output height in pixels
            fps: Frames per second

        Raises:
            GenerationError: If every attempt failed
        """
        if not self.is_configured():
            raise GenerationError("Video generation not configured. Set FAL_KEY in your .env file.")

        payload = self.build_payload(prompt, duration, width, height, fps)
        logger.info(
            f"Generating video ({width}x{height}, {payload['num_frames']} frames): {prompt[:60]}"
        )

        try:
            return await self.retry_policy.call(
                self._generate_once, payload, description="fal.ai video generation"
            )
        except VideoGenServiceError as e:
            raise GenerationError(f"Video generation failed: {e}") from e

    async def _generate_once(self, payload: dict) -> AssetUrl:
        try:
            response = await self.client.post(
                f"{FAL_QUEUE_BASE}/{self.model}", headers=self._headers, json=payload
            )
            response.raise_for_status()
            data = response.json()

            # Synchronous responses already carry the result
            if "video" in data:
                return normalize_fal_video(data)

            request_id = data.get("request_id")
            status_url = data.get("status_url")
            response_url = data.get("response_url")
            if not (request_id and status_url and response_url):
                raise VideoGenServiceError("fal.ai did not return a request ID")

            logger.info(f"fal.ai request queued: {request_id}")
            await self._wait_for_completion(status_url)

            result = await self.client.get(response_url, headers=self._headers)
            result.raise_for_status()
            return normalize_fal_video(result.json())

        except httpx.TimeoutException:
            raise VideoGenServiceError("fal.ai request timed out")
        except httpx.HTTPStatusError as e:
            try:
                error_detail = e.response.json().get("detail", str(e))
            except Exception:
                error_detail = e.response.text or str(e)
            raise VideoGenServiceError(f"fal.ai API error: {error_detail}")
        except VideoGenServiceError:
            raise
        except (httpx.HTTPError, ValueError) as e:
            raise VideoGenServiceError(f"fal.ai request failed: {e}")

    async def _wait_for_completion(self, status_url: str) -> None:
        elapsed = 0.0
        while elapsed < self.max_wait:
            response = await self.client.get(status_url, headers=self._headers)
            response.raise_for_status()
            status = response.json().get("status")

            if status == "COMPLETED":
                return
            if status not in ("IN_QUEUE", "IN_PROGRESS"):
                raise VideoGenServiceError(f"fal.ai request ended with status {status}")

            await asyncio.sleep(self.poll_interval)
            elapsed += self.poll_interval

        raise VideoGenServiceError(f"fal.ai request did not complete within {self.max_wait:.0f}s")

    async def download(self, asset_url: AssetUrl, dest: Path) -> Path:
        """Download a generated clip.

        Raises:
            GenerationError: If the download fails
        """
        return await download_to_file(self.client, asset_url.asset_url, dest, GenerationError)

    async def close(self) -> None:
        await self.client.aclose()
