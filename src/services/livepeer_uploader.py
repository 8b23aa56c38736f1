"""Upload assembled movies to Livepeer Studio and wait for playback."""

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

import httpx

from models.media import PlaybackReference, UploadProgress
from scene_pipeline.errors import UploadError
from utils.retry import retry_api_call

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://livepeer.studio/api"
PLAYBACK_URL_TEMPLATE = "https://lvpr.tv/?v={playback_id}"
UPLOAD_CHUNK_SIZE = 1024 * 1024
PROGRESS_QUEUE_SIZE = 8

_DONE = object()

ProgressCallback = Callable[[UploadProgress], None]


class UploadTask:
    """A running upload.

    ``progress()`` yields :class:`UploadProgress` updates until the upload
    ends. ``result()`` waits for the playback reference. ``cancel()`` stops
    the upload, after which ``result()`` raises :class:`UploadError`.
    """

    def __init__(self, run: Callable[[ProgressCallback], Awaitable[PlaybackReference]]):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=PROGRESS_QUEUE_SIZE)
        self._task = asyncio.create_task(run(self._publish))
        self._task.add_done_callback(lambda _task: self._publish(_DONE))

    def _publish(self, item) -> None:
        # Nobody may be reading progress(); keep only the newest updates
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(item)

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def progress(self) -> AsyncIterator[UploadProgress]:
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            yield item

    async def result(self) -> PlaybackReference:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._task.cancelled():
                raise UploadError("Upload cancelled")
            raise


class LivepeerUploader:
    """Direct upload to Livepeer Studio's asset API."""

    def __init__(
        self,
        api_key: str = "",
        api_base: str = DEFAULT_API_BASE,
        poll_interval: float = 3.0,
        ready_timeout: float = 300.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.api_base = (api_base or DEFAULT_API_BASE).rstrip("/")
        self.poll_interval = poll_interval
        self.ready_timeout = ready_timeout
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(60.0, write=300.0))

    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    def start_upload(self, path: Path, name: str | None = None) -> UploadTask:
        """Begin uploading ``path`` in the background."""
        path = Path(path)
        return UploadTask(lambda report: self._upload(path, name, report))

    async def upload(self, path: Path, name: str | None = None) -> PlaybackReference:
        """Upload a movie and wait until it is playable.

        Raises:
            UploadError: If any step of the upload fails
        """
        return await self.start_upload(path, name).result()

    async def _upload(
        self, path: Path, name: str | None, report: ProgressCallback
    ) -> PlaybackReference:
        if not self.is_configured():
            raise UploadError("Upload not configured. Set LIVEPEER_API_KEY in your .env file.")
        if not path.exists() or path.stat().st_size == 0:
            raise UploadError(f"Nothing to upload: {path} is missing or empty")

        name = name or f"Movie_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

        try:
            upload_url, asset_id, playback_id = await self._request_upload(name)
            await self._put_file(upload_url, path, report)
            await self._wait_until_ready(asset_id)
        except httpx.TimeoutException:
            raise UploadError("Livepeer request timed out")
        except httpx.HTTPStatusError as e:
            raise UploadError(
                f"Livepeer API error ({e.response.status_code}): {e.response.text[:300]}"
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Livepeer upload failed: {e}")
        except OSError as e:
            raise UploadError(f"Could not read {path.name}: {e}")
        except ValueError as e:
            raise UploadError(f"Livepeer returned an invalid response: {e}")

        playback = PlaybackReference(
            url=PLAYBACK_URL_TEMPLATE.format(playback_id=playback_id),
            playback_id=playback_id,
            asset_id=asset_id,
        )
        logger.info(f"Upload complete: {playback.url}")
        return playback

    async def _request_upload(self, name: str) -> tuple[str, str, str]:
        response = await self.client.post(
            f"{self.api_base}/asset/request-upload",
            headers=self._headers,
            json={
                "name": name,
                "staticMp4": True,
                "playbackPolicy": {"type": "public"},
            },
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise UploadError("Livepeer returned an unexpected upload response")

        asset = data.get("asset") or {}
        if not isinstance(asset, dict):
            asset = {}
        upload_url = data.get("url")
        asset_id = asset.get("id")
        playback_id = asset.get("playbackId")
        if not (upload_url and asset_id and playback_id):
            raise UploadError("Livepeer did not return an upload URL and asset")

        logger.info(f"Livepeer asset created: {asset_id}")
        return upload_url, asset_id, playback_id

    async def _put_file(self, upload_url: str, path: Path, report: ProgressCallback) -> None:
        total = os.path.getsize(path)

        async def stream():
            sent = 0
            with open(path, "rb") as f:
                while chunk := f.read(UPLOAD_CHUNK_SIZE):
                    sent += len(chunk)
                    yield chunk
                    report(UploadProgress(bytes_sent=sent, total_bytes=total))

        response = await self.client.put(
            upload_url,
            content=stream(),
            headers={"Content-Type": "video/mp4", "Content-Length": str(total)},
        )
        response.raise_for_status()

    async def _wait_until_ready(self, asset_id: str) -> None:
        elapsed = 0.0
        while elapsed < self.ready_timeout:
            status = await self._get_asset_status(asset_id)
            phase = status.get("phase")

            if phase == "ready":
                return
            if phase == "failed":
                raise UploadError(
                    f"Livepeer failed to process asset {asset_id}: "
                    f"{status.get('errorMessage', 'unknown error')}"
                )

            await asyncio.sleep(self.poll_interval)
            elapsed += self.poll_interval

        raise UploadError(f"Asset {asset_id} not ready after {self.ready_timeout:.0f}s")

    @retry_api_call(max_retries=3, base_delay=1.0, retry_on=(httpx.TransportError,))
    async def _get_asset_status(self, asset_id: str) -> dict:
        response = await self.client.get(
            f"{self.api_base}/asset/{asset_id}", headers=self._headers
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise UploadError(f"Livepeer returned an unexpected status for asset {asset_id}")
        status = data.get("status")
        return status if isinstance(status, dict) else {}

    async def close(self) -> None:
        await self.client.aclose()
