"""Thin async wrapper around the ffmpeg and ffprobe command-line tools."""

import asyncio
import json
import logging
import shutil
import subprocess
from pathlib import Path

from models.media import MediaAsset
from scene_pipeline.errors import ProbeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120
PROBE_TIMEOUT = 30


class MediaToolError(Exception):
    """Raised when an ffmpeg invocation exits non-zero or times out."""


class FFmpegRunner:
    """Runs ffmpeg/ffprobe in a worker thread so the event loop stays free."""

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        ffprobe_bin: str = "ffprobe",
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(shutil.which(self.ffmpeg_bin) and shutil.which(self.ffprobe_bin))

    async def run(
        self, args: list[str], description: str = "", timeout: int | None = None
    ) -> None:
        """Run ffmpeg with the given arguments (without the binary name).

        Args:
            args: ffmpeg arguments, e.g. ``["-y", "-i", "in.mp4", "out.mp4"]``
            description: Human-readable description for logging
            timeout: Seconds before the process is killed

        Raises:
            MediaToolError: If ffmpeg returns a non-zero exit code or times out
        """
        cmd = [self.ffmpeg_bin, *args]
        await asyncio.to_thread(self._run_sync, cmd, description, timeout or self.timeout)

    def _run_sync(self, cmd: list[str], description: str, timeout: int) -> None:
        logger.info(f"FFmpeg: {description}")
        logger.debug(f"Command: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise MediaToolError(f"FFmpeg timed out after {timeout}s ({description})")
        except OSError as e:
            raise MediaToolError(f"FFmpeg could not be started ({description}): {e}")

        if result.returncode != 0:
            logger.error(f"FFmpeg stderr: {result.stderr[-1000:]}")
            raise MediaToolError(f"FFmpeg failed ({description}): {result.stderr[:500]}")

    async def probe_duration(self, path: Path) -> float:
        """Return the duration of a media file in seconds.

        Raises:
            ProbeError: If the file is missing or the duration cannot be read
        """
        return await asyncio.to_thread(self._probe_sync, Path(path))

    def _probe_sync(self, path: Path) -> float:
        if not path.exists():
            raise ProbeError(f"Could not determine duration: {path} does not exist")

        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=PROBE_TIMEOUT)
        except (subprocess.TimeoutExpired, OSError) as e:
            raise ProbeError(f"Could not determine duration of {path.name}: {e}")

        if result.returncode != 0:
            raise ProbeError(
                f"Could not determine duration of {path.name}: {result.stderr[:300]}"
            )

        try:
            data = json.loads(result.stdout)
            duration = float(data["format"]["duration"])
        except (ValueError, KeyError, TypeError):
            raise ProbeError(f"Could not determine duration of {path.name}")

        if duration < 0:
            raise ProbeError(f"Negative duration reported for {path.name}: {duration}")
        return duration

    async def probe_asset(self, path: Path) -> MediaAsset:
        """Probe a file and wrap it as a :class:`MediaAsset`."""
        duration = await self.probe_duration(path)
        return MediaAsset(path=Path(path), duration=duration)
