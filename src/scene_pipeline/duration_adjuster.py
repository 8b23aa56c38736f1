"""Retime, pad, speed up and trim media to hit target durations.

Every operation here is best-effort. When ffmpeg fails or produces an empty
file, the caller gets the untouched input back and a warning in the log.
Within the tolerance window an operation is a no-op and spawns no process.
"""

import logging
from enum import Enum
from pathlib import Path

from models.media import MediaAsset
from scene_pipeline.errors import AdjustmentError, ProbeError
from scene_pipeline.media_tools import FFmpegRunner, MediaToolError

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.1

# ffmpeg's atempo filter only accepts factors in this range per instance
MIN_ATEMPO = 0.5
MAX_ATEMPO = 2.0

# Extend-only never slows a clip down by more than this
MAX_EXTEND_FACTOR = 5.0

# Seconds of cloned last frame appended before the hard -t cut
FORCE_EXACT_PAD_SECONDS = 1.0

VIDEO_PRESET = "medium"
VIDEO_CRF = 22
AUDIO_BITRATE = "192k"


class AdjustMode(str, Enum):
    """How a video clip is brought to its target duration."""

    SPEED_CHANGE = "speed-change"
    FORCE_EXACT = "force-exact"
    EXTEND_ONLY = "extend-only"


def build_atempo_chain(factor: float) -> str:
    """Build an atempo filter chain for an arbitrary tempo factor.

    Each atempo instance is limited to [0.5, 2.0], so larger changes are split
    into several steps whose product equals ``factor``.

    >>> build_atempo_chain(2.5)
    'atempo=2.0,atempo=1.25'
    """
    if factor <= 0:
        raise ValueError(f"Tempo factor must be positive, got {factor}")

    steps: list[float] = []
    remaining = factor
    while remaining > MAX_ATEMPO:
        steps.append(MAX_ATEMPO)
        remaining /= MAX_ATEMPO
    while remaining < MIN_ATEMPO:
        steps.append(MIN_ATEMPO)
        remaining /= MIN_ATEMPO
    steps.append(remaining)

    return ",".join(f"atempo={round(step, 6)}" for step in steps)


class DurationAdjuster:
    """Duration reconciliation for scene video and audio tracks."""

    def __init__(
        self,
        runner: FFmpegRunner,
        tolerance: float = DEFAULT_TOLERANCE,
        width: int = 576,
        height: int = 1024,
        fps: int = 24,
        max_extend_factor: float = MAX_EXTEND_FACTOR,
    ):
        self.runner = runner
        self.tolerance = tolerance
        self.width = width
        self.height = height
        self.fps = fps
        self.max_extend_factor = max_extend_factor

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    async def adjust_video(
        self,
        asset: MediaAsset,
        target: float,
        mode: AdjustMode,
        output_path: Path,
        keep_audio: bool = False,
    ) -> MediaAsset:
        """Bring a video clip to ``target`` seconds.

        Args:
            asset: Source clip with its measured duration
            target: Desired duration in seconds
            mode: speed-change, force-exact or extend-only
            output_path: Where the adjusted clip is written
            keep_audio: Retime the clip's own audio instead of dropping it

        Returns:
            The adjusted clip, or ``asset`` itself when no change was needed
            or the adjustment failed.
        """
        mode = AdjustMode(mode)
        current = asset.duration

        if target <= 0 or current <= 0:
            logger.warning(
                f"Cannot adjust {asset.path.name}: current={current:.2f}s target={target:.2f}s"
            )
            return asset

        if abs(current - target) < self.tolerance:
            logger.debug(f"{asset.path.name} already {current:.2f}s (target {target:.2f}s)")
            return asset

        if mode is AdjustMode.EXTEND_ONLY and current >= target - self.tolerance:
            logger.debug(f"{asset.path.name} is {current:.2f}s, no extension needed")
            return asset

        factor = target / current
        if mode is AdjustMode.EXTEND_ONLY and factor > self.max_extend_factor:
            logger.warning(
                f"Extension factor {factor:.2f} for {asset.path.name} limited to "
                f"{self.max_extend_factor}"
            )
            factor = self.max_extend_factor

        video_filter = f"setpts={factor:.6f}*PTS"
        if mode is AdjustMode.FORCE_EXACT:
            video_filter += (
                f",{self._format_filter()}"
                f",tpad=stop_mode=clone:stop_duration={FORCE_EXACT_PAD_SECONDS}"
            )

        args = ["-y", "-i", str(asset.path), "-filter:v", video_filter]
        if keep_audio:
            args += ["-filter:a", build_atempo_chain(1.0 / factor)]
        else:
            args += ["-an"]
        if mode is AdjustMode.FORCE_EXACT:
            args += ["-t", f"{target:.3f}"]
        args += [*self._encode_args(), str(output_path)]

        description = (
            f"{mode.value} {asset.path.name} {current:.2f}s -> {target:.2f}s "
            f"(factor {factor:.3f})"
        )
        return await self._transform(asset, args, output_path, description)

    async def normalize_video(self, asset: MediaAsset, output_path: Path) -> MediaAsset:
        """Re-encode a clip to the output size, frame rate and codec without retiming it.

        Returns ``asset`` itself if the re-encode fails.
        """
        args = [
            "-y",
            "-i", str(asset.path),
            "-filter:v", self._format_filter(),
            "-an",
            *self._encode_args(),
            str(output_path),
        ]
        return await self._transform(asset, args, output_path, f"normalize {asset.path.name}")

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    async def change_audio_tempo(
        self, asset: MediaAsset, factor: float, output_path: Path
    ) -> MediaAsset:
        """Play an audio track ``factor`` times faster (or slower below 1.0)."""
        if factor <= 0:
            logger.warning(f"Ignoring invalid tempo factor {factor} for {asset.path.name}")
            return asset
        if abs(asset.duration - asset.duration / factor) < self.tolerance:
            return asset

        args = [
            "-y", "-i", str(asset.path),
            "-filter:a", build_atempo_chain(factor),
            "-c:a", "libmp3lame",
            "-b:a", AUDIO_BITRATE,
            str(output_path),
        ]
        return await self._transform(
            asset, args, output_path, f"tempo x{factor:.3f} {asset.path.name}"
        )

    async def speed_up_audio(
        self, asset: MediaAsset, max_duration: float, output_path: Path
    ) -> MediaAsset:
        """Speed up an audio track so it lasts at most ``max_duration`` seconds."""
        if max_duration <= 0 or asset.duration - max_duration < self.tolerance:
            return asset
        factor = asset.duration / max_duration
        logger.info(
            f"Speeding up {asset.path.name} {asset.duration:.2f}s -> {max_duration:.2f}s"
        )
        return await self.change_audio_tempo(asset, factor, output_path)

    async def trim_audio(
        self, asset: MediaAsset, target: float, output_path: Path
    ) -> MediaAsset:
        """Cut an audio track down to its first ``target`` seconds."""
        if target <= 0 or asset.duration - target < self.tolerance:
            return asset

        args = [
            "-y", "-i", str(asset.path),
            "-af", f"atrim=0:{target:.3f},asetpts=PTS-STARTPTS",
            "-c:a", "libmp3lame",
            "-b:a", AUDIO_BITRATE,
            str(output_path),
        ]
        return await self._transform(
            asset, args, output_path, f"trim {asset.path.name} to {target:.2f}s"
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _format_filter(self) -> str:
        return (
            f"scale={self.width}:{self.height}:force_original_aspect_ratio=decrease"
            f",pad={self.width}:{self.height}:(ow-iw)/2:(oh-ih)/2"
            f",setsar=1,fps={self.fps}"
        )

    def _encode_args(self) -> list[str]:
        return [
            "-c:v", "libx264",
            "-preset", VIDEO_PRESET,
            "-crf", str(VIDEO_CRF),
            "-pix_fmt", "yuv420p",
        ]

    async def _transform(
        self, asset: MediaAsset, args: list[str], output_path: Path, description: str
    ) -> MediaAsset:
        try:
            await self.runner.run(args, description)
            return await self._verify_output(output_path)
        except (MediaToolError, ProbeError, AdjustmentError) as e:
            logger.warning(f"{description} failed, keeping original: {e}")
            return asset

    async def _verify_output(self, output_path: Path) -> MediaAsset:
        output_path = Path(output_path)
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise AdjustmentError(f"{output_path.name} is missing or empty")
        return await self.runner.probe_asset(output_path)
