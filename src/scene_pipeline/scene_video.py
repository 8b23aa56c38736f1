"""Per-scene video: generate a clip and fit it to the scene's audio."""

import logging

from models.media import SceneVideoResult
from models.scene import Scene
from scene_pipeline.duration_adjuster import AdjustMode, DurationAdjuster
from scene_pipeline.errors import GenerationError, ProbeError
from scene_pipeline.media_tools import FFmpegRunner
from scene_pipeline.workspace import BatchWorkspace

logger = logging.getLogger(__name__)


class SceneVideoGenerator:
    """Requests a clip from the video generation API and retimes it."""

    def __init__(
        self,
        video_service,
        runner: FFmpegRunner,
        adjuster: DurationAdjuster,
        width: int = 576,
        height: int = 1024,
        fps: int = 24,
    ):
        self.video_service = video_service
        self.runner = runner
        self.adjuster = adjuster
        self.width = width
        self.height = height
        self.fps = fps

    async def generate(
        self, scene: Scene, index: int, workspace: BatchWorkspace
    ) -> SceneVideoResult:
        """Generate, download and probe the raw clip for a scene.

        Raises:
            GenerationError: If the API fails after retries or the clip is unreadable
        """
        asset_url = await self.video_service.generate_clip(
            prompt=scene.prompt,
            duration=scene.duration,
            width=self.width,
            height=self.height,
            fps=self.fps,
        )

        path = workspace.path_for(index, "raw", ".mp4")
        await self.video_service.download(asset_url, path)

        try:
            video = await self.runner.probe_asset(path)
        except ProbeError as e:
            raise GenerationError(f"Scene {index}: generated clip is unreadable: {e}") from e

        logger.info(f"Scene {index} video ready: {video.duration:.2f}s")
        return SceneVideoResult(video=video, index=index)

    async def fit_to_duration(
        self, result: SceneVideoResult, target: float, workspace: BatchWorkspace
    ) -> SceneVideoResult:
        """Retime a clip so it lasts exactly ``target`` seconds.

        The result is normalized to the output format unless both the retime
        and the plain re-encode failed, in which case the raw clip is returned
        with ``normalized=False``.
        """
        fitted = await self.adjuster.adjust_video(
            result.video,
            target,
            AdjustMode.FORCE_EXACT,
            workspace.path_for(result.index, "fitted", ".mp4"),
        )
        if fitted is result.video:
            # Already the right length (or retiming failed); still needs the common format
            fitted = await self.adjuster.normalize_video(
                result.video, workspace.path_for(result.index, "normalized", ".mp4")
            )

        normalized = fitted is not result.video
        if not normalized:
            logger.warning(f"Scene {result.index}: clip left in its source format")
        return SceneVideoResult(video=fitted, index=result.index, normalized=normalized)
