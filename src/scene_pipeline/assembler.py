"""Scene assembly orchestration.

Takes an ordered list of scenes and produces one uploaded movie:

1. For every scene, generate audio and video concurrently
2. Force the video to the length of the scene's combined audio
3. Mux each video with its audio
4. Concatenate the surviving scene clips in their original order
5. Upload the result

A scene that fails anywhere is dropped. The batch only fails when no scene
survives or the upload is rejected. Intermediates live in a per-batch
workspace that is removed before uploading. The final movie is written to
``output_dir`` and kept on disk if the upload fails.
"""

import asyncio
import logging
import shutil
from datetime import datetime
from pathlib import Path

from models.media import PlaybackReference
from models.scene import Scene
from scene_pipeline.errors import AssemblyError
from scene_pipeline.media_tools import FFmpegRunner, MediaToolError
from scene_pipeline.scene_audio import SceneAudioGenerator
from scene_pipeline.scene_video import SceneVideoGenerator
from scene_pipeline.workspace import BatchWorkspace

logger = logging.getLogger(__name__)

MUX_TIMEOUT = 60
CONCAT_TIMEOUT = 300


class SceneAssembler:
    """Turns a scene list into a single hosted movie."""

    def __init__(
        self,
        audio_generator: SceneAudioGenerator,
        video_generator: SceneVideoGenerator,
        runner: FFmpegRunner,
        uploader,
        output_dir: Path | None = None,
        work_dir: Path | None = None,
        width: int = 576,
        height: int = 1024,
        fps: int = 24,
        mux_timeout: int = MUX_TIMEOUT,
        concat_timeout: int = CONCAT_TIMEOUT,
        keep_final_output: bool = True,
    ):
        self.audio_generator = audio_generator
        self.video_generator = video_generator
        self.runner = runner
        self.uploader = uploader
        self.output_dir = Path(output_dir) if output_dir else Path("output")
        self.work_dir = Path(work_dir) if work_dir else None
        self.width = width
        self.height = height
        self.fps = fps
        self.mux_timeout = mux_timeout
        self.concat_timeout = concat_timeout
        self.keep_final_output = keep_final_output

    async def assemble(self, scenes: list[Scene], name: str | None = None) -> PlaybackReference:
        """Build the movie for ``scenes`` and upload it.

        Args:
            scenes: Scenes in playback order
            name: Base filename for the assembled movie (without extension)

        Returns:
            Playback reference from the hosting service

        Raises:
            AssemblyError: If no scene could be built
            UploadError: If the upload fails; the assembled file is kept
        """
        output_path = await self.render(scenes, name)

        logger.info(f"Uploading {output_path.name}")
        playback = await self.uploader.upload(output_path)
        logger.info(f"Movie available at {playback.url}")

        if not self.keep_final_output:
            output_path.unlink(missing_ok=True)
        return playback

    async def render(self, scenes: list[Scene], name: str | None = None) -> Path:
        """Build the movie file for ``scenes`` without uploading it.

        Raises:
            AssemblyError: If the list is empty or every scene failed
        """
        if not scenes:
            raise AssemblyError("no scenes to assemble")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        name = name or f"movie_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}"
        output_path = self.output_dir / f"{name}.mp4"

        logger.info(f"Assembling {len(scenes)} scenes into {output_path.name}")

        async with BatchWorkspace(root=self.work_dir) as workspace:
            outcomes = await asyncio.gather(
                *(
                    self._build_scene_or_none(scene, index, workspace)
                    for index, scene in enumerate(scenes)
                )
            )

            # gather preserves input order, so clips stay in scene order
            built = [outcome for outcome in outcomes if outcome is not None]
            if not built:
                raise AssemblyError("no scenes succeeded")

            logger.info(f"{len(built)}/{len(scenes)} scenes succeeded")
            clips = [clip for clip, _ in built]
            uniform = all(normalized for _, normalized in built)
            await self._concatenate(clips, output_path, workspace, uniform=uniform)

        return output_path

    # ------------------------------------------------------------------
    # Per-scene pipeline
    # ------------------------------------------------------------------

    async def _build_scene_or_none(
        self, scene: Scene, index: int, workspace: BatchWorkspace
    ) -> tuple[Path, bool] | None:
        try:
            return await self._build_scene(scene, index, workspace)
        except Exception as e:
            logger.warning(f"Scene {index} dropped: {type(e).__name__}: {e}")
            return None

    async def _build_scene(
        self, scene: Scene, index: int, workspace: BatchWorkspace
    ) -> tuple[Path, bool]:
        """Build one muxed clip. Also reports whether its video was normalized."""
        audio, video = await asyncio.gather(
            self.audio_generator.generate(scene, index, workspace),
            self.video_generator.generate(scene, index, workspace),
            return_exceptions=True,
        )
        for outcome in (audio, video):
            if isinstance(outcome, BaseException):
                raise outcome

        fitted = await self.video_generator.fit_to_duration(
            video, audio.combined.duration, workspace
        )

        clip_path = workspace.path_for(index, "clip", ".mp4")
        await self._mux(fitted.video.path, audio.combined.path, clip_path, index)
        return clip_path, fitted.normalized

    async def _mux(self, video_path: Path, audio_path: Path, output_path: Path, index: int) -> None:
        """Attach the scene's audio to its video without re-encoding the video."""
        cmd = [
            "-y",
            "-i", str(video_path),
            "-i", str(audio_path),
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", "192k",
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-shortest",
            str(output_path),
        ]
        await self.runner.run(cmd, f"mux scene {index}", timeout=self.mux_timeout)
        if not output_path.exists() or output_path.stat().st_size == 0:
            raise MediaToolError(f"Muxed clip for scene {index} was not written")

    # ------------------------------------------------------------------
    # Concatenation
    # ------------------------------------------------------------------

    async def _concatenate(
        self,
        clips: list[Path],
        output_path: Path,
        workspace: BatchWorkspace,
        uniform: bool = True,
    ) -> None:
        """Join clips in order.

        Tries a lossless concat-demuxer copy first, then a re-encoding concat
        filter. If both fail the first clip becomes the movie. The copy is only
        attempted when ``uniform`` says every clip shares the output format.
        """
        if len(clips) == 1:
            await asyncio.to_thread(shutil.copy2, str(clips[0]), str(output_path))
            return

        if uniform:
            try:
                await self._concat_demuxer(clips, output_path, workspace)
                return
            except MediaToolError as e:
                logger.warning(f"Lossless concat failed, re-encoding instead: {e}")
        else:
            logger.info("Clips differ in format, concatenating with re-encode")

        try:
            await self._concat_filter(clips, output_path)
            return
        except MediaToolError as e:
            logger.error(f"Concat filter failed, falling back to the first scene: {e}")

        await asyncio.to_thread(shutil.copy2, str(clips[0]), str(output_path))

    async def _concat_demuxer(
        self, clips: list[Path], output_path: Path, workspace: BatchWorkspace
    ) -> None:
        concat_file = workspace.file("concat.txt")
        lines = []
        for clip in clips:
            escaped = str(clip.resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        concat_file.write_text("\n".join(lines) + "\n")

        cmd = [
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_file),
            "-c", "copy",
            str(output_path),
        ]
        await self.runner.run(
            cmd, f"concatenate {len(clips)} scenes (copy)", timeout=self.concat_timeout
        )

    async def _concat_filter(self, clips: list[Path], output_path: Path) -> None:
        inputs: list[str] = []
        chains: list[str] = []
        labels: list[str] = []
        for i, clip in enumerate(clips):
            inputs += ["-i", str(clip)]
            chains.append(
                f"[{i}:v]scale={self.width}:{self.height}:force_original_aspect_ratio=decrease,"
                f"pad={self.width}:{self.height}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={self.fps}[v{i}]"
            )
            chains.append(f"[{i}:a]aresample=44100[a{i}]")
            labels.append(f"[v{i}][a{i}]")

        filter_complex = ";".join(chains) + ";" + "".join(labels) + (
            f"concat=n={len(clips)}:v=1:a=1[outv][outa]"
        )

        cmd = [
            "-y",
            *inputs,
            "-filter_complex", filter_complex,
            "-map", "[outv]",
            "-map", "[outa]",
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", "192k",
            str(output_path),
        ]
        await self.runner.run(
            cmd, f"concatenate {len(clips)} scenes (re-encode)", timeout=self.concat_timeout
        )
