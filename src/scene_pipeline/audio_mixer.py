"""Mix a scene's dialogue and sound effect into one track."""

import asyncio
import logging
import shutil
from pathlib import Path

from models.media import MediaAsset
from scene_pipeline.errors import NoAudioProvided, ProbeError
from scene_pipeline.media_tools import FFmpegRunner, MediaToolError

logger = logging.getLogger(__name__)

DEFAULT_DIALOGUE_GAIN = 1.5
DEFAULT_SOUND_EFFECT_GAIN = 0.8


class AudioMixer:
    """Overlays dialogue on a sound effect with fixed gains.

    The mixed track is as long as the longer input. If ffmpeg fails the
    dialogue is used on its own.
    """

    def __init__(
        self,
        runner: FFmpegRunner,
        dialogue_gain: float = DEFAULT_DIALOGUE_GAIN,
        sound_effect_gain: float = DEFAULT_SOUND_EFFECT_GAIN,
    ):
        self.runner = runner
        self.dialogue_gain = dialogue_gain
        self.sound_effect_gain = sound_effect_gain

    def build_filter(self) -> str:
        return (
            f"[0:a]volume={self.dialogue_gain}[dialogue];"
            f"[1:a]volume={self.sound_effect_gain}[sfx];"
            f"[dialogue][sfx]amix=inputs=2:duration=longest[out]"
        )

    async def mix(
        self,
        dialogue: MediaAsset | None,
        sound_effect: MediaAsset | None,
        output_path: Path,
    ) -> MediaAsset:
        """Combine the available tracks into ``output_path``.

        Args:
            dialogue: Spoken line, if any
            sound_effect: Ambient/effect track, if any
            output_path: Destination for the combined track

        Returns:
            The mixed track, or a copy of the single available track

        Raises:
            NoAudioProvided: If both inputs are None
        """
        if dialogue is None and sound_effect is None:
            raise NoAudioProvided("Neither dialogue nor sound effect provided")

        if dialogue is None or sound_effect is None:
            return await self._copy_through(dialogue or sound_effect, output_path)

        cmd = [
            "-y",
            "-i", str(dialogue.path),
            "-i", str(sound_effect.path),
            "-filter_complex", self.build_filter(),
            "-map", "[out]",
            "-c:a", "libmp3lame",
            "-b:a", "192k",
            str(output_path),
        ]

        try:
            await self.runner.run(cmd, f"mix {dialogue.path.name} + {sound_effect.path.name}")
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise MediaToolError(f"{output_path.name} was not written")
            return await self.runner.probe_asset(output_path)
        except (MediaToolError, ProbeError) as e:
            logger.warning(f"Audio mix failed, falling back to dialogue only: {e}")
            return await self._copy_through(dialogue, output_path)

    async def _copy_through(self, asset: MediaAsset, output_path: Path) -> MediaAsset:
        if Path(asset.path) != Path(output_path):
            await asyncio.to_thread(shutil.copy2, str(asset.path), str(output_path))
        return MediaAsset(path=Path(output_path), duration=asset.duration)
