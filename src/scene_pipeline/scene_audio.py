"""Per-scene audio: dialogue, sound effect, and their combination."""

import asyncio
import logging

from models.media import MediaAsset, SceneAudioResult
from models.scene import Scene
from scene_pipeline.audio_mixer import AudioMixer
from scene_pipeline.duration_adjuster import DurationAdjuster
from scene_pipeline.errors import GenerationError, NoAudioProvided, ProbeError
from scene_pipeline.media_tools import FFmpegRunner
from scene_pipeline.workspace import BatchWorkspace

logger = logging.getLogger(__name__)

DEFAULT_MAX_SCENE_AUDIO_SECONDS = 4.0


class SceneAudioGenerator:
    """Generates the audio track for a single scene.

    Dialogue is optional: a failed TTS call only costs the scene its voice.
    A sound effect is always requested. The combined track never runs longer
    than ``max_duration`` (plus tolerance) unless every trim attempt failed.
    """

    def __init__(
        self,
        tts_service,
        sound_effect_service,
        runner: FFmpegRunner,
        adjuster: DurationAdjuster,
        mixer: AudioMixer,
        max_duration: float = DEFAULT_MAX_SCENE_AUDIO_SECONDS,
    ):
        self.tts_service = tts_service
        self.sound_effect_service = sound_effect_service
        self.runner = runner
        self.adjuster = adjuster
        self.mixer = mixer
        self.max_duration = max_duration

    async def generate(
        self, scene: Scene, index: int, workspace: BatchWorkspace
    ) -> SceneAudioResult:
        """Produce dialogue, sound effect and combined track for one scene.

        Raises:
            NoAudioProvided: If neither track could be generated
        """
        dialogue, sound_effect = await asyncio.gather(
            self._dialogue_track(scene, index, workspace),
            self._sound_effect_track(scene, index, workspace),
        )

        cap = self.max_duration

        if dialogue is not None and dialogue.duration > cap:
            dialogue = await self.adjuster.speed_up_audio(
                dialogue, cap, workspace.path_for(index, "dialogue_fast", ".mp3")
            )

        if dialogue is not None and sound_effect is not None:
            # Dialogue sets the scene length; the effect is cut to match it
            sound_effect = await self.adjuster.trim_audio(
                sound_effect,
                dialogue.duration,
                workspace.path_for(index, "sfx_trimmed", ".mp3"),
            )
            combined = await self.mixer.mix(
                dialogue, sound_effect, workspace.path_for(index, "mix", ".mp3")
            )
        elif dialogue is not None:
            combined = dialogue
        elif sound_effect is not None:
            if sound_effect.duration > cap:
                sound_effect = await self.adjuster.trim_audio(
                    sound_effect, cap, workspace.path_for(index, "sfx_trimmed", ".mp3")
                )
            combined = sound_effect
        else:
            raise NoAudioProvided(f"Scene {index} has neither dialogue nor sound effect")

        if combined.duration > cap + self.adjuster.tolerance:
            combined = await self.adjuster.trim_audio(
                combined, cap, workspace.path_for(index, "audio_capped", ".mp3")
            )
            if combined.duration > cap + self.adjuster.tolerance:
                logger.warning(
                    f"Scene {index} audio is still {combined.duration:.2f}s (cap {cap:.2f}s)"
                )

        logger.info(
            f"Scene {index} audio ready: {combined.duration:.2f}s "
            f"(dialogue={'yes' if dialogue else 'no'}, "
            f"sound effect={'yes' if sound_effect else 'no'})"
        )
        return SceneAudioResult(
            dialogue=dialogue, sound_effect=sound_effect, combined=combined
        )

    async def _dialogue_track(
        self, scene: Scene, index: int, workspace: BatchWorkspace
    ) -> MediaAsset | None:
        if not scene.has_dialogue:
            return None
        try:
            path = await self.tts_service.render_dialogue(
                scene.dialogue, workspace.path_for(index, "dialogue", ".mp3")
            )
            return await self.runner.probe_asset(path)
        except (GenerationError, ProbeError) as e:
            logger.warning(f"Scene {index}: dialogue unavailable, continuing without it: {e}")
            return None

    async def _sound_effect_track(
        self, scene: Scene, index: int, workspace: BatchWorkspace
    ) -> MediaAsset | None:
        description = scene.sound_effect.strip() or f"Ambient sound for: {scene.prompt}"
        try:
            path = await self.sound_effect_service.render_sound_effect(
                description,
                min(scene.duration, self.max_duration),
                workspace.path_for(index, "sfx", ".mp3"),
            )
            return await self.runner.probe_asset(path)
        except (GenerationError, ProbeError) as e:
            logger.warning(f"Scene {index}: sound effect unavailable: {e}")
            return None
