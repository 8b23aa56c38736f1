"""Scene-to-video assembly pipeline."""

from scene_pipeline.assembler import SceneAssembler
from scene_pipeline.audio_mixer import AudioMixer
from scene_pipeline.duration_adjuster import AdjustMode, DurationAdjuster, build_atempo_chain
from scene_pipeline.errors import (
    AdjustmentError,
    AssemblyError,
    GenerationError,
    NoAudioProvided,
    PipelineError,
    ProbeError,
    UploadError,
)
from scene_pipeline.media_tools import FFmpegRunner, MediaToolError
from scene_pipeline.scene_audio import SceneAudioGenerator
from scene_pipeline.scene_video import SceneVideoGenerator
from scene_pipeline.workspace import BatchWorkspace

__all__ = [
    "AdjustMode",
    "AdjustmentError",
    "AssemblyError",
    "AudioMixer",
    "BatchWorkspace",
    "DurationAdjuster",
    "FFmpegRunner",
    "GenerationError",
    "MediaToolError",
    "NoAudioProvided",
    "PipelineError",
    "ProbeError",
    "SceneAssembler",
    "SceneAudioGenerator",
    "SceneVideoGenerator",
    "UploadError",
    "build_atempo_chain",
]
