# Data models for moviegen
from .scene import Dialogue, Scene, Story
from .media import (
    AssetUrl,
    MediaAsset,
    PlaybackReference,
    SceneAudioResult,
    SceneVideoResult,
    UploadProgress,
)

__all__ = [
    "Dialogue",
    "Scene",
    "Story",
    "AssetUrl",
    "MediaAsset",
    "PlaybackReference",
    "SceneAudioResult",
    "SceneVideoResult",
    "UploadProgress",
]
