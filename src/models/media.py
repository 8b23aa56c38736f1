"""Media artifact models passed between pipeline stages."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class MediaAsset:
    """A media file on disk with its measured duration in seconds."""

    path: Path
    duration: float


@dataclass(frozen=True)
class AssetUrl:
    """Location of a remotely generated asset, normalised from a provider response."""

    asset_url: str


@dataclass
class SceneAudioResult:
    """Audio produced for one scene.

    ``combined`` is set whenever either track exists: it is the single track
    itself or the mix of both.
    """

    dialogue: MediaAsset | None = None
    sound_effect: MediaAsset | None = None
    combined: MediaAsset | None = None


@dataclass
class SceneVideoResult:
    """A generated video clip tagged with the index of the scene it belongs to.

    ``normalized`` is set once the clip has been re-encoded to the output size,
    frame rate and codec, which makes it safe for a stream-copy concat.
    """

    video: MediaAsset
    index: int
    normalized: bool = False


@dataclass(frozen=True)
class PlaybackReference:
    """Public playback location of an uploaded movie."""

    url: str
    playback_id: str
    asset_id: str | None = None


@dataclass(frozen=True)
class UploadProgress:
    """Bytes sent so far for an in-flight upload."""

    bytes_sent: int
    total_bytes: int

    @property
    def fraction(self) -> float:
        if self.total_bytes <= 0:
            return 1.0
        return min(1.0, self.bytes_sent / self.total_bytes)
