"""Shared pytest fixtures for moviegen tests."""

import math
import re
import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from models.media import MediaAsset  # noqa: E402
from scene_pipeline.errors import ProbeError  # noqa: E402
from scene_pipeline.media_tools import MediaToolError  # noqa: E402

FILTER_FLAGS = ("-af", "-filter:a", "-filter:v", "-filter_complex")


class FakeRunner:
    """Stands in for FFmpegRunner without spawning processes.

    Every ``run`` writes a small placeholder to the output path (the last
    argument) and records a simulated duration for it, derived from the
    filters in the command. ``probe_duration`` answers from those records.
    """

    def __init__(self, default_duration: float = 4.0):
        self.default_duration = default_duration
        self.durations: Dict[Path, float] = {}
        self.calls: list[list[str]] = []
        self.concat_lists: list[str] = []
        self.fail_when: Optional[Callable[[list[str]], bool]] = None
        self.write_output = True

    def register(self, path: Path, duration: float) -> MediaAsset:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            path.write_bytes(b"\x00" * 64)
        self.durations[path] = duration
        return MediaAsset(path=path, duration=duration)

    def is_available(self) -> bool:
        return True

    async def run(self, args: list[str], description: str = "", timeout: Optional[int] = None) -> None:
        args = list(args)
        self.calls.append(args)

        if "-f" in args and args[args.index("-f") + 1] == "concat":
            self.concat_lists.append(Path(args[args.index("-i") + 1]).read_text())

        if self.fail_when is not None and self.fail_when(args):
            raise MediaToolError(f"simulated failure ({description})")

        if not self.write_output:
            return

        output = Path(args[-1])
        output.write_bytes(b"\x01" * 64)
        self.durations[output] = self._simulate_duration(args)

    async def probe_duration(self, path: Path) -> float:
        path = Path(path)
        if not path.exists():
            raise ProbeError(f"Could not determine duration: {path} does not exist")
        return self.durations.get(path, self.default_duration)

    async def probe_asset(self, path: Path) -> MediaAsset:
        return MediaAsset(path=Path(path), duration=await self.probe_duration(path))

    def calls_matching(self, text: str) -> list[list[str]]:
        return [call for call in self.calls if any(text in arg for arg in call)]

    def _simulate_duration(self, args: list[str]) -> float:
        inputs = [Path(args[i + 1]) for i, arg in enumerate(args[:-1]) if arg == "-i"]
        input_durations = [self.durations.get(p, self.default_duration) for p in inputs]
        first = input_durations[0] if input_durations else self.default_duration

        if "-f" in args and args[args.index("-f") + 1] == "concat":
            known = {p.resolve(): d for p, d in self.durations.items()}
            listed = re.findall(r"^file '(.*)'$", inputs[0].read_text(), re.MULTILINE)
            return sum(known.get(Path(p).resolve(), self.default_duration) for p in listed)

        if "-t" in args:
            return float(args[args.index("-t") + 1])

        filters = " ".join(
            args[i + 1] for i, arg in enumerate(args[:-1]) if arg in FILTER_FLAGS
        )

        trim = re.search(r"atrim=0:([\d.]+)", filters)
        if trim:
            return min(first, float(trim.group(1)))
        if "amix" in filters:
            return max(input_durations)
        if "concat=" in filters:
            return sum(input_durations)

        tempos = [float(t) for t in re.findall(r"atempo=([\d.]+)", filters)]
        if tempos:
            return first / math.prod(tempos)

        setpts = re.search(r"setpts=([\d.]+)\*PTS", filters)
        if setpts:
            return first * float(setpts.group(1))

        return first


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_runner() -> FakeRunner:
    """An ffmpeg runner that simulates output durations."""
    return FakeRunner()


@pytest.fixture
def sample_config(temp_dir) -> Dict:
    """Sample configuration for testing."""
    return {
        "fal_key": "test_fal_key",
        "fal_video_model": "fal-ai/fast-svd/text-to-video",
        "livepeer_api_key": "test_livepeer_key",
        "livepeer_tts_url": "https://gateway.example.com/text-to-speech",
        "livepeer_api_base": "https://livepeer.example.com/api",
        "elevenlabs_api_key": "test_elevenlabs_key",
        "grok_api_key": "test_grok_key",
        "grok_model": "grok-2",
        "output_dir": str(temp_dir / "output"),
        "work_dir": str(temp_dir / "work"),
        "request_db_path": str(temp_dir / "requests.db"),
        "max_scene_audio_seconds": 4.0,
        "duration_tolerance": 0.1,
        "video_width": 576,
        "video_height": 1024,
        "video_fps": 24,
        "dialogue_gain": 1.5,
        "sound_effect_gain": 0.8,
        "generation_max_attempts": 3,
        "generation_retry_delay": 0.0,
        "ffmpeg_timeout": 120,
        "concat_timeout": 300,
        "upload_ready_timeout": 5,
        "keep_final_output": True,
        "log_level": "INFO",
    }
