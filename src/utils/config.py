"""Configuration loading and validation for moviegen."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from rich.logging import RichHandler

# Get the project root directory (parent of src)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")


def load_config() -> dict:
    """Load configuration from environment variables."""

    # Helper function to resolve paths relative to project root
    def resolve_path(path: str | None, default_relative: str) -> str:
        if not path:
            return str(PROJECT_ROOT / default_relative)
        if Path(path).is_absolute():
            return path
        return str(PROJECT_ROOT / path)

    config = {
        # Video generation (fal.ai queue API)
        "fal_key": os.getenv("FAL_KEY"),
        "fal_video_model": os.getenv("FAL_VIDEO_MODEL", "fal-ai/fast-svd/text-to-video"),
        # Livepeer: TTS gateway and asset hosting
        "livepeer_api_key": os.getenv("LIVEPEER_API_KEY"),
        "livepeer_tts_url": os.getenv(
            "LIVEPEER_TTS_URL", "https://dream-gateway.livepeer.cloud/text-to-speech"
        ),
        "livepeer_api_base": os.getenv("LIVEPEER_API_BASE", "https://livepeer.studio/api"),
        # Sound effects
        "elevenlabs_api_key": os.getenv("ELEVENLABS_API_KEY"),
        # Story generation
        "grok_api_key": os.getenv("GROK_API_KEY"),
        "grok_model": os.getenv("GROK_MODEL", "grok-2"),
        # Local storage
        "output_dir": resolve_path(os.getenv("OUTPUT_DIR"), "output"),
        "work_dir": resolve_path(os.getenv("WORK_DIR"), "output/.work"),
        "request_db_path": resolve_path(os.getenv("REQUEST_DB_PATH"), ".moviegen/requests.db"),
        # Scene timing
        "max_scene_audio_seconds": float(os.getenv("MAX_SCENE_AUDIO_SECONDS", "4.0")),
        "duration_tolerance": float(os.getenv("DURATION_TOLERANCE", "0.1")),
        # Output format (portrait)
        "video_width": int(os.getenv("VIDEO_WIDTH", "576")),
        "video_height": int(os.getenv("VIDEO_HEIGHT", "1024")),
        "video_fps": int(os.getenv("VIDEO_FPS", "24")),
        # Audio mix levels
        "dialogue_gain": float(os.getenv("DIALOGUE_GAIN", "1.5")),
        "sound_effect_gain": float(os.getenv("SOUND_EFFECT_GAIN", "0.8")),
        # Retry policy for generation APIs
        "generation_max_attempts": int(os.getenv("GENERATION_MAX_ATTEMPTS", "3")),
        "generation_retry_delay": float(os.getenv("GENERATION_RETRY_DELAY", "3.0")),
        # Subprocess / upload timeouts (seconds)
        "ffmpeg_timeout": int(os.getenv("FFMPEG_TIMEOUT", "120")),
        "concat_timeout": int(os.getenv("CONCAT_TIMEOUT", "300")),
        "upload_ready_timeout": int(os.getenv("UPLOAD_READY_TIMEOUT", "300")),
        # Keep the assembled movie on disk after upload
        "keep_final_output": os.getenv("KEEP_FINAL_OUTPUT", "true").lower() == "true",
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
    }

    return config


def validate_config(config: dict, require_story: bool = False) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    # Check required API keys
    if not config.get("fal_key"):
        errors.append("FAL_KEY is required for video generation")
    if not config.get("livepeer_api_key"):
        errors.append("LIVEPEER_API_KEY is required for TTS and upload")
    if require_story and not config.get("grok_api_key"):
        errors.append("GROK_API_KEY is required to generate stories from prompts")

    if config.get("max_scene_audio_seconds", 0) <= 0:
        errors.append("MAX_SCENE_AUDIO_SECONDS must be positive")
    if config.get("generation_max_attempts", 0) < 1:
        errors.append("GENERATION_MAX_ATTEMPTS must be at least 1")

    # Validate local paths
    for key, env_name in (("output_dir", "OUTPUT_DIR"), ("work_dir", "WORK_DIR")):
        if not config.get(key):
            continue
        try:
            Path(config[key]).mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Cannot create {env_name}: {e}")

    return errors


def setup_logging(log_level: str = "INFO") -> None:
    """Set up logging configuration with Rich for terminal output."""
    # Clear any existing handlers
    logging.root.handlers.clear()

    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )

    # File handler for plain text logging
    log_dir = PROJECT_ROOT / "output"
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "moviegen.log")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[rich_handler, file_handler],
        format="%(message)s",
    )

    # Suppress noisy third-party loggers
    noisy_loggers = [
        "httpx",
        "httpcore",
        "aiosqlite",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
