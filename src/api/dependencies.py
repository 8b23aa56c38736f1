"""Service singletons and dependency injection for the moviegen API and CLI."""

from pathlib import Path

from scene_pipeline.assembler import SceneAssembler
from scene_pipeline.audio_mixer import AudioMixer
from scene_pipeline.duration_adjuster import DurationAdjuster
from scene_pipeline.media_tools import FFmpegRunner
from scene_pipeline.scene_audio import SceneAudioGenerator
from scene_pipeline.scene_video import SceneVideoGenerator
from services.livepeer_uploader import LivepeerUploader
from services.movie_request_processor import MovieRequestProcessor
from services.request_store import SQLiteRequestStore
from services.sound_effect_service import SoundEffectService
from services.story_service import StoryService
from services.tts_service import TTSService
from services.video_gen_service import VideoGenService
from utils.config import load_config
from utils.retry import RetryPolicy

# Service singletons
_config: dict | None = None
_runner: FFmpegRunner | None = None
_video_gen_service: VideoGenService | None = None
_tts_service: TTSService | None = None
_sound_effect_service: SoundEffectService | None = None
_story_service: StoryService | None = None
_uploader: LivepeerUploader | None = None
_assembler: SceneAssembler | None = None
_request_store: SQLiteRequestStore | None = None
_processor: MovieRequestProcessor | None = None


def get_config() -> dict:
    """Get the loaded configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_runner() -> FFmpegRunner:
    global _runner
    if _runner is None:
        _runner = FFmpegRunner(timeout=get_config()["ffmpeg_timeout"])
    return _runner


def get_video_gen_service() -> VideoGenService:
    """Get or create the video generation service instance."""
    global _video_gen_service
    if _video_gen_service is None:
        config = get_config()
        _video_gen_service = VideoGenService(
            api_key=config.get("fal_key", ""),
            model=config["fal_video_model"],
            retry_policy=RetryPolicy.from_config(config),
        )
    return _video_gen_service


def get_tts_service() -> TTSService:
    """Get or create the TTS service instance."""
    global _tts_service
    if _tts_service is None:
        config = get_config()
        _tts_service = TTSService(
            api_key=config.get("livepeer_api_key", ""),
            url=config["livepeer_tts_url"],
            retry_policy=RetryPolicy.from_config(config),
        )
    return _tts_service


def get_sound_effect_service() -> SoundEffectService:
    """Get or create the sound effect service instance."""
    global _sound_effect_service
    if _sound_effect_service is None:
        config = get_config()
        _sound_effect_service = SoundEffectService(
            api_key=config.get("elevenlabs_api_key", ""),
            fallback_tts=get_tts_service(),
            retry_policy=RetryPolicy.from_config(config),
        )
    return _sound_effect_service


def get_story_service() -> StoryService:
    """Get or create the story service instance."""
    global _story_service
    if _story_service is None:
        config = get_config()
        _story_service = StoryService(
            api_key=config.get("grok_api_key", ""),
            model=config["grok_model"],
            retry_policy=RetryPolicy.from_config(config),
        )
    return _story_service


def get_uploader() -> LivepeerUploader:
    """Get or create the Livepeer uploader instance."""
    global _uploader
    if _uploader is None:
        config = get_config()
        _uploader = LivepeerUploader(
            api_key=config.get("livepeer_api_key", ""),
            api_base=config["livepeer_api_base"],
            ready_timeout=config["upload_ready_timeout"],
        )
    return _uploader


def get_assembler() -> SceneAssembler:
    """Get or create the scene assembler, wired from configuration."""
    global _assembler
    if _assembler is None:
        config = get_config()
        runner = get_runner()
        adjuster = DurationAdjuster(
            runner,
            tolerance=config["duration_tolerance"],
            width=config["video_width"],
            height=config["video_height"],
            fps=config["video_fps"],
        )
        audio_generator = SceneAudioGenerator(
            tts_service=get_tts_service(),
            sound_effect_service=get_sound_effect_service(),
            runner=runner,
            adjuster=adjuster,
            mixer=AudioMixer(
                runner,
                dialogue_gain=config["dialogue_gain"],
                sound_effect_gain=config["sound_effect_gain"],
            ),
            max_duration=config["max_scene_audio_seconds"],
        )
        video_generator = SceneVideoGenerator(
            video_service=get_video_gen_service(),
            runner=runner,
            adjuster=adjuster,
            width=config["video_width"],
            height=config["video_height"],
            fps=config["video_fps"],
        )
        _assembler = SceneAssembler(
            audio_generator=audio_generator,
            video_generator=video_generator,
            runner=runner,
            uploader=get_uploader(),
            output_dir=Path(config["output_dir"]),
            work_dir=Path(config["work_dir"]),
            width=config["video_width"],
            height=config["video_height"],
            fps=config["video_fps"],
            concat_timeout=config["concat_timeout"],
            keep_final_output=config["keep_final_output"],
        )
    return _assembler


async def get_request_store() -> SQLiteRequestStore:
    """Get or create the request store, connecting on first use."""
    global _request_store
    if _request_store is None:
        _request_store = SQLiteRequestStore(get_config()["request_db_path"])
        await _request_store.connect()
    return _request_store


async def get_processor() -> MovieRequestProcessor:
    """Get or create the creation request processor."""
    global _processor
    if _processor is None:
        _processor = MovieRequestProcessor(
            story_service=get_story_service(),
            assembler=get_assembler(),
            store=await get_request_store(),
        )
    return _processor


async def close_services() -> None:
    """Close HTTP clients and the database. Call on shutdown."""
    global _video_gen_service, _tts_service, _sound_effect_service
    global _story_service, _uploader, _request_store, _assembler, _processor

    for service in (_video_gen_service, _tts_service, _sound_effect_service, _story_service, _uploader):
        if service is not None:
            await service.close()
    if _request_store is not None:
        await _request_store.close()

    _video_gen_service = _tts_service = _sound_effect_service = None
    _story_service = _uploader = _request_store = None
    _assembler = _processor = None
