"""Unit tests for TTSService and SoundEffectService."""

import json

import httpx
import pytest

from models.scene import Dialogue
from scene_pipeline.errors import GenerationError
from services.sound_effect_service import (
    ELEVENLABS_SOUND_URL,
    FALLBACK_VOICE_DESCRIPTION,
    SoundEffectService,
)
from services.tts_service import (
    DEFAULT_TTS_MODEL,
    TTSService,
    TTSServiceError,
    normalize_livepeer_audio,
)
from utils.retry import RetryPolicy

TTS_URL = "https://gateway.example.com/text-to-speech"
AUDIO_BYTES = b"ID3" + b"\x00" * 64


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _tts_handler(requests, fail_posts=0):
    state = {"fail": fail_posts}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            if state["fail"] > 0:
                state["fail"] -= 1
                return httpx.Response(500, text="pipeline busy")
            return httpx.Response(200, json={"audio": {"url": "/stream/abc/out.wav"}})
        if request.url.path == "/stream/abc/out.wav":
            return httpx.Response(200, content=AUDIO_BYTES)
        return httpx.Response(404)

    return handler


def _tts(handler, attempts=1) -> TTSService:
    return TTSService(
        api_key="lp-key",
        url=TTS_URL,
        retry_policy=RetryPolicy(max_attempts=attempts, base_delay=0.0),
        client=_client(handler),
    )


@pytest.mark.unit
def test_normalize_resolves_relative_url():
    asset = normalize_livepeer_audio({"audio": {"url": "/stream/x.wav"}}, TTS_URL)
    assert asset.asset_url == "https://gateway.example.com/stream/x.wav"

    absolute = normalize_livepeer_audio({"audio": {"url": "https://cdn.example.com/x.wav"}}, TTS_URL)
    assert absolute.asset_url == "https://cdn.example.com/x.wav"

    with pytest.raises(TTSServiceError):
        normalize_livepeer_audio({}, TTS_URL)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_render_dialogue_downloads_audio(temp_dir):
    requests = []
    service = _tts(_tts_handler(requests))
    dest = temp_dir / "scene_000_dialogue.mp3"
    try:
        path = await service.render_dialogue(Dialogue("Hello", "a deep voice"), dest)
    finally:
        await service.close()

    assert path == dest
    assert dest.read_bytes() == AUDIO_BYTES
    body = json.loads(requests[0].content)
    assert body == {"model_id": DEFAULT_TTS_MODEL, "text": "Hello", "description": "a deep voice"}
    assert requests[0].headers["Authorization"] == "Bearer lp-key"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_render_dialogue_retries_then_succeeds(temp_dir):
    requests = []
    service = _tts(_tts_handler(requests, fail_posts=2), attempts=3)
    try:
        await service.render_dialogue(Dialogue("Hello"), temp_dir / "d.mp3")
    finally:
        await service.close()

    assert sum(1 for r in requests if r.method == "POST") == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_render_dialogue_failure_raises_generation_error(temp_dir):
    service = _tts(_tts_handler([], fail_posts=10), attempts=2)
    try:
        with pytest.raises(GenerationError, match="pipeline busy"):
            await service.render_dialogue(Dialogue("Hello"), temp_dir / "d.mp3")
    finally:
        await service.close()


# ---------------------------------------------------------------------------
# Sound effects
# ---------------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sound_effect_from_elevenlabs(temp_dir):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, content=AUDIO_BYTES)

    service = SoundEffectService(
        api_key="xi-key",
        retry_policy=RetryPolicy(max_attempts=1, base_delay=0.0),
        client=_client(handler),
    )
    dest = temp_dir / "sfx.mp3"
    try:
        await service.render_sound_effect("thunder", 30.0, dest)
    finally:
        await service.close()

    assert dest.read_bytes() == AUDIO_BYTES
    assert str(requests[0].url) == ELEVENLABS_SOUND_URL
    assert requests[0].headers["xi-api-key"] == "xi-key"
    assert json.loads(requests[0].content) == {"text": "thunder", "duration_seconds": 22.0}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sound_effect_falls_back_to_tts(temp_dir):
    tts_requests = []
    tts = _tts(_tts_handler(tts_requests))
    service = SoundEffectService(
        api_key="xi-key",
        fallback_tts=tts,
        retry_policy=RetryPolicy(max_attempts=2, base_delay=0.0),
        client=_client(lambda r: httpx.Response(401, text="invalid key")),
    )
    dest = temp_dir / "sfx.mp3"
    try:
        await service.render_sound_effect("rain on glass", 4.0, dest)
    finally:
        await service.close()
        await tts.close()

    assert dest.read_bytes() == AUDIO_BYTES
    body = json.loads(tts_requests[0].content)
    assert body["text"] == "rain on glass"
    assert body["description"] == FALLBACK_VOICE_DESCRIPTION


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sound_effect_without_provider_raises(temp_dir):
    service = SoundEffectService(api_key="")
    try:
        with pytest.raises(GenerationError):
            await service.render_sound_effect("rain", 4.0, temp_dir / "sfx.mp3")
    finally:
        await service.close()
