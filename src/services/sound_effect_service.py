"""Sound effect generation - ElevenLabs, with a Livepeer TTS fallback."""

import logging
from pathlib import Path

import httpx

from models.scene import Dialogue
from scene_pipeline.errors import GenerationError
from services.tts_service import TTSService
from utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

ELEVENLABS_SOUND_URL = "https://api.elevenlabs.io/v1/sound-generation"

# ElevenLabs accepts durations in this range
MIN_DURATION_SECONDS = 0.5
MAX_DURATION_SECONDS = 22.0

FALLBACK_VOICE_DESCRIPTION = "Sound effect, ambient and atmospheric"


class SoundEffectServiceError(Exception):
    """Raised when sound effect generation fails."""


class SoundEffectService:
    """Generates short sound effects from a text description."""

    def __init__(
        self,
        api_key: str = "",
        fallback_tts: TTSService | None = None,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.fallback_tts = fallback_tts
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = client or httpx.AsyncClient(timeout=120.0)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def render_sound_effect(
        self, description: str, duration_hint: float, output_path: Path
    ) -> Path:
        """Generate a sound effect into ``output_path``.

        ElevenLabs is tried first. If it is not configured or keeps failing,
        the Livepeer TTS model is asked to voice the description instead.

        Raises:
            GenerationError: If no provider produced audio
        """
        output_path = Path(output_path)

        if self.is_configured():
            try:
                return await self.retry_policy.call(
                    self._generate_once,
                    description,
                    duration_hint,
                    output_path,
                    description="ElevenLabs sound generation",
                )
            except SoundEffectServiceError as e:
                logger.warning(f"ElevenLabs sound effect failed, trying TTS fallback: {e}")

        if self.fallback_tts is None:
            raise GenerationError(f"Sound effect generation failed for: {description[:60]}")

        return await self.fallback_tts.render_dialogue(
            Dialogue(text=description, description=FALLBACK_VOICE_DESCRIPTION), output_path
        )

    async def _generate_once(
        self, description: str, duration_hint: float, output_path: Path
    ) -> Path:
        duration = min(max(duration_hint, MIN_DURATION_SECONDS), MAX_DURATION_SECONDS)
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        payload = {"text": description, "duration_seconds": round(duration, 2)}

        try:
            response = await self.client.post(ELEVENLABS_SOUND_URL, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise SoundEffectServiceError("ElevenLabs request timed out")
        except httpx.HTTPStatusError as e:
            raise SoundEffectServiceError(
                f"ElevenLabs API error ({e.response.status_code}): {e.response.text[:200]}"
            )
        except httpx.HTTPError as e:
            raise SoundEffectServiceError(f"ElevenLabs request failed: {e}")

        if not response.content:
            raise SoundEffectServiceError("ElevenLabs returned empty audio")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(response.content)
        logger.info(f"Sound effect generated: {len(response.content)} bytes ({description[:40]})")
        return output_path

    async def close(self) -> None:
        await self.client.aclose()
