"""TTS (Text-to-Speech) service - Livepeer AI gateway."""

import logging
from pathlib import Path
from urllib.parse import urljoin

import httpx

from models.media import AssetUrl
from models.scene import Dialogue
from scene_pipeline.errors import GenerationError
from services.media_download import download_to_file
from utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_TTS_URL = "https://dream-gateway.livepeer.cloud/text-to-speech"
DEFAULT_TTS_MODEL = "parler-tts/parler-tts-large-v1"


class TTSServiceError(Exception):
    """Raised when speech synthesis fails."""


def normalize_livepeer_audio(data: dict, base_url: str) -> AssetUrl:
    """Extract the audio URL from a Livepeer text-to-speech response.

    The gateway may return a path relative to itself, so it is resolved
    against ``base_url``.

    Raises:
        TTSServiceError: If the payload carries no audio URL
    """
    audio = data.get("audio") if isinstance(data, dict) else None
    url = audio.get("url") if isinstance(audio, dict) else None
    if not url:
        raise TTSServiceError("Livepeer TTS returned no audio URL")
    return AssetUrl(asset_url=urljoin(base_url, url))


class TTSService:
    """Speech synthesis through the Livepeer text-to-speech pipeline."""

    def __init__(
        self,
        api_key: str = "",
        url: str = DEFAULT_TTS_URL,
        model_id: str = DEFAULT_TTS_MODEL,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.url = url or DEFAULT_TTS_URL
        self.model_id = model_id
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = client or httpx.AsyncClient(timeout=120.0)

    def is_configured(self) -> bool:
        return bool(self.url)

    async def generate_speech(self, text: str, description: str) -> AssetUrl:
        """Request one TTS rendering.

        Args:
            text: Words to speak
            description: Voice description (speaker, tone, pace)

        Returns:
            Location of the rendered audio

        Raises:
            TTSServiceError: On API errors or a malformed response
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model_id": self.model_id,
            "text": text,
            "description": description,
        }

        try:
            response = await self.client.post(self.url, headers=headers, json=payload)
            response.raise_for_status()
            return normalize_livepeer_audio(response.json(), self.url)
        except httpx.TimeoutException:
            raise TTSServiceError("Livepeer TTS request timed out")
        except httpx.HTTPStatusError as e:
            error_detail = e.response.text or str(e)
            raise TTSServiceError(f"Livepeer TTS error ({e.response.status_code}): {error_detail}")
        except TTSServiceError:
            raise
        except (httpx.HTTPError, ValueError) as e:
            raise TTSServiceError(f"Livepeer TTS request failed: {e}")

    async def render_dialogue(self, dialogue: Dialogue, output_path: Path) -> Path:
        """Synthesize a dialogue line into ``output_path``.

        Raises:
            GenerationError: If synthesis or download failed on every attempt
        """
        logger.info(f"Generating dialogue ({len(dialogue.text)} chars): {dialogue.text[:50]}")
        try:
            return await self.retry_policy.call(
                self._render_once, dialogue, Path(output_path), description="Livepeer TTS"
            )
        except TTSServiceError as e:
            raise GenerationError(f"Dialogue generation failed: {e}") from e

    async def _render_once(self, dialogue: Dialogue, output_path: Path) -> Path:
        asset_url = await self.generate_speech(dialogue.text, dialogue.description)
        return await download_to_file(
            self.client, asset_url.asset_url, output_path, TTSServiceError
        )

    async def close(self) -> None:
        await self.client.aclose()
