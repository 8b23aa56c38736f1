"""Story generation - turns a free-text prompt into scenes via the xAI chat API."""

import json
import logging
import re

import httpx

from models.scene import Dialogue, Scene, Story
from utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

XAI_CHAT_URL = "https://api.x.ai/v1/chat/completions"
DEFAULT_MODEL = "grok-2"

JSON_BLOCK_PATTERN = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = """You write very short vertical movies.
Reply with JSON only, in this shape:
{
  "scenes": [
    {
      "prompt": "visual description of the shot",
      "duration": 4,
      "soundEffect": "ambient sound or effect",
      "dialogue": {"description": "voice of the speaker", "text": "one short line"}
    }
  ],
  "choices": ["what could happen next", "another option"]
}
Write 3 scenes. Keep every line of dialogue under 12 words."""


class StoryServiceError(Exception):
    """Raised when the LLM response cannot be turned into a story."""


def extract_story_json(content: str) -> dict:
    """Pull the first JSON object out of an LLM reply.

    Raises:
        StoryServiceError: If no parseable JSON object is present
    """
    match = JSON_BLOCK_PATTERN.search(content or "")
    if not match:
        raise StoryServiceError("No JSON object found in story response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise StoryServiceError(f"Story response is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise StoryServiceError("Story response is not a JSON object")
    return data


def fallback_story(prompt: str) -> Story:
    """A fixed three-scene story built around ``prompt``."""
    subject = prompt.strip() or "a quiet city at night"
    scenes = [
        Scene(
            prompt=f"Establishing shot: {subject}, cinematic lighting, slow camera push",
            duration=4.0,
            sound_effect="soft wind and distant ambience",
            dialogue=Dialogue(
                text="It started like any other day.",
                description="A calm male narrator with a warm, low voice",
            ),
        ),
        Scene(
            prompt=f"Close-up reveal: {subject}, dramatic contrast, shallow depth of field",
            duration=4.0,
            sound_effect="rising tension drone",
            dialogue=Dialogue(
                text="Then everything changed.",
                description="A calm male narrator speaking slowly with suspense",
            ),
        ),
        Scene(
            prompt=f"Wide closing shot: {subject}, golden hour, camera pulls back",
            duration=4.0,
            sound_effect="gentle swell of music",
            dialogue=Dialogue(
                text="And nothing would ever be the same.",
                description="A calm male narrator, hopeful and quiet",
            ),
        ),
    ]
    return Story(
        scenes=scenes,
        choices=["Continue the journey", "Go back to the beginning"],
        is_fallback=True,
    )


class StoryService:
    """Asks Grok for a short scene list, falling back to a fixed story."""

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key or ""
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = client or httpx.AsyncClient(timeout=60.0)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_story(self, prompt: str) -> Story:
        """Generate a story for ``prompt``.

        Never raises: any failure returns :func:`fallback_story`.
        """
        if not self.is_configured():
            logger.warning("GROK_API_KEY not set, using fallback story")
            return fallback_story(prompt)

        try:
            data = await self.retry_policy.call(
                self._request_story, prompt, description="Grok story generation"
            )
            story = Story.from_dict(data)
        except (StoryServiceError, ValueError) as e:
            logger.warning(f"Story generation failed, using fallback story: {e}")
            return fallback_story(prompt)

        if not story.scenes:
            if not prompt.strip():
                return fallback_story(prompt)
            logger.warning("Story contained no scenes, using the prompt as a single scene")
            return Story(scenes=[Scene(prompt=prompt)], choices=story.choices, is_fallback=True)

        logger.info(f"Generated story with {len(story.scenes)} scenes")
        return story

    async def _request_story(self, prompt: str) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.7,
            "top_p": 0.9,
            "max_tokens": 1000,
        }

        try:
            response = await self.client.post(XAI_CHAT_URL, headers=headers, json=payload)
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
        except httpx.TimeoutException:
            raise StoryServiceError("Grok request timed out")
        except httpx.HTTPStatusError as e:
            raise StoryServiceError(f"Grok API error ({e.response.status_code}): {e.response.text[:200]}")
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            raise StoryServiceError(f"Unexpected Grok response: {e}")

        return extract_story_json(content)

    async def close(self) -> None:
        await self.client.aclose()
