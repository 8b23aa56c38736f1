"""Scene and story data models."""

from dataclasses import dataclass, field

DEFAULT_SCENE_DURATION = 4.0
DEFAULT_VOICE_DESCRIPTION = "Narrator"


@dataclass(frozen=True)
class Dialogue:
    """A line of spoken dialogue with a voice description for the TTS model."""

    text: str
    description: str = DEFAULT_VOICE_DESCRIPTION

    def to_dict(self) -> dict:
        return {"text": self.text, "description": self.description}


@dataclass(frozen=True)
class Scene:
    """One scene of a movie: a visual prompt, a target length and its audio cues."""

    prompt: str
    duration: float = DEFAULT_SCENE_DURATION
    sound_effect: str = ""
    dialogue: Dialogue | None = None

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("Scene prompt must not be empty")
        if self.duration <= 0:
            raise ValueError(f"Scene duration must be positive, got {self.duration}")

    @property
    def has_dialogue(self) -> bool:
        return self.dialogue is not None and bool(self.dialogue.text.strip())

    @classmethod
    def from_dict(cls, data: dict) -> "Scene":
        """Build a scene from an LLM or JSON payload.

        Accepts both ``sound_effect`` and the camelCase ``soundEffect`` key.

        Raises:
            ValueError: If the prompt is missing or the duration is invalid
        """
        prompt = data.get("prompt")
        if not prompt:
            raise ValueError("Scene is missing a prompt")

        raw_duration = data.get("duration", DEFAULT_SCENE_DURATION)
        try:
            duration = float(raw_duration)
        except (TypeError, ValueError):
            raise ValueError(f"Scene duration is not a number: {raw_duration!r}")

        dialogue = None
        raw_dialogue = data.get("dialogue")
        if isinstance(raw_dialogue, dict) and raw_dialogue.get("text"):
            dialogue = Dialogue(
                text=str(raw_dialogue["text"]),
                description=str(
                    raw_dialogue.get("description") or DEFAULT_VOICE_DESCRIPTION
                ),
            )
        elif isinstance(raw_dialogue, str) and raw_dialogue.strip():
            dialogue = Dialogue(text=raw_dialogue)

        sound_effect = data.get("sound_effect", data.get("soundEffect", "")) or ""

        return cls(
            prompt=str(prompt),
            duration=duration,
            sound_effect=str(sound_effect),
            dialogue=dialogue,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "prompt": self.prompt,
            "duration": self.duration,
            "sound_effect": self.sound_effect,
            "dialogue": self.dialogue.to_dict() if self.dialogue else None,
        }


@dataclass
class Story:
    """A generated story: ordered scenes plus optional follow-up choices."""

    scenes: list[Scene]
    choices: list[str] = field(default_factory=list)
    is_fallback: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Story":
        scenes = [Scene.from_dict(s) for s in data.get("scenes", [])]
        choices = [str(c) for c in data.get("choices", [])]
        return cls(scenes=scenes, choices=choices)

    def to_dict(self) -> dict:
        return {
            "scenes": [s.to_dict() for s in self.scenes],
            "choices": list(self.choices),
            "is_fallback": self.is_fallback,
        }
