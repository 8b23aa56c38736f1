"""Pydantic request/response models for the moviegen API."""

from pydantic import BaseModel, Field

# =============================================================================
# Request Models
# =============================================================================


class DialogueModel(BaseModel):
    """Spoken line for a scene."""

    text: str
    description: str = "Narrator"


class SceneModel(BaseModel):
    """One scene of a movie."""

    prompt: str = Field(min_length=1)
    duration: float = Field(default=4.0, gt=0)
    sound_effect: str = ""
    dialogue: DialogueModel | None = None


class CreateMovieRequest(BaseModel):
    """Request to create a movie from a free-text prompt."""

    prompt: str = Field(min_length=1, max_length=2000)
    request_id: str | None = Field(default=None, max_length=128)

    model_config = {
        "json_schema_extra": {
            "examples": [{"prompt": "A lighthouse keeper finds a message in a bottle"}]
        }
    }


class AssembleMovieRequest(BaseModel):
    """Request to assemble an explicit scene list."""

    scenes: list[SceneModel] = Field(min_length=1)
    request_id: str | None = Field(default=None, max_length=128)


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    ffmpeg: bool
    services: dict[str, bool]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "ffmpeg": True,
                    "services": {"video": True, "tts": True, "sound_effects": True, "upload": True, "story": True},
                }
            ]
        }
    }


class MovieAcceptedResponse(BaseModel):
    """Returned when a creation request has been queued."""

    request_id: str
    status: str


class MovieRequestResponse(BaseModel):
    """State of a creation request."""

    id: str
    status: str
    prompt: str
    playback_url: str | None = None
    error: str | None = None
    created_at: str
    updated_at: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "id": "550e8400-e29b-41d4-a716-446655440000",
                    "status": "completed",
                    "prompt": "A lighthouse keeper finds a message in a bottle",
                    "playback_url": "https://lvpr.tv/?v=abcd1234",
                    "error": None,
                    "created_at": "2024-01-15T10:30:00",
                    "updated_at": "2024-01-15T10:34:12",
                }
            ]
        }
    }
