"""Integration tests for the moviegen HTTP API."""

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from models.media import PlaybackReference
from models.scene import Scene, Story
from services.movie_request_processor import MovieRequestProcessor
from services.request_store import STATUS_COMPLETED, STATUS_PROCESSING, MemoryRequestStore

PLAYBACK = PlaybackReference(url="https://lvpr.tv/?v=abc", playback_id="abc", asset_id="asset-1")


@pytest.fixture
def api_state(monkeypatch):
    """Wire the API to an in-memory store and mocked generation."""
    import api.routers.movies as movies
    import api.server as server

    store = MemoryRequestStore()
    story_service = Mock()
    story_service.generate_story = AsyncMock(return_value=Story(scenes=[Scene(prompt="one")]))
    assembler = Mock()
    assembler.assemble = AsyncMock(return_value=PLAYBACK)
    sink = Mock()
    sink.set_playback_link = AsyncMock()
    processor = MovieRequestProcessor(story_service, assembler, store, sink)

    async def fake_store():
        return store

    async def fake_processor():
        return processor

    monkeypatch.setattr(movies, "get_request_store", fake_store)
    monkeypatch.setattr(movies, "get_processor", fake_processor)
    monkeypatch.setattr(server, "get_request_store", fake_store)
    monkeypatch.setattr(server, "close_services", AsyncMock())

    return {"store": store, "assembler": assembler, "server": server}


@pytest.fixture
def client(api_state):
    with TestClient(api_state["server"].app) as test_client:
        yield test_client


@pytest.mark.integration
def test_create_movie_accepted(client, api_state):
    response = client.post("/api/movies", json={"prompt": "a robot learns to fish", "request_id": "req-1"})

    assert response.status_code == 202
    assert response.json() == {"request_id": "req-1", "status": STATUS_PROCESSING}

    record = client.get("/api/movies/req-1").json()
    assert record["id"] == "req-1"
    assert record["prompt"] == "a robot learns to fish"
    assert record["status"] in (STATUS_PROCESSING, STATUS_COMPLETED)


@pytest.mark.integration
def test_create_movie_generates_request_id(client):
    response = client.post("/api/movies", json={"prompt": "a robot learns to fish"})

    assert response.status_code == 202
    assert response.json()["request_id"]


@pytest.mark.integration
def test_duplicate_request_rejected(client):
    first = client.post("/api/movies", json={"prompt": "p", "request_id": "req-1"})
    second = client.post("/api/movies", json={"prompt": "p", "request_id": "req-1"})

    assert first.status_code == 202
    assert second.status_code == 409
    assert "req-1" in second.json()["detail"]


@pytest.mark.integration
def test_empty_prompt_rejected(client):
    response = client.post("/api/movies", json={"prompt": ""})
    assert response.status_code == 422


@pytest.mark.integration
def test_assemble_explicit_scenes(client):
    body = {
        "request_id": "req-2",
        "scenes": [
            {"prompt": "A robot fishing at dawn", "sound_effect": "water", "dialogue": {"text": "Any bites?"}},
            {"prompt": "The robot catches a boot", "duration": 3},
        ],
    }

    response = client.post("/api/movies/assemble", json=body)

    assert response.status_code == 202
    record = client.get("/api/movies/req-2").json()
    assert record["prompt"].startswith("2 scenes: A robot fishing at dawn")


@pytest.mark.integration
def test_assemble_requires_scenes(client):
    response = client.post("/api/movies/assemble", json={"scenes": []})
    assert response.status_code == 422


@pytest.mark.integration
def test_unknown_request_returns_404(client):
    response = client.get("/api/movies/missing")
    assert response.status_code == 404


@pytest.mark.integration
def test_list_requests(client):
    for i in range(3):
        client.post("/api/movies", json={"prompt": f"prompt {i}", "request_id": f"req-{i}"})

    response = client.get("/api/movies", params={"limit": 2})

    assert response.status_code == 200
    assert len(response.json()) == 2


@pytest.mark.integration
def test_health_reports_degraded_without_ffmpeg(client, monkeypatch, api_state):
    server = api_state["server"]
    configured = Mock()
    configured.is_configured.return_value = True
    runner = Mock()
    runner.is_available.return_value = False
    for name in (
        "get_video_gen_service",
        "get_tts_service",
        "get_sound_effect_service",
        "get_uploader",
        "get_story_service",
    ):
        monkeypatch.setattr(server, name, lambda: configured)
    monkeypatch.setattr(server, "get_runner", lambda: runner)

    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["ffmpeg"] is False
    assert all(data["services"].values())

    runner.is_available.return_value = True
    assert client.get("/api/health").json()["status"] == "healthy"
