import time

import pytest
from fastapi.testclient import TestClient

from dreamweaver.config import get_settings
from dreamweaver.gateway.factory import get_generation_gateway
from dreamweaver.main import app
from dreamweaver.playback.player import ClientAckPlayer, PacedPlayer
from dreamweaver.playback.playlist import MusicTransport, PlaylistStore
from dreamweaver.routers.sessions import get_narration_player
from dreamweaver.routers.tracks import get_music_transport, get_playlist_store


@pytest.fixture()
def client(settings, gateway):
    app.dependency_overrides[get_generation_gateway] = lambda: gateway
    app.dependency_overrides[get_narration_player] = lambda: PacedPlayer(speed=0)
    app.dependency_overrides[get_settings] = lambda: settings
    store = PlaylistStore()
    transport = MusicTransport(store)
    app.dependency_overrides[get_playlist_store] = lambda: store
    app.dependency_overrides[get_music_transport] = lambda: transport
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def receive_until_summary(websocket) -> list[dict]:
    messages = []
    while True:
        message = websocket.receive_json()
        messages.append(message)
        if message["type"] == "summary":
            return messages


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_list_tracks(client):
    response = client.get("/api/tracks")
    assert response.status_code == 200
    tracks = response.json()
    assert [t["id"] for t in tracks] == ["adventure", "suspense", "peaceful", "magical", "melancholy", "romantic"]
    assert tracks[0]["display_name"] == "High Adventure"


def test_select_track(client):
    response = client.post(
        "/api/tracks/select",
        json={"prose": "The hero drew his sword for the epic battle.", "current_mood": "peaceful"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["track_id"] == "adventure"
    assert body["scores"]["adventure"] == 4


def test_select_track_with_unknown_current_mood(client):
    response = client.post("/api/tracks/select", json={"prose": "Calm.", "current_mood": "polka"})
    assert response.status_code == 404


def test_session_streams_events_and_summary(client, gateway):
    with client.websocket_connect("/api/sessions/ws") as websocket:
        websocket.send_json(
            {
                "type": "start",
                "prompt": "A lighthouse keeper finds a map",
                "options": {"sessionDurationSeconds": 40, "imageQueueDelayMs": 0, "voice": "Puck"},
            }
        )
        messages = receive_until_summary(websocket)

    kinds = [m["type"] for m in messages]
    assert kinds[0] == "chapter"
    assert kinds[-2:] == ["ended", "summary"]
    sentences = [m for m in messages if m["type"] == "sentence"]
    assert [m["index"] for m in sentences] == list(range(12))
    assert sentences[0]["audio"]
    assert [m["index"] for m in messages if m["type"] == "image"] == [0, 4, 8]
    assert [m["track_id"] for m in messages if m["type"] == "music"] == ["peaceful"]

    summary = messages[-1]
    assert summary["end_reason"] == "story_complete"
    assert summary["sentences_played"] == 12
    assert summary["chapters"] == ["One"]
    assert len(gateway.text_calls) == 1


def test_first_chapter_failure_is_reported(client, gateway):
    gateway.fail_text = True
    with client.websocket_connect("/api/sessions/ws") as websocket:
        websocket.send_json({"type": "start", "prompt": "A lighthouse keeper"})
        messages = receive_until_summary(websocket)

    errors = [m for m in messages if m["type"] == "error"]
    assert errors[-1]["fatal"] is True
    assert messages[-1]["end_reason"] == "error"


def test_invalid_start_message_is_rejected(client):
    with client.websocket_connect("/api/sessions/ws") as websocket:
        websocket.send_json({"type": "start", "options": {"sessionDurationSeconds": -5}})
        message = websocket.receive_json()

    assert message == {"type": "error", "message": "Invalid start message", "fatal": True}


def test_select_track_rejects_blank_prose(client):
    response = client.post("/api/tracks/select", json={"prose": "   "})
    assert response.status_code == 422
    assert response.json() == {"detail": "prose must not be empty"}


def test_client_finished_signals_drive_playback(client):
    # Without the signals every sentence would wait out the 2s fallback
    app.dependency_overrides[get_narration_player] = lambda: ClientAckPlayer(timeout_factor=0, grace_seconds=2)
    started = time.monotonic()
    with client.websocket_connect("/api/sessions/ws") as websocket:
        websocket.send_json({"type": "start", "prompt": "A lighthouse keeper", "options": {"sessionDurationSeconds": 40, "imageQueueDelayMs": 0}})
        messages = []
        while True:
            message = websocket.receive_json()
            messages.append(message)
            if message["type"] == "sentence":
                websocket.send_json({"type": "finished", "index": message["index"]})
            if message["type"] == "summary":
                break

    assert time.monotonic() - started < 2
    assert messages[-1]["end_reason"] == "story_complete"
    assert messages[-1]["sentences_played"] == 12


def test_playlist_crud_and_transport(client):
    created = client.post("/api/tracks/playlists", json={"name": "Bedtime"})
    assert created.status_code == 201
    playlist_id = created.json()["id"]

    for track_id in ("peaceful", "magical", "romantic"):
        response = client.post(f"/api/tracks/playlists/{playlist_id}/items", json={"track_id": track_id})
        assert response.status_code == 200
    response = client.delete(f"/api/tracks/playlists/{playlist_id}/items/2")
    assert response.json()["items"] == ["peaceful", "magical"]

    state = client.post(f"/api/tracks/player/load/{playlist_id}").json()
    assert state["track"]["id"] == "peaceful"
    assert client.post("/api/tracks/player/next").json()["track"]["id"] == "magical"
    assert client.post("/api/tracks/player/next").json()["track"]["id"] == "peaceful"
    assert client.post("/api/tracks/player/previous").json()["track"]["id"] == "magical"
    assert client.post("/api/tracks/player/replay").json()["position"] == 1
    assert client.put("/api/tracks/player/volume", json={"volume": 0.5}).json()["volume"] == 0.5

    assert client.delete(f"/api/tracks/playlists/{playlist_id}").status_code == 204
    assert client.get("/api/tracks/playlists").json() == []
    assert client.get("/api/tracks/player").json()["track"] is None


def test_playlist_errors(client):
    playlist_id = client.post("/api/tracks/playlists", json={}).json()["id"]

    assert client.post(f"/api/tracks/playlists/{playlist_id}/items", json={"track_id": "polka"}).status_code == 422
    assert client.delete(f"/api/tracks/playlists/{playlist_id}/items/0").status_code == 404
    assert client.post("/api/tracks/playlists/pl_missing/items", json={"track_id": "peaceful"}).status_code == 404
    assert client.post("/api/tracks/player/load/pl_missing").status_code == 404
    assert client.post("/api/tracks/player/shuffle").status_code == 422
    assert client.put("/api/tracks/player/volume", json={"volume": 2}).status_code == 422
