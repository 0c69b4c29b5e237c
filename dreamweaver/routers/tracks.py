"""Music catalog, playlist and music transport API router."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..config import get_settings
from ..errors import ValidationError
from ..models.music import MUSIC_CATALOG
from ..playback.music import MusicMoodSelector
from ..playback.playlist import MusicTransport, PlaylistStore

router = APIRouter(prefix="/api/tracks", tags=["music"])


class MoodRequest(BaseModel):
    prose: str
    suggested_mood: str = ""
    current_mood: Optional[str] = None


class PlaylistCreate(BaseModel):
    name: str = ""


class PlaylistItem(BaseModel):
    track_id: str


class VolumeRequest(BaseModel):
    volume: float


class PlayerAction(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    REPLAY = "replay"


@lru_cache
def get_playlist_store() -> PlaylistStore:
    return PlaylistStore(path=get_settings().playlists_file)


@lru_cache
def get_music_transport() -> MusicTransport:
    return MusicTransport(get_playlist_store())


@router.get("")
async def list_tracks() -> list[dict]:
    """List the background music catalog."""
    return [track.to_dict() for track in MUSIC_CATALOG]


@router.post("/select")
async def select_track(request: MoodRequest) -> dict:
    """Score prose against the catalog and pick a track."""
    if not request.prose.strip():
        raise ValidationError("prose must not be empty")
    selector = MusicMoodSelector()
    if request.current_mood is not None:
        try:
            selector.track(request.current_mood)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Track not found: {request.current_mood}")

    return {
        "track_id": selector.select(request.prose, request.suggested_mood, request.current_mood),
        "scores": selector.scores(request.prose),
    }


# Playlists


@router.get("/playlists")
async def list_playlists(store: PlaylistStore = Depends(get_playlist_store)) -> list[dict]:
    return [playlist.to_dict() for playlist in store.all()]


@router.post("/playlists", status_code=201)
async def create_playlist(request: PlaylistCreate, store: PlaylistStore = Depends(get_playlist_store)) -> dict:
    return store.create(request.name).to_dict()


@router.delete("/playlists/{playlist_id}", status_code=204)
async def delete_playlist(playlist_id: str, store: PlaylistStore = Depends(get_playlist_store)) -> None:
    try:
        store.delete(playlist_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Playlist not found: {playlist_id}")


@router.post("/playlists/{playlist_id}/items")
async def add_playlist_item(
    playlist_id: str,
    item: PlaylistItem,
    store: PlaylistStore = Depends(get_playlist_store),
) -> dict:
    try:
        return store.add(playlist_id, item.track_id).to_dict()
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Playlist not found: {playlist_id}")


@router.delete("/playlists/{playlist_id}/items/{position}")
async def remove_playlist_item(
    playlist_id: str,
    position: int,
    store: PlaylistStore = Depends(get_playlist_store),
) -> dict:
    try:
        return store.remove(playlist_id, position).to_dict()
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Playlist not found: {playlist_id}")
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))


# Transport


@router.get("/player")
async def player_state(transport: MusicTransport = Depends(get_music_transport)) -> dict:
    return transport.to_dict()


@router.post("/player/load/{playlist_id}")
async def load_playlist(playlist_id: str, transport: MusicTransport = Depends(get_music_transport)) -> dict:
    """Make a playlist the active one, starting from its first track."""
    try:
        transport.load(playlist_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Playlist not found: {playlist_id}")
    return transport.to_dict()


@router.post("/player/{action}")
async def move_player(
    action: PlayerAction,
    transport: MusicTransport = Depends(get_music_transport),
) -> dict:
    if action is PlayerAction.NEXT:
        transport.next()
    elif action is PlayerAction.PREVIOUS:
        transport.previous()
    else:
        transport.replay()
    return transport.to_dict()


@router.put("/player/volume")
async def set_volume(request: VolumeRequest, transport: MusicTransport = Depends(get_music_transport)) -> dict:
    transport.set_volume(request.volume)
    return transport.to_dict()
