"""Listener playlists of catalog tracks and a simple music transport."""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from ..errors import ValidationError
from ..models.music import MUSIC_CATALOG, MusicTrack

logger = logging.getLogger(__name__)


@dataclass
class Playlist:
    id: str
    name: str
    items: list[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "items": list(self.items), "created_at": self.created_at}

    @classmethod
    def from_dict(cls, data: dict) -> "Playlist":
        return cls(
            id=data["id"],
            name=data.get("name") or "Untitled Playlist",
            items=list(data.get("items", [])),
            created_at=data.get("created_at", time.time()),
        )


class PlaylistStore:
    """Named playlists of track ids, optionally persisted to a JSON file.

    Lookups of unknown playlists raise KeyError; out-of-range item
    positions raise IndexError.
    """

    def __init__(self, catalog: Sequence[MusicTrack] = MUSIC_CATALOG, path: Optional[Path] = None) -> None:
        self.catalog = {track.id: track for track in catalog}
        self.path = path
        self._playlists: dict[str, Playlist] = {}
        if path is not None:
            self.load()

    def __contains__(self, playlist_id: str) -> bool:
        return playlist_id in self._playlists

    def load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read playlists from {self.path}: {e}")
            return
        self._playlists = {p["id"]: Playlist.from_dict(p) for p in raw.get("playlists", [])}
        logger.info(f"Loaded {len(self._playlists)} playlists from {self.path}")

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"playlists": [p.to_dict() for p in self._playlists.values()]}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def all(self) -> list[Playlist]:
        return sorted(self._playlists.values(), key=lambda p: p.created_at)

    def get(self, playlist_id: str) -> Playlist:
        return self._playlists[playlist_id]

    def track(self, track_id: str) -> MusicTrack:
        return self.catalog[track_id]

    def create(self, name: str = "") -> Playlist:
        playlist = Playlist(id=f"pl_{uuid.uuid4().hex[:10]}", name=name.strip() or "Untitled Playlist")
        self._playlists[playlist.id] = playlist
        self.save()
        return playlist

    def delete(self, playlist_id: str) -> None:
        del self._playlists[playlist_id]
        self.save()

    def add(self, playlist_id: str, track_id: str) -> Playlist:
        playlist = self.get(playlist_id)
        if track_id not in self.catalog:
            raise ValidationError(f"Unknown track: {track_id}")
        playlist.items.append(track_id)
        self.save()
        return playlist

    def remove(self, playlist_id: str, position: int) -> Playlist:
        playlist = self.get(playlist_id)
        if not 0 <= position < len(playlist.items):
            raise IndexError(f"Playlist {playlist_id} has no item {position}")
        del playlist.items[position]
        self.save()
        return playlist


class MusicTransport:
    """Next/previous/replay over the loaded playlist, plus volume.

    Navigation wraps around the playlist. With no playlist loaded (or an
    empty or deleted one) every move returns None.
    """

    def __init__(self, store: PlaylistStore) -> None:
        self.store = store
        self.playlist_id: Optional[str] = None
        self.position = 0
        self.volume = 1.0

    def _items(self) -> list[str]:
        if self.playlist_id is None:
            return []
        if self.playlist_id not in self.store:
            self.playlist_id = None
            self.position = 0
            return []
        return self.store.get(self.playlist_id).items

    def load(self, playlist_id: str) -> Optional[MusicTrack]:
        self.store.get(playlist_id)
        self.playlist_id = playlist_id
        self.position = 0
        return self.current()

    def current(self) -> Optional[MusicTrack]:
        items = self._items()
        if not items:
            return None
        self.position %= len(items)
        return self.store.track(items[self.position])

    def play(self, position: int) -> Optional[MusicTrack]:
        items = self._items()
        if not 0 <= position < len(items):
            raise IndexError(f"No playlist item {position}")
        self.position = position
        return self.current()

    def next(self) -> Optional[MusicTrack]:
        items = self._items()
        if not items:
            return None
        self.position = (self.position + 1) % len(items)
        return self.current()

    def previous(self) -> Optional[MusicTrack]:
        items = self._items()
        if not items:
            return None
        self.position = (self.position - 1) % len(items)
        return self.current()

    def replay(self) -> Optional[MusicTrack]:
        return self.current()

    def set_volume(self, volume: float) -> float:
        if not 0.0 <= volume <= 1.0:
            raise ValidationError(f"Volume must be between 0 and 1, got {volume}")
        self.volume = volume
        return volume

    def to_dict(self) -> dict:
        track = self.current()
        return {
            "playlist_id": self.playlist_id,
            "position": self.position,
            "track": track.to_dict() if track else None,
            "volume": self.volume,
        }
