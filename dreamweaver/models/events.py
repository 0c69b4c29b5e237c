"""Observable session events consumed by a presentation layer."""

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Optional


@dataclass
class SessionEvent:
    type: ClassVar[str] = "event"

    def to_dict(self) -> dict:
        return {"type": self.type}


@dataclass
class SentenceStarted(SessionEvent):
    """A sentence's narration is starting (drives text highlighting)."""

    type: ClassVar[str] = "sentence"

    index: int
    text: str
    chapter_index: int
    audio: Optional[bytes] = None
    audio_path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "index": self.index,
            "text": self.text,
            "chapter_index": self.chapter_index,
            "audio": base64.b64encode(self.audio).decode("ascii") if self.audio else None,
        }


@dataclass
class ImageShown(SessionEvent):
    type: ClassVar[str] = "image"

    index: int
    data: bytes
    mime_type: str
    prompt: str

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "index": self.index,
            "mime_type": self.mime_type,
            "prompt": self.prompt,
            "data": base64.b64encode(self.data).decode("ascii"),
        }


@dataclass
class MusicChanged(SessionEvent):
    type: ClassVar[str] = "music"

    track_id: str
    display_name: str
    icon: str
    source_url: str

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "track_id": self.track_id,
            "display_name": self.display_name,
            "icon": self.icon,
            "source_url": self.source_url,
        }


@dataclass
class ChapterStarted(SessionEvent):
    type: ClassVar[str] = "chapter"

    chapter_index: int
    title: str

    def to_dict(self) -> dict:
        return {"type": self.type, "chapter_index": self.chapter_index, "title": self.title}


@dataclass
class ClockTick(SessionEvent):
    type: ClassVar[str] = "tick"

    time_left_seconds: int

    def to_dict(self) -> dict:
        return {"type": self.type, "time_left_seconds": self.time_left_seconds}


@dataclass
class PlaybackError(SessionEvent):
    """A user-visible failure. ``fatal`` errors end the session."""

    type: ClassVar[str] = "error"

    message: str
    index: Optional[int] = None
    fatal: bool = False

    def to_dict(self) -> dict:
        return {"type": self.type, "message": self.message, "index": self.index, "fatal": self.fatal}


@dataclass
class SessionEnded(SessionEvent):
    type: ClassVar[str] = "ended"

    reason: str
    sentences_played: int

    def to_dict(self) -> dict:
        return {"type": self.type, "reason": self.reason, "sentences_played": self.sentences_played}
