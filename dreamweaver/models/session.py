"""Session models for tracking a running story."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .story import Chapter, Sentence


class SessionPhase(str, Enum):
    """Possible states of a story session."""

    IDLE = "idle"
    PLAYING = "playing"
    GENERATING_CHAPTER = "generating_chapter"
    GENERATING_BLOCKED = "generating_blocked"
    ENDED = "ended"


@dataclass
class SessionState:
    """The mutable aggregate owned by one ``StorySession``."""

    session_id: str
    time_left_seconds: int
    prompt: str = ""
    chapters: list[Chapter] = field(default_factory=list)
    sentences: list[Sentence] = field(default_factory=list)
    chapter_starts: list[int] = field(default_factory=list)
    current_index: int = 0
    is_playing: bool = False
    current_mood: Optional[str] = None
    chapter_task: Optional[asyncio.Task] = None
    started: bool = False
    stalled: bool = False
    ended: bool = False
    end_reason: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_generating_chapter(self) -> bool:
        return self.chapter_task is not None and not self.chapter_task.done()

    @property
    def phase(self) -> SessionPhase:
        if self.ended:
            return SessionPhase.ENDED
        if not self.started:
            return SessionPhase.IDLE
        if self.stalled:
            return SessionPhase.GENERATING_BLOCKED
        if self.is_generating_chapter:
            return SessionPhase.GENERATING_CHAPTER
        return SessionPhase.PLAYING

    @property
    def next_sentence_index(self) -> int:
        return len(self.sentences)

    def add_chapter(self, chapter: Chapter, sentences: list[Sentence]) -> int:
        """Append a chapter and its sentences; return the chapter index."""
        self.chapters.append(chapter)
        self.chapter_starts.append(len(self.sentences))
        self.sentences.extend(sentences)
        return len(self.chapters) - 1

    def chapter_bounds(self, chapter_index: int) -> tuple[int, int]:
        """Half-open sentence index range of a chapter."""
        start = self.chapter_starts[chapter_index]
        if chapter_index + 1 < len(self.chapter_starts):
            end = self.chapter_starts[chapter_index + 1]
        else:
            end = len(self.sentences)
        return start, end

    def is_last_chapter(self, chapter_index: int) -> bool:
        return chapter_index == len(self.chapters) - 1


@dataclass
class SessionSummary:
    """What a finished session reports back to its caller."""

    session_id: str
    end_reason: str
    chapters: list[str]
    sentences_played: int
    time_left_seconds: int

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "end_reason": self.end_reason,
            "chapters": self.chapters,
            "sentences_played": self.sentences_played,
            "time_left_seconds": self.time_left_seconds,
        }
