import asyncio
from typing import Callable, Optional

import pytest

from dreamweaver.config import SessionOptions, Settings
from dreamweaver.errors import UpstreamError, ValidationError
from dreamweaver.gateway.interface import GeneratedImage, GenerationGateway
from dreamweaver.models.story import Chapter
from dreamweaver.playback.audio_cache import AudioCacheEntry
from dreamweaver.playback.player import NarrationPlayer

# 10ms of 24kHz 16-bit silence
PCM_SILENCE = b"\x00\x00" * 240
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def make_chapter(
    title: str = "One",
    sentences: int = 12,
    mood: str = "peaceful",
    prompts: Optional[list[str]] = None,
) -> Chapter:
    prose = " ".join(f"Sentence {i} of {title}." for i in range(sentences))
    return Chapter(
        title=title,
        prose=prose,
        suggested_music_mood=mood,
        visual_moment_prompts=prompts or [f"{title} scene {i}" for i in range(3)],
    )


class FakeGateway(GenerationGateway):
    """In-memory gateway that records every call."""

    def __init__(
        self,
        chapters: Optional[list[Chapter]] = None,
        text_delay: float = 0.0,
        speech_delay: float = 0.0,
        image_delay: float = 0.0,
    ) -> None:
        self.chapters = chapters or [make_chapter("One"), make_chapter("Two")]
        self.text_delay = text_delay
        self.speech_delay = speech_delay
        self.image_delay = image_delay
        self.fail_text = False
        self.fail_speech: set[str] = set()
        self.invalid_speech: set[str] = set()
        self.fail_all_speech = False
        self.fail_images = False
        self.image_mime: Optional[str] = None
        self.text_calls: list[str] = []
        self.speech_calls: list[str] = []
        self.image_calls: list[tuple[str, float]] = []

    async def generate_text(self, prompt: str, system_instruction: str) -> Chapter:
        self.text_calls.append(prompt)
        await asyncio.sleep(self.text_delay)
        if self.fail_text:
            raise UpstreamError("text service down", status_code=503)
        index = min(len(self.text_calls) - 1, len(self.chapters) - 1)
        return self.chapters[index]

    async def generate_speech(self, text: str, voice: str, accent: str) -> bytes:
        self.speech_calls.append(text)
        await asyncio.sleep(self.speech_delay)
        if text in self.invalid_speech:
            raise ValidationError("unspeakable")
        if self.fail_all_speech or text in self.fail_speech:
            raise UpstreamError("speech service down", status_code=503)
        return PCM_SILENCE

    async def generate_image(self, prompt: str) -> GeneratedImage:
        self.image_calls.append((prompt, asyncio.get_running_loop().time()))
        await asyncio.sleep(self.image_delay)
        if self.fail_images:
            raise UpstreamError("image service down", status_code=503)
        return GeneratedImage(data=PNG_BYTES, mime_type=self.image_mime)


class RecordingPlayer(NarrationPlayer):
    """Plays instantly (or after ``delay``) and records what it played."""

    def __init__(self, delay: float = 0.0, hook: Optional[Callable[[AudioCacheEntry], None]] = None) -> None:
        self.delay = delay
        self.hook = hook
        self.started: list[int] = []
        self.finished: list[int] = []

    async def play(self, entry: AudioCacheEntry) -> None:
        self.started.append(entry.index)
        if self.hook is not None:
            self.hook(entry)
        await asyncio.sleep(self.delay)
        self.finished.append(entry.index)


class EventLog:
    def __init__(self) -> None:
        self.events = []

    async def __call__(self, event) -> None:
        self.events.append(event)

    def of(self, kind: str) -> list:
        return [e for e in self.events if e.type == kind]


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        google_api_key="test-key",
        retry_attempts=3,
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
        clock_tick_seconds=3600,
        media_dir=tmp_path / "media",
    )


@pytest.fixture()
def options() -> SessionOptions:
    return SessionOptions(image_queue_delay_ms=0, session_duration_seconds=100)


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()
