"""The playback loop: turns generated chapters into continuous narration."""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from ..config import SessionOptions, Settings, get_settings
from ..errors import DreamweaverError, SessionExpired, UpstreamError, ValidationError
from ..gateway.interface import GenerationGateway
from ..gateway.prompt import (
    build_continuation_prompt,
    build_opening_prompt,
    build_sentence_image_prompt,
    build_system_instruction,
)
from ..models.events import (
    ChapterStarted,
    ClockTick,
    ImageShown,
    MusicChanged,
    PlaybackError,
    SentenceStarted,
    SessionEnded,
    SessionEvent,
)
from ..models.music import MUSIC_CATALOG, MusicTrack
from ..models.session import SessionState, SessionSummary
from ..models.story import Chapter, Sentence
from ..retry import retry_async
from .audio_cache import AudioCacheEntry, AudioPrefetchCache
from .image_queue import ImagePrefetchQueue
from .music import MusicMoodSelector
from .player import NarrationPlayer, PacedPlayer
from .scheduler import ChapterScheduler, SessionClock
from .segmenter import segment

logger = logging.getLogger(__name__)

EventHandler = Callable[[SessionEvent], Awaitable[None]]


class StorySession:
    """Owns one listening session from the first prompt to teardown.

    Sentences play strictly in order. Audio and images are prefetched ahead
    of the cursor, the next chapter is generated in the background once the
    newest chapter is half played, and every observable change is reported
    through ``on_event``.
    """

    def __init__(
        self,
        gateway: GenerationGateway,
        options: Optional[SessionOptions] = None,
        player: Optional[NarrationPlayer] = None,
        on_event: Optional[EventHandler] = None,
        settings: Optional[Settings] = None,
        catalog: Sequence[MusicTrack] = MUSIC_CATALOG,
        media_dir: Optional[Path] = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.options = options or SessionOptions()
        self.player = player or PacedPlayer()
        self.on_event = on_event

        self.state = SessionState(
            session_id=uuid.uuid4().hex[:8],
            time_left_seconds=self.options.session_duration_seconds,
        )
        if media_dir is None and self.settings.media_dir is not None:
            media_dir = self.settings.media_dir / self.state.session_id

        self.audio = AudioPrefetchCache(
            gateway,
            self.settings,
            voice=self.options.voice.value,
            accent=self.options.accent.value,
            media_dir=media_dir,
        )
        self.images = ImagePrefetchQueue(
            gateway,
            self.settings,
            delay_seconds=self.options.image_queue_delay_ms / 1000,
        )
        self.music = MusicMoodSelector(catalog, min_score=self.options.music_min_score)
        self.scheduler = ChapterScheduler(self.options)
        self.clock = SessionClock(
            self.state,
            tick_seconds=self.settings.clock_tick_seconds,
            on_tick=self._on_tick,
            on_expired=self._on_expired,
        )
        self.system_instruction = build_system_instruction(
            self.options.genre, self.options.average_sentences_per_chapter
        )

        self._visual_prompts: dict[int, str] = {}
        self._drain_task: Optional[asyncio.Task] = None
        self._narration: Optional[asyncio.Task] = None
        self._active_chapter = -1
        self._sentences_played = 0
        self._narration_failures = 0
        self._chapter_failures = 0
        self._closed = False
        self._wake = asyncio.Event()
        self._resumed = asyncio.Event()
        self._resumed.set()

    # Lifecycle

    async def run(self, prompt: str) -> SessionSummary:
        """Play a whole session for ``prompt`` and return its summary."""
        try:
            await self.start(prompt)
            await self._playback_loop()
        except DreamweaverError as e:
            logger.error(f"Session {self.state.session_id} failed: {e}")
            await self._fail(str(e))
            raise
        finally:
            await self.close()
        return self.summary()

    async def start(self, prompt: str) -> None:
        """Generate the first chapter and buffer its first sentence."""
        if self.state.ended or self.state.time_left_seconds <= 0:
            raise SessionExpired(f"Session {self.state.session_id} has already ended")
        self.state.prompt = prompt
        logger.info(f"Starting session {self.state.session_id} ({self.options.genre.value})")

        chapter = await self._generate_chapter(build_opening_prompt(prompt))
        await self._ingest(chapter)

        self._ensure_lookahead()
        try:
            await self.audio.fetch(self.state.sentences[0])
        except DreamweaverError as e:
            logger.warning(f"First sentence is not buffered: {e}")

        self.state.started = True
        self.state.is_playing = True
        self.clock.start()

    def pause(self) -> None:
        """Pause after the current sentence; the clock stops immediately."""
        if self.state.ended:
            return
        self.state.is_playing = False
        self._resumed.clear()

    def resume(self) -> None:
        if self.state.ended:
            return
        self.state.is_playing = True
        self._resumed.set()

    def stop(self, reason: str = "stopped") -> None:
        """End the session now, cutting off the current sentence."""
        if self._narration is not None:
            self._narration.cancel()
        self._end(reason)

    async def close(self) -> None:
        """Cancel in-flight work and release every cached resource."""
        if self._closed:
            return
        self._closed = True
        self._end("stopped")
        self.clock.stop()
        for task in (self.state.chapter_task, self._drain_task, self._narration):
            if task is not None and not task.done():
                task.cancel()
        self.images.close()
        self.audio.close()
        logger.info(
            f"Session {self.state.session_id} ended ({self.state.end_reason}) "
            f"after {self._sentences_played} sentences"
        )
        await self._emit(SessionEnded(reason=self.state.end_reason, sentences_played=self._sentences_played))

    def summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.state.session_id,
            end_reason=self.state.end_reason or "stopped",
            chapters=[chapter.title for chapter in self.state.chapters],
            sentences_played=self._sentences_played,
            time_left_seconds=self.state.time_left_seconds,
        )

    def _end(self, reason: str) -> None:
        if self.state.ended:
            return
        self.state.ended = True
        self.state.end_reason = reason
        self.state.is_playing = False
        self._wake.set()
        self._resumed.set()

    async def _fail(self, message: str) -> None:
        if self.state.ended:
            return
        await self._emit(PlaybackError(message=message, fatal=True))
        self._end("error")

    async def _emit(self, event: SessionEvent) -> None:
        if self.on_event is not None:
            await self.on_event(event)

    # Chapters

    async def _generate_chapter(self, prompt: str) -> Chapter:
        return await retry_async(
            lambda: self.gateway.generate_text(prompt, self.system_instruction),
            attempts=self.settings.retry_attempts,
            base_delay=self.settings.retry_base_delay_seconds,
            max_delay=self.settings.retry_max_delay_seconds,
            description="Chapter generation",
        )

    def _visual_moments(self, chapter: Chapter, sentences: list[Sentence]) -> list[tuple[int, str]]:
        """Pair each visual moment with a display-interval sentence of its chapter."""
        interval = self.options.image_display_interval_sentences
        display = [s.global_index for s in sentences if s.global_index % interval == 0]
        return list(zip(display, chapter.visual_moment_prompts))

    async def _ingest(self, chapter: Chapter) -> None:
        """Segment a chapter, illustrate its first moment, and hand it to playback."""
        chapter_index = len(self.state.chapters)
        sentences = segment(chapter.prose, chapter_index, self.state.next_sentence_index)
        moments = self._visual_moments(chapter, sentences)

        if moments:
            first_index, first_prompt = moments[0]
            await self.images.generate_now(first_index, first_prompt)
            for index, prompt in moments[1:]:
                self.images.enqueue(index, prompt)

        if self.state.ended:
            return
        self.state.add_chapter(chapter, sentences)
        self._visual_prompts.update(moments)
        logger.info(
            f"Chapter {chapter_index + 1} '{chapter.title}': {len(sentences)} sentences, "
            f"{len(moments)} illustrations"
        )
        self._start_image_drain()

    def _start_image_drain(self) -> None:
        if len(self.images) and not self.images.is_processing:
            self._drain_task = asyncio.create_task(
                self.images.drain(), name=f"images-{self.state.session_id}"
            )

    def request_next_chapter(self) -> bool:
        """Start background generation of the next chapter if the scheduler allows."""
        if self.state.ended or not self.scheduler.should_generate_next_chapter(self.state):
            return False
        logger.info(
            f"Generating chapter {len(self.state.chapters) + 1} "
            f"({self.state.time_left_seconds}s left)"
        )
        self.state.chapter_task = asyncio.create_task(
            self._produce_next_chapter(), name=f"chapter-{self.state.session_id}"
        )
        return True

    async def _produce_next_chapter(self) -> bool:
        prompt = build_continuation_prompt(self.state.prompt, self.state.chapters)
        try:
            chapter = await self._generate_chapter(prompt)
            if self.state.ended:
                return False
            await self._ingest(chapter)
        except DreamweaverError as e:
            self._chapter_failures += 1
            logger.warning(f"Background chapter generation failed: {e}")
            await self._emit(PlaybackError(message=f"Could not continue the story: {e}"))
            return False
        self._chapter_failures = 0
        return True

    async def _await_next_chapter(self) -> bool:
        """Stall at the end of the available sentences until more arrive.

        Returns False when the session should end instead.
        """
        state = self.state
        if not state.is_generating_chapter:
            if self._chapter_failures >= self.settings.max_consecutive_chapter_failures:
                await self._fail("The story service is unavailable")
                return False
            if not self.request_next_chapter():
                self._end("story_complete")
                return False

        state.stalled = True
        logger.info(f"Waiting for chapter {len(state.chapters) + 1}")
        waiter = asyncio.create_task(self._wake.wait())
        try:
            await asyncio.wait({state.chapter_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            state.stalled = False
        return not state.ended

    # Playback

    async def _playback_loop(self) -> None:
        state = self.state
        while not state.ended:
            await self._resumed.wait()
            if state.ended:
                break
            if state.current_index >= len(state.sentences):
                if not await self._await_next_chapter():
                    break
                continue

            sentence = state.sentences[state.current_index]
            await self._enter_chapter(sentence.chapter_index)
            self._ensure_lookahead()
            if sentence.global_index % self.options.image_display_interval_sentences == 0:
                await self._show_image(sentence)
            if (
                self._chapter_failures < self.settings.max_consecutive_chapter_failures
                and self.scheduler.reached_midpoint(state, sentence.global_index, sentence.chapter_index)
            ):
                self.request_next_chapter()
            if state.ended:
                break
            await self._narrate(sentence)
            self._advance()

    async def _enter_chapter(self, chapter_index: int) -> None:
        if chapter_index == self._active_chapter:
            return
        self._active_chapter = chapter_index
        chapter = self.state.chapters[chapter_index]
        await self._emit(ChapterStarted(chapter_index=chapter_index, title=chapter.title))

        mood = self.music.select(chapter.prose, chapter.suggested_music_mood, self.state.current_mood)
        if mood != self.state.current_mood:
            self.state.current_mood = mood
            track = self.music.track(mood)
            logger.info(f"Music: {track.display_name}")
            await self._emit(
                MusicChanged(
                    track_id=track.id,
                    display_name=track.display_name,
                    icon=track.icon,
                    source_url=track.source_url,
                )
            )

    def _ensure_lookahead(self) -> None:
        start = self.state.current_index
        stop = min(start + self.options.audio_lookahead + 1, len(self.state.sentences))
        for index in range(start, stop):
            self.audio.ensure(self.state.sentences[index])

    async def _show_image(self, sentence: Sentence) -> None:
        index = sentence.global_index
        entry = self.images.get(index)
        if entry is None:
            prompt = self._visual_prompts.get(index) or build_sentence_image_prompt(
                sentence.text, self.options.genre
            )
            entry = await self.images.generate_now(index, prompt)
        if entry is not None and not self.state.ended:
            await self._emit(
                ImageShown(index=index, data=entry.data, mime_type=entry.mime_type, prompt=entry.prompt)
            )

    async def _narrate(self, sentence: Sentence) -> None:
        index = sentence.global_index
        entry: Optional[AudioCacheEntry] = None
        failure: Optional[str] = None
        try:
            entry = self.audio.get(index) or await self.audio.fetch(sentence)
        except ValidationError as e:
            logger.error(f"Sentence {index} cannot be narrated: {e}")
            failure = f"Sentence could not be narrated: {e}"
        except UpstreamError as e:
            logger.warning(f"Skipping narration for sentence {index}: {e}")
            failure = f"Narration unavailable: {e}"

        # Ended while the audio was loading: the sentence never starts
        if self.state.ended:
            logger.debug(f"Dropping sentence {index}; session already ended")
            return

        if failure is None:
            self._narration_failures = 0
        else:
            self._narration_failures += 1
            await self._emit(PlaybackError(message=failure, index=index))
        if self._narration_failures >= self.settings.max_consecutive_narration_failures:
            await self._fail("The narration service is unavailable")
            return

        await self._emit(
            SentenceStarted(
                index=index,
                text=sentence.text,
                chapter_index=sentence.chapter_index,
                audio=entry.audio if entry else None,
                audio_path=entry.path if entry else None,
            )
        )
        if entry is not None and not self.state.ended:
            await self._play(entry)
        self._sentences_played += 1

    async def _play(self, entry: AudioCacheEntry) -> None:
        self._narration = asyncio.create_task(self.player.play(entry), name=f"narration-{entry.index}")
        try:
            await asyncio.wait({self._narration})
        except asyncio.CancelledError:
            self._narration.cancel()
            raise
        narration, self._narration = self._narration, None
        if not narration.cancelled():
            narration.result()

    def _advance(self) -> None:
        self.state.current_index += 1
        self.audio.release_before(self.state.current_index)

    # Clock callbacks

    async def _on_tick(self, time_left: int) -> None:
        await self._emit(ClockTick(time_left_seconds=time_left))

    async def _on_expired(self) -> None:
        if self.options.stop_mid_sentence and self._narration is not None:
            self._narration.cancel()
        self._end("expired")
